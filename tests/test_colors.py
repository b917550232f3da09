import pytest

from budget_dashboard.colors import (
    color_by_index,
    color_shade,
    default_color,
    expense_colors,
    income_colors,
    palette_for,
)


def test_default_color():
    assert default_color == '#0062FF'


def test_color_by_index_wraps_around():
    assert color_by_index(0, expense_colors) == expense_colors[0]
    assert color_by_index(len(expense_colors) + 1, expense_colors) == expense_colors[1]
    assert color_by_index(len(income_colors), income_colors) == income_colors[0]


def test_color_shade_lightens_and_darkens():
    assert color_shade('#000000', 20) == '#141414'
    assert color_shade('#808080', -16) == '#707070'


def test_color_shade_clamps_components():
    assert color_shade('#FFFFFF', 10) == '#ffffff'
    assert color_shade('#0A0A0A', -50) == '#000000'


def test_color_shade_expands_shorthand():
    assert color_shade('abc', 0) == '#aabbcc'
    assert color_shade('#03F', 0) == '#0033ff'


def test_color_shade_rejects_invalid_input():
    with pytest.raises(ValueError, match='Invalid color format'):
        color_shade('#12', 10)
    with pytest.raises(ValueError):
        color_shade('#GGGGGG', 10)


def test_palette_for_assigns_in_order():
    mapping = palette_for(['Food', 'Rent'], income_colors)
    assert mapping == {'Food': income_colors[0], 'Rent': income_colors[1]}
