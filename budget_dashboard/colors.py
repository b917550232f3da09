"""Colour palettes and helpers shared by the chart functions."""

from __future__ import annotations

import re
from typing import Sequence

from .models import DEFAULT_COLOR

default_color = DEFAULT_COLOR

expense_colors = [
    "#6A040F",
    "#9D0208",
    "#D00000",
    "#DC2F02",
    "#E85D04",
    "#F48C06",
]

income_colors = [
    "#008080",
    "#20B2AA",
    "#48D1CC",
    "#66CDAA",
    "#7FFFD4",
    "#B0E0E6",
    "#E0FFFF",
    "#F0FFFF",
]

_HEX_RE = re.compile(r"^[0-9a-fA-F]{6}$")


def color_by_index(index: int, palette: Sequence[str]) -> str:
    """Pick a palette entry, wrapping around when ``index`` runs past the end."""
    return palette[index % len(palette)]


def color_shade(color: str, amount: int) -> str:
    """Lighten (positive ``amount``) or darken a hex colour.

    Each RGB component is shifted by ``amount`` and clamped to 0-255.
    Three-digit shorthand (``"03F"``) is expanded first.
    """
    value = color.lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if not _HEX_RE.match(value):
        raise ValueError(f"Invalid color format: {color!r}")
    channels = [int(value[i:i + 2], 16) + amount for i in (0, 2, 4)]
    return "#" + "".join(f"{max(0, min(255, c)):02x}" for c in channels)


def palette_for(categories: Sequence[str], palette: Sequence[str]) -> dict:
    """Stable category -> colour mapping in the given order."""
    return {name: color_by_index(i, palette) for i, name in enumerate(categories)}
