"""Unit tests for budget_dashboard.chart_data.

Small hand-built transaction groups keep the expected weekly and monthly
buckets easy to verify by hand.  Weeks start on Sunday: 2023-12-31,
2024-01-07, 2024-01-28 and 2024-02-04 are all Sundays.
"""

from __future__ import annotations

from datetime import date

import pandas as pd
import pytest

from budget_dashboard import chart_data as cd
from budget_dashboard.models import Budget, BudgetItem, Category, Transaction, TransactionGroup

FOOD = Category(id='c-food', name='Food')
RENT = Category(id='c-rent', name='Rent')
SALARY = Category(id='c-salary', name='Salary', is_income_type=True)


def _group(day: str, *lines):
    return TransactionGroup(
        name=f'group {day}',
        date=date.fromisoformat(day),
        transactions=[
            Transaction(name=category.name, amount=amount, category=category)
            for category, amount in lines
        ],
    )


def _sample_groups():
    return [
        _group('2024-01-05', (FOOD, 20.0), (SALARY, 1000.0)),
        _group('2024-01-10', (RENT, 500.0)),
        _group('2024-02-03', (FOOD, 30.0)),
    ]


def _february_budget():
    return Budget(
        id='b-feb',
        name='February',
        start_date=date(2024, 2, 1),
        end_date=date(2024, 2, 29),
        budget_items=[
            BudgetItem(allocation=100.0, category=FOOD),
            BudgetItem(allocation=2000.0, category=SALARY),
        ],
    )


def test_flatten_transactions_splits_streams_and_negates_expenses():
    groups = _sample_groups()
    expenses = cd.flatten_transactions(groups, expenses=True)
    income = cd.flatten_transactions(groups, expenses=False)

    assert list(expenses.columns) == ['date', 'amount', 'category']
    assert expenses['amount'].sum() == pytest.approx(-550.0)
    assert (expenses['amount'] < 0).all()
    assert list(expenses['date']) == sorted(expenses['date'])
    assert income['amount'].tolist() == [1000.0]
    assert income['category'].tolist() == ['Salary']


def test_flatten_transactions_puts_uncategorized_in_expenses():
    groups = [TransactionGroup(
        name='cash',
        date=date(2024, 1, 3),
        transactions=[Transaction(name='mystery', amount=12.5)],
    )]
    expenses = cd.flatten_transactions(groups, expenses=True)
    assert expenses['category'].tolist() == ['Uncategorized']
    assert expenses['amount'].tolist() == [-12.5]
    assert cd.flatten_transactions(groups, expenses=False).empty


def test_project_budget_starts_the_month_after_end_date():
    projection = cd.project_budget(_february_budget(), True, date(2024, 1, 31), months=3)
    assert projection['date'].tolist() == [
        pd.Timestamp('2024-02-01'),
        pd.Timestamp('2024-03-01'),
        pd.Timestamp('2024-04-01'),
    ]
    assert projection['amount'].tolist() == [-100.0, -100.0, -100.0]
    assert set(projection['category']) == {'Food'}


def test_project_budget_without_budget_or_months_is_empty():
    assert cd.project_budget(None, True, date(2024, 1, 31)).empty
    assert cd.project_budget(_february_budget(), True, date(2024, 1, 31), months=0).empty


def test_group_by_period_monthly_and_weekly():
    expenses = cd.flatten_transactions(_sample_groups(), expenses=True)

    monthly = cd.group_by_period(expenses, 'M')
    assert set(map(tuple, monthly[['date', 'category', 'value']].values.tolist())) == {
        (pd.Timestamp('2024-01-01'), 'Food', -20.0),
        (pd.Timestamp('2024-01-01'), 'Rent', -500.0),
        (pd.Timestamp('2024-02-01'), 'Food', -30.0),
    }

    weekly = cd.group_by_period(expenses, 'W')
    assert weekly['date'].tolist() == [
        pd.Timestamp('2023-12-31'),
        pd.Timestamp('2024-01-07'),
        pd.Timestamp('2024-01-28'),
    ]


def test_group_by_period_rejects_unknown_period():
    with pytest.raises(ValueError):
        cd.group_by_period(cd.flatten_transactions(_sample_groups()), 'Q')


def test_merge_cumulative_running_totals_and_boundary():
    expenses = cd.flatten_transactions(_sample_groups(), expenses=True)
    cumulative, end_index = cd.merge_cumulative(expenses, expenses.iloc[0:0], -1)

    assert list(cumulative.columns) == ['Food', 'Rent']
    assert list(cumulative.index) == [
        pd.Timestamp('2023-12-31'),
        pd.Timestamp('2024-01-07'),
        pd.Timestamp('2024-01-28'),
    ]
    assert cumulative['Food'].tolist() == [20.0, 20.0, 50.0]
    assert cumulative['Rent'].tolist() == [0.0, 500.0, 500.0]
    # last historical date 2024-02-03 falls in the week starting 2024-01-28
    assert end_index == 2


def test_merge_cumulative_boundary_on_sunday_uses_previous_week():
    groups = [_group('2024-01-10', (FOOD, 10.0)), _group('2024-02-04', (FOOD, 5.0))]
    expenses = cd.flatten_transactions(groups)
    cumulative, end_index = cd.merge_cumulative(expenses, expenses.iloc[0:0], -1)
    assert list(cumulative.index) == [pd.Timestamp('2024-01-07'), pd.Timestamp('2024-02-04')]
    assert end_index == 0


def test_merge_cumulative_empty_inputs():
    empty = cd.flatten_transactions([])
    cumulative, end_index = cd.merge_cumulative(empty, empty, 1, today=date(2024, 2, 10))
    assert cumulative.empty
    assert end_index == -1


def test_savings_series_matches_net_total():
    groups = _sample_groups()
    savings = cd.savings_series(
        cd.flatten_transactions(groups, expenses=False),
        cd.flatten_transactions(groups, expenses=True),
    )
    assert savings['date'].tolist() == [
        pd.Timestamp('2024-01-05'),
        pd.Timestamp('2024-01-10'),
        pd.Timestamp('2024-02-03'),
    ]
    assert savings['value'].tolist() == pytest.approx([980.0, 480.0, 450.0])


def test_slice_date_range_long_and_wide_frames():
    expenses = cd.flatten_transactions(_sample_groups())
    monthly = cd.group_by_period(expenses, 'M')
    february = cd.slice_date_range(monthly, date(2024, 2, 1), date(2024, 2, 29))
    assert february['value'].tolist() == [-30.0]

    cumulative, _ = cd.merge_cumulative(expenses, expenses.iloc[0:0], -1)
    january = cd.slice_date_range(cumulative, date(2024, 1, 1), date(2024, 1, 31))
    assert list(january.index) == [pd.Timestamp('2024-01-07'), pd.Timestamp('2024-01-28')]


def test_compute_chart_data_without_budget():
    data = cd.compute_chart_data(_sample_groups(), [], today=date(2024, 2, 10))

    assert not data.is_empty
    assert data.expense_data['value'].sum() == pytest.approx(550.0)
    assert (data.expense_data['value'] > 0).all()
    assert data.income_data['value'].tolist() == [1000.0]
    # last cumulative row equals the per-category totals
    assert data.cumulative_expense_data.iloc[-1].to_dict() == {'Food': 50.0, 'Rent': 500.0}
    assert data.cumulative_income_data.iloc[-1].to_dict() == {'Salary': 1000.0}
    assert data.cumulative_expense_end_index == 2
    assert data.savings_data['value'].iloc[-1] == pytest.approx(450.0)


def test_compute_chart_data_projects_active_budget():
    data = cd.compute_chart_data(_sample_groups(), [_february_budget()], today=date(2024, 2, 10))

    cumulative = data.cumulative_expense_data
    end_index = data.cumulative_expense_end_index
    assert end_index == 2
    assert cumulative.index[end_index + 1] == pd.Timestamp('2024-02-25')
    assert cumulative['Food'].iloc[-1] == pytest.approx(50.0 + 6 * 100.0)
    assert cumulative['Rent'].iloc[-1] == pytest.approx(500.0)
    assert data.cumulative_income_data['Salary'].iloc[-1] == pytest.approx(1000.0 + 6 * 2000.0)
    # projections never leak into the monthly history
    assert data.expense_data['value'].sum() == pytest.approx(550.0)


def test_compute_chart_data_zero_months_matches_history():
    with_budget = cd.compute_chart_data(_sample_groups(), [_february_budget()], today=date(2024, 2, 10), months=0)
    without = cd.compute_chart_data(_sample_groups(), [], today=date(2024, 2, 10))
    pd.testing.assert_frame_equal(with_budget.cumulative_expense_data, without.cumulative_expense_data)


def test_compute_chart_data_empty():
    data = cd.compute_chart_data([], [], today=date(2024, 2, 10))
    assert data.is_empty
    assert data.cumulative_expense_data.empty
    assert data.cumulative_expense_end_index == -1
    assert data.cumulative_income_end_index == -1
    assert data.savings_data.empty
