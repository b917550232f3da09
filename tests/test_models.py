from datetime import date

import pytest
from pydantic import ValidationError

from budget_dashboard.models import (
    DEFAULT_COLOR,
    Budget,
    BudgetItem,
    Category,
    Page,
    Transaction,
    TransactionGroup,
    User,
    parse_list,
)


def test_category_defaults_and_payload():
    category = Category(name='Food')
    assert category.color == DEFAULT_COLOR
    assert category.is_income_type is False
    assert category.to_payload() == {
        'name': 'Food',
        'description': '',
        'is_income_type': False,
        'color': DEFAULT_COLOR,
    }
    assert Category(id='c1', name='Food', legacy=True).to_payload()['id'] == 'c1'


def test_transaction_rounds_amount_and_signs_by_category():
    income = Category(id='c1', name='Salary', is_income_type=True)
    expense = Category(id='c2', name='Food')
    assert Transaction(name='pay', amount=10.126, category=income).amount == 10.13
    assert Transaction(name='pay', amount=10.0, category=income).signed_amount == 10.0
    assert Transaction(name='lunch', amount=10.0, category=expense).signed_amount == -10.0
    assert Transaction(name='cash', amount=10.0).signed_amount == -10.0


def test_transaction_payload_uses_category_uuid():
    nested = Transaction(name='lunch', amount=12.0, category=Category(id='c2', name='Food'))
    assert nested.to_payload()['category_uuid'] == 'c2'
    flat = Transaction(name='lunch', amount=12.0, category_uuid='c9')
    assert flat.to_payload()['category_uuid'] == 'c9'
    assert 'id' not in flat.to_payload()


def test_transaction_group_parses_api_shape():
    group = TransactionGroup.model_validate({
        'id': 'g1',
        'name': 'Grocer',
        'date': '2024-03-05',
        'source': None,
        'transactions': [
            {'id': 't1', 'name': 'milk', 'amount': '4.50', 'category': {'id': 'c2', 'name': 'Food'}},
            {'id': 't2', 'name': 'bread', 'amount': 3.25, 'category': {'id': 'c2', 'name': 'Food'}},
        ],
    })
    assert group.date == date(2024, 3, 5)
    assert group.total == 7.75
    payload = group.to_payload()
    assert payload['date'] == '2024-03-05'
    assert [t['category_uuid'] for t in payload['transactions']] == ['c2', 'c2']


def test_budget_item_rejects_negative_allocation():
    with pytest.raises(ValidationError, match='Allocation must be greater than or equal to 0.'):
        BudgetItem(allocation=-1, category_uuid='c1')


def test_budget_rejects_inverted_range():
    with pytest.raises(ValidationError):
        Budget(name='bad', start_date=date(2024, 2, 1), end_date=date(2024, 1, 1))


def test_budget_total_and_activity():
    budget = Budget(
        name='Feb',
        start_date=date(2024, 2, 1),
        end_date=date(2024, 2, 29),
        budget_items=[BudgetItem(allocation=100.5, category_uuid='a'), BudgetItem(allocation=50, category_uuid='b')],
    )
    assert budget.total_allocation == 150.5
    assert budget.is_active(date(2024, 2, 29))
    assert not budget.is_active(date(2024, 3, 1))
    assert budget.to_payload()['budget_items'] == [
        {'allocation': 100.5, 'category_uuid': 'a'},
        {'allocation': 50.0, 'category_uuid': 'b'},
    ]


def test_user_payload_excludes_id():
    user = User.model_validate({'id': 7, 'username': 'sam', 'email': 's@example.com'})
    payload = user.to_payload()
    assert 'id' not in payload
    assert payload['username'] == 'sam'


def test_parse_list_plain_and_paginated():
    items = parse_list(Category, [{'id': 'c1', 'name': 'Food'}])
    assert [c.name for c in items] == ['Food']

    page = parse_list(Category, {
        'count': 3,
        'next': 'http://api/categories/?page=2',
        'previous': None,
        'results': [{'id': 'c1', 'name': 'Food'}],
    })
    assert isinstance(page, Page)
    assert page.count == 3
    assert page.results[0].name == 'Food'
