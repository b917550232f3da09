from __future__ import annotations

import base64
import json
import types
from datetime import date

import pytest

from budget_dashboard.assistant import (
    AssistantClient,
    BudgetSuggestion,
    Receipt,
    Subcategory,
    error_envelope,
    mapping_schema,
    receipt_schema,
)
from budget_dashboard.errors import AssistantError
from budget_dashboard.models import Category


def _reply(payload, status=200):
    body = {'candidates': [{'content': {'parts': [{'text': json.dumps(payload)}]}}]}
    return types.SimpleNamespace(status_code=status, ok=status < 400, json=lambda: body, text='error')


class FakeSession:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def post(self, url, params=None, json=None, timeout=None):
        self.calls.append({'url': url, 'params': params, 'json': json})
        return self.replies.pop(0)


def _client(session):
    return AssistantClient(api_key='k', model='gemini-test', base_url='https://ai.example.com/v1beta', session=session)


RECEIPT = {
    'store_name': 'Corner Grocer',
    'address': None,
    'date_time': '2024-03-05T14:22:00',
    'payment_type': 'DEBIT',
    'items': [
        {'name': 'MLK 2%', 'description': 'Milk 2%', 'price': 4.99, 'category': 'Food'},
        {'name': 'BATT AA', 'description': 'AA batteries', 'price': 8.5, 'category': 'Unknown'},
    ],
    'tax': 1.1,
}


def test_suggest_budget_request_and_reply():
    session = FakeSession(_reply({
        'response_text': 'Here is a plan.',
        'budget_array': [{'category_name': 'Charity', 'budget': 160}, {'category_name': 'Investments', 'budget': 950}],
    }))
    suggestion = _client(session).suggest_budget('After-tax Income: $5600')

    assert isinstance(suggestion, BudgetSuggestion)
    assert suggestion.as_dict() == {'Charity': 160.0, 'Investments': 950.0}
    call = session.calls[0]
    assert call['url'] == 'https://ai.example.com/v1beta/models/gemini-test:generateContent'
    assert call['params'] == {'key': 'k'}
    config = call['json']['generationConfig']
    assert config['responseMimeType'] == 'application/json'
    assert config['temperature'] == 1
    assert config['responseSchema']['required'] == ['response_text', 'budget_array']
    assert call['json']['contents'][0]['parts'] == [{'text': 'After-tax Income: $5600'}]


def test_mapping_schema_requires_every_source():
    schema = mapping_schema(['A', 'B'], ['Food', 'other'])
    assert schema['required'] == ['A', 'B']
    assert schema['properties']['A']['enum'] == ['Food', 'other']


def test_map_categories_constrains_values_to_destinations():
    session = FakeSession(_reply({'FOOD_AND_DRINK_COFFEE': 'Food', 'TRAVEL_FLIGHTS': 'Vacation'}))
    mapping = _client(session).map_categories(
        ['FOOD_AND_DRINK_COFFEE', 'TRAVEL_FLIGHTS', 'RENT_AND_UTILITIES_RENT'], ['Food', 'Rent']
    )
    assert mapping == {
        'FOOD_AND_DRINK_COFFEE': 'Food',
        'TRAVEL_FLIGHTS': 'other',
        'RENT_AND_UTILITIES_RENT': 'other',
    }
    schema = session.calls[0]['json']['generationConfig']['responseSchema']
    assert schema['properties']['TRAVEL_FLIGHTS']['enum'] == ['Food', 'Rent', 'other']


def test_map_categories_without_sources_skips_the_request():
    session = FakeSession()
    assert _client(session).map_categories([], ['Food']) == {}
    assert session.calls == []


def test_extract_receipt_sends_inline_image():
    session = FakeSession(_reply(RECEIPT))
    receipt = _client(session).extract_receipt(b'\x89PNG', 'image/png', ['Food', 'Household'])

    assert receipt.store_name == 'Corner Grocer'
    assert receipt.date_time.date() == date(2024, 3, 5)
    parts = session.calls[0]['json']['contents'][0]['parts']
    assert parts[0]['inlineData'] == {'mimeType': 'image/png', 'data': base64.b64encode(b'\x89PNG').decode('ascii')}
    schema = session.calls[0]['json']['generationConfig']['responseSchema']
    assert schema['properties']['items']['items']['properties']['category']['enum'] == ['Food', 'Household', 'Unknown']


def test_receipt_schema_marks_optional_fields_nullable():
    schema = receipt_schema(['Food'])
    assert schema['properties']['address']['nullable'] is True
    assert schema['properties']['payment_type']['nullable'] is True
    assert schema['required'] == ['store_name', 'date_time', 'items', 'tax']


def test_receipt_to_transaction_group_adds_tax_line():
    food = Category(id='c-food', name='Food')
    group = Receipt.model_validate(RECEIPT).to_transaction_group([food])

    assert group.name == 'Corner Grocer'
    assert group.source == 'DEBIT'
    assert group.date == date(2024, 3, 5)
    assert [t.name for t in group.transactions] == ['MLK 2%', 'BATT AA', 'Sales Tax']
    assert group.transactions[0].category_id == 'c-food'
    assert group.transactions[1].category.name == 'Unknown'
    assert group.transactions[2].amount == 1.1
    assert group.total == pytest.approx(14.59)


def test_receipt_without_tax_has_no_tax_line():
    group = Receipt.model_validate({**RECEIPT, 'tax': 0}).to_transaction_group()
    assert [t.name for t in group.transactions] == ['MLK 2%', 'BATT AA']


def test_invalid_reply_raises_assistant_error():
    session = FakeSession(_reply({'response_text': 'missing budget', 'budget_array': [{'category_name': 'A'}]}))
    with pytest.raises(AssistantError, match='Invalid BudgetSuggestion reply'):
        _client(session).suggest_budget('hi')


def test_http_failure_raises_assistant_error():
    session = FakeSession(_reply({}, status=429))
    with pytest.raises(AssistantError, match='429'):
        _client(session).suggest_budget('hi')


def test_missing_api_key():
    client = AssistantClient(api_key='', session=FakeSession())
    with pytest.raises(AssistantError, match='GOOGLE_AI_STUDIO_KEY'):
        client.suggest_budget('hi')


def test_error_envelope():
    body, status = error_envelope(AssistantError('quota exceeded'))
    assert status == 500
    assert body == {'error': 'Failed to process request', 'details': 'quota exceeded'}


def test_generate_subcategories_parses_list():
    session = FakeSession(_reply([
        {'subcategory': 'Groceries', 'examples': 'milk, bread'},
        {'subcategory': 'Eating out', 'examples': 'restaurants, coffee'},
    ]))
    ideas = _client(session).generate_subcategories('Food')

    assert ideas == [
        Subcategory(subcategory='Groceries', examples='milk, bread'),
        Subcategory(subcategory='Eating out', examples='restaurants, coffee'),
    ]
    request = session.calls[0]['json']
    assert request['contents'][0]['parts'] == [{'text': 'Generate subcategories for the following category: Food'}]
    assert request['generationConfig']['responseSchema']['type'] == 'ARRAY'


def test_generate_subcategories_rejects_non_list_reply():
    session = FakeSession(_reply({'subcategory': 'Groceries', 'examples': 'milk'}))
    with pytest.raises(AssistantError, match='Subcategory reply is not a list'):
        _client(session).generate_subcategories('Food')
