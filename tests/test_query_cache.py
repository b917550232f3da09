import pytest

from budget_dashboard.query_cache import QueryCache, make_key


def test_make_key_ignores_order_and_none_values():
    assert make_key('budgets', {'a': 1, 'b': 2, 'c': None}) == make_key('budgets', {'b': 2, 'a': 1})
    assert make_key('budgets', {'ids': [1, 2]}) == ('budgets', (('ids', (1, 2)),))
    assert make_key('budgets') == ('budgets', ())


def test_get_or_fetch_caches_results():
    cache = QueryCache()
    calls = []

    def fetch():
        calls.append(1)
        return ['x']

    assert cache.get_or_fetch(('categories', ()), fetch) == ['x']
    assert cache.get_or_fetch(('categories', ()), fetch) == ['x']
    assert len(calls) == 1


def test_failed_fetch_is_not_cached():
    cache = QueryCache()

    def boom():
        raise RuntimeError('offline')

    with pytest.raises(RuntimeError):
        cache.get_or_fetch(('categories', ()), boom)
    assert ('categories', ()) not in cache
    assert cache.get_or_fetch(('categories', ()), lambda: 'ok') == 'ok'


def test_invalidate_drops_only_named_resources():
    cache = QueryCache()
    cache.set(make_key('categories'), 1)
    cache.set(make_key('budgets', {'page': 1}), 2)
    cache.set(make_key('budgets', {'page': 2}), 3)
    cache.set(('currentBudget', '2024-03-01'), 4)
    cache.set(make_key('transaction-groups'), 5)

    assert cache.invalidate('budgets', 'currentBudget') == 3
    assert len(cache) == 2
    assert make_key('categories') in cache
    assert cache.invalidate('budgets') == 0

    cache.clear()
    assert len(cache) == 0
