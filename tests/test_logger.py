import io
import json
import logging

from budget_dashboard.logger import JSONFormatter, get_logger


def _record(**extra):
    record = logging.LogRecord('budget_dashboard.api', logging.INFO, __file__, 1, 'Token %s', ('refreshed',), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_fields():
    entry = json.loads(JSONFormatter().format(_record()))
    assert entry['level'] == 'INFO'
    assert entry['logger_name'] == 'budget_dashboard.api'
    assert entry['message'] == 'Token refreshed'
    assert 'timestamp' in entry
    assert 'extra' not in entry


def test_json_formatter_includes_extra():
    entry = json.loads(JSONFormatter().format(_record(resource='budgets', count=2)))
    assert entry['extra'] == {'resource': 'budgets', 'count': '2'}


def test_get_logger_namespaces_under_package():
    log = get_logger('budget_dashboard.resources')
    assert log.name == 'budget_dashboard.resources'
    assert get_logger('resources') is log


def test_logger_output_is_json():
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    log = get_logger('test_logger')
    log.addHandler(handler)
    log.setLevel(logging.INFO)
    try:
        log.info('Invalidated cached queries', extra={'count': 3})
    finally:
        log.removeHandler(handler)
    entry = json.loads(stream.getvalue().strip())
    assert entry['message'] == 'Invalidated cached queries'
    assert entry['extra']['count'] == '3'
