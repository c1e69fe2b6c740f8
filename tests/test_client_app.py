import pytest
import requests

from tests.conftest import TRACE_ID, spans_named


@pytest.fixture
def client_app():
    from client import app as client_module
    client_module.app.config['TESTING'] = True
    return client_module


@pytest.fixture
def client(client_app):
    return client_app.app.test_client()


def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}


def test_list_actions(client, client_app):
    data = client.get('/actions').get_json()

    assert [a['id'] for a in data['clientActions']] == [
        'js-exception', 'promise-rejection', 'network-failure',
        'cors-failure', 'json-parse', 'resource-load',
    ]
    assert len(data['serverActions']) == 12
    assert data['jaegerUrl'] == client_app.JAEGER_UI_URL
    assert {a['type'] for a in data['serverActions']} == {'server'}


def test_unknown_action_is_404(client):
    for res in (client.get('/actions/nope'), client.post('/actions/nope')):
        assert res.status_code == 404
        assert "Unknown action 'nope'" in res.get_json()['message']


def test_client_exception_reaches_interceptor(client, client_app, spans):
    assert client_app.interceptor.installed

    res = client.post('/actions/js-exception')

    assert res.status_code == 500
    data = res.get_json()
    assert data['error'] == 'AttributeError'
    assert TRACE_ID.match(data['traceId'])
    assert data['action']['status'] == 'error'
    assert len(spans_named(spans, 'uncaught-error')) == 1


def test_resource_load_reported_by_process_interceptor(client, monkeypatch, spans):
    def refuse(self, method, url, **kwargs):
        raise requests.exceptions.ConnectionError("Connection refused")

    monkeypatch.setattr(requests.Session, 'request', refuse)
    res = client.post('/actions/resource-load')

    assert res.status_code == 200
    assert res.get_json()['response'] == 'Exception thrown (check Jaeger)'
    assert len(spans_named(spans, 'resource-load-failure')) == 1


def test_server_action_waits_for_completion(client, backend_transport):
    res = client.post('/actions/forbidden?wait=true')

    assert res.status_code == 200
    action = res.get_json()
    assert action['status'] == 'error'
    assert 'Required role: Admin' in action['response']
    assert 'TraceId: ' in action['response']


def test_server_action_returns_accepted_without_wait(client, client_app, backend_transport):
    res = client.post('/actions/health')

    assert res.status_code == 202
    assert res.get_json()['status'] in ('loading', 'success')
