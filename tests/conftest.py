import re
from urllib.parse import urlsplit

import pytest
import requests
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

# Registered before either service is imported, so init_tracing() reuses it
# instead of building an OTLP exporter.
span_exporter = InMemorySpanExporter()
_provider = TracerProvider()
_provider.add_span_processor(SimpleSpanProcessor(span_exporter))
trace.set_tracer_provider(_provider)

TRACE_ID = re.compile(r'^[0-9a-f]{32}$')


def spans_named(exporter, name):
    return [s for s in exporter.get_finished_spans() if s.name == name]


@pytest.fixture
def spans():
    span_exporter.clear()
    yield span_exporter
    span_exporter.clear()


@pytest.fixture
def local_spans():
    """A tracer isolated from the process-wide provider."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider.get_tracer('test'), exporter


@pytest.fixture
def backend_app():
    from backend.app import app
    app.config['TESTING'] = True
    return app


@pytest.fixture
def backend_client(backend_app):
    return backend_app.test_client()


@pytest.fixture
def fast_simulations(monkeypatch):
    from backend import simulations
    monkeypatch.setattr(simulations, 'TIMEOUT_DELAY_SECONDS', 0.05)
    monkeypatch.setattr(simulations, 'SLOW_RESPONSE_SECONDS', 0.05)
    monkeypatch.setattr(simulations, 'CPU_SPIKE_SECONDS', 0.1)
    monkeypatch.setattr(simulations, 'MEMORY_CHUNK_MB', 1)
    monkeypatch.setattr(simulations, 'MEMORY_CHUNKS', 5)
    return simulations


@pytest.fixture
def backend_transport(backend_client, monkeypatch):
    """Route outgoing HTTP calls to the backend test client; other hosts are refused.

    Patched at ``Session.request`` so both ``requests.get`` and the client's
    session go through it.
    """
    calls = []

    def fake_request(self, method, url, **kwargs):
        calls.append((url, kwargs))
        parts = urlsplit(url)
        if parts.port != 5215:
            raise requests.exceptions.ConnectionError(f"Connection refused: {url}")
        resp = backend_client.get(parts.path, headers=kwargs.get('headers'))
        response = requests.Response()
        response.status_code = resp.status_code
        response._content = resp.data
        response.headers.update(dict(resp.headers))
        response.reason = resp.status.split(' ', 1)[1]
        response.url = url
        return response

    monkeypatch.setattr(requests.Session, 'request', fake_request)
    return calls


@pytest.fixture
def installed_interceptor(local_spans, monkeypatch):
    """A freshly installed interceptor reporting to ``local_spans``."""
    import sys
    import threading

    from client.interceptor import GlobalErrorInterceptor

    monkeypatch.setattr(sys, 'excepthook', sys.excepthook)
    monkeypatch.setattr(threading, 'excepthook', threading.excepthook)

    shown = []
    tracer, exporter = local_spans
    interceptor = GlobalErrorInterceptor(tracer=tracer, console=lambda *exc_info: shown.append(exc_info))
    interceptor.install()
    interceptor.shown = shown
    interceptor.exporter = exporter
    yield interceptor
    interceptor.uninstall()
