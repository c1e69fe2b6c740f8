"""Action catalog and the board that runs it.

Every action starts ``idle`` and moves to ``loading`` when invoked, then to
``success`` or ``error``. Nothing observes descriptor attributes, so each
transition is announced on the ``action-state-changed`` signal; a renderer
that does not listen simply shows stale state.
"""

import asyncio
import json
import logging
import sys
import threading
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Optional

import requests

from client import faults
from client.signals import action_state_changed
from client.transport import build_session

logger = logging.getLogger(__name__)

INLINE = 'inline'
HTTP = 'http'

ActionSpec = namedtuple('ActionSpec', ['id', 'label', 'description', 'type', 'mode', 'run'])


@dataclass
class ActionDescriptor:
    id: str
    label: str
    description: str
    type: str
    status: str = 'idle'
    response: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def server_call(path):
    def run(board):
        return board.api_get(path)
    return run


CLIENT_ACTIONS = (
    ActionSpec('js-exception', 'JS Exception', 'AttributeError: attribute access on None',
               'client', INLINE, faults.simulate_js_exception),
    ActionSpec('promise-rejection', 'Promise Rejection', 'Unhandled async rejection',
               'client', INLINE, faults.simulate_promise_rejection),
    ActionSpec('network-failure', 'Network Failure', 'Connection to unreachable host',
               'client', HTTP, faults.simulate_network_failure),
    ActionSpec('cors-failure', 'CORS Failure', 'Cross-origin request blocked',
               'client', HTTP, faults.simulate_cors_failure),
    ActionSpec('json-parse', 'JSON Parse Error', 'Invalid JSON string parsing',
               'client', INLINE, faults.simulate_json_parse_error),
    ActionSpec('resource-load', 'Resource Load Failure', 'Image from unreachable server',
               'client', INLINE, faults.simulate_resource_load_failure),
)

SERVER_ACTIONS = (
    ActionSpec('health', 'Health Check', 'Verify end-to-end trace (200 OK)',
               'server', HTTP, server_call('/health')),
    ActionSpec('unhandled', 'Unhandled Exception', 'AttributeError (500)',
               'server', HTTP, server_call('/errors/unhandled-exception')),
    ActionSpec('handled', 'Handled Exception', 'RuntimeError (500)',
               'server', HTTP, server_call('/errors/handled-exception')),
    ActionSpec('sql', 'Database Error', 'Simulated SQL connection failure',
               'server', HTTP, server_call('/errors/sql-error')),
    ActionSpec('timeout', 'Timeout', '30-second delay (exceeds client timeout)',
               'server', HTTP, server_call('/errors/timeout')),
    ActionSpec('cpu', 'CPU Spike', '3-second busy loop',
               'server', HTTP, server_call('/errors/cpu-spike')),
    ActionSpec('memory', 'Memory Spike', 'Allocate 500MB temporarily',
               'server', HTTP, server_call('/errors/memory-spike')),
    ActionSpec('dependency', 'Dependency Failure', 'HTTP call to unreachable service',
               'server', HTTP, server_call('/errors/dependency-failure')),
    ActionSpec('serialization', 'Serialization Error', 'Circular reference in JSON',
               'server', HTTP, server_call('/errors/serialization-error')),
    ActionSpec('auth', 'Auth Failure (401)', 'Missing/invalid token',
               'server', HTTP, server_call('/errors/auth-failure')),
    ActionSpec('forbidden', 'Forbidden (403)', 'Insufficient permissions',
               'server', HTTP, server_call('/errors/forbidden')),
    ActionSpec('slow', 'Slow Response', '5-second delay then 200 OK',
               'server', HTTP, server_call('/errors/slow-response')),
)

CATALOG = CLIENT_ACTIONS + SERVER_ACTIONS


def summarize_response(response):
    """Status and one-line summary for a completed HTTP action."""
    try:
        body = response.json()
    except ValueError:
        body = None
    trace_id = body.get('traceId') if isinstance(body, dict) else None

    if response.ok:
        if trace_id:
            return 'success', f"TraceId: {trace_id}"
        text = json.dumps(body) if body is not None else response.text
        return 'success', text[:100]

    message = body.get('message') if isinstance(body, dict) else None
    message = message or f"HTTP {response.status_code} {response.reason or ''}".strip()
    if trace_id:
        return 'error', f"{message} | TraceId: {trace_id}"
    return 'error', message


class ActionBoard:
    def __init__(self, api_url, timeout, origin, loop=None, catalog=CATALOG, max_workers=16):
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.origin = origin
        self.loop = loop or asyncio.new_event_loop()
        self.session = build_session([self.api_url])
        self._specs = {spec.id: spec for spec in catalog}
        self._descriptors = {
            spec.id: ActionDescriptor(spec.id, spec.label, spec.description, spec.type)
            for spec in catalog
        }
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='action')

    def __contains__(self, action_id):
        return action_id in self._specs

    def http_get(self, url, **kwargs):
        kwargs.setdefault('timeout', self.timeout)
        return self.session.get(url, **kwargs)

    def api_get(self, path):
        return self.http_get(f"{self.api_url}{path}")

    def get(self, action_id):
        with self._lock:
            return self._descriptors[action_id].to_dict()

    def descriptors(self, action_type=None):
        with self._lock:
            return [d.to_dict() for d in self._descriptors.values()
                    if action_type is None or d.type == action_type]

    def invoke(self, action_id):
        """Run an action.

        Inline faults run on the calling thread and return None; a fault
        that raises is re-raised after its descriptor is marked. HTTP
        actions return a Future resolving to the final descriptor.
        """
        spec = self._specs[action_id]
        self._set_status(action_id, 'loading')
        if spec.mode == INLINE:
            self._run_inline(spec)
            return None
        future = self._executor.submit(self._run_http, spec)
        future.add_done_callback(_surface_failure)
        return future

    def shutdown(self):
        self._executor.shutdown(wait=False)
        self.session.close()

    def _run_inline(self, spec):
        try:
            spec.run(self)
        except Exception as e:
            self._set_status(spec.id, 'error', str(e))
            raise
        # Nothing raised here; the fault was handed to a background reporter.
        self._set_status(spec.id, 'error', 'Exception thrown (check Jaeger)')

    def _run_http(self, spec):
        try:
            response = spec.run(self)
        except requests.exceptions.RequestException as e:
            logger.warning("Action %s failed: %s", spec.id, e)
            self._set_status(spec.id, 'error', str(e) or type(e).__name__)
            return self.get(spec.id)
        except Exception as e:
            self._set_status(spec.id, 'error', str(e))
            raise

        status, summary = summarize_response(response)
        self._set_status(spec.id, status, summary)
        return self.get(spec.id)

    def _set_status(self, action_id, status, response=None):
        with self._lock:
            descriptor = self._descriptors[action_id]
            descriptor.status = status
            descriptor.response = response
            snapshot = descriptor.to_dict()
        action_state_changed.send(self, action=snapshot)


def _surface_failure(future):
    # Worker failures other than HTTP errors go to the process-wide hook.
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        sys.excepthook(type(exc), exc, exc.__traceback__)
