"""Client-side fault injection.

None of these touch the backend. They raise (or leak) the failure and leave
the reporting to the global error interceptor; network faults go through
``requests``, so the outgoing call itself is traced by the requests
instrumentation.
"""

import json
from collections import namedtuple

import requests

from client.signals import resource_error

NETWORK_FAILURE_URL = 'http://localhost:9999/does-not-exist'
CORS_FAILURE_URL = 'https://www.google.com/'
BROKEN_IMAGE_URL = 'http://localhost:9999/nonexistent-image.png'

# Stand-in for the DOM element whose load failed
ResourceElement = namedtuple('ResourceElement', ['tag', 'src'])


class CrossOriginBlocked(requests.exceptions.RequestException):
    """The response did not allow the requesting origin to read it."""


def cross_origin_get(url, origin, session=requests, **kwargs):
    """GET ``url`` the way a browser page on ``origin`` would.

    The request goes out with an ``Origin`` header; unless the response names
    that origin (or ``*``) in ``Access-Control-Allow-Origin``, the body is
    withheld and ``CrossOriginBlocked`` is raised.
    """
    headers = dict(kwargs.pop('headers', None) or {})
    headers['Origin'] = origin
    response = session.get(url, headers=headers, **kwargs)

    allowed = response.headers.get('Access-Control-Allow-Origin')
    if allowed not in ('*', origin):
        raise CrossOriginBlocked(
            f"Access to {url} from origin '{origin}' has been blocked by CORS policy: "
            "No 'Access-Control-Allow-Origin' header is present on the requested resource.",
            response=response,
        )
    return response


def load_resource(element, timeout, session=requests):
    """Fetch a referenced resource; failures are published, never raised."""
    try:
        response = session.get(element.src, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        resource_error.send(element, error=e)
        return False
    return True


def simulate_js_exception(board):
    obj = None
    obj.property


def simulate_promise_rejection(board):
    future = board.loop.create_future()
    future.set_exception(RuntimeError('Simulated unhandled promise rejection'))
    # Dropped unretrieved: the loop's exception handler gets it on finalization.
    del future


def simulate_network_failure(board):
    return board.http_get(NETWORK_FAILURE_URL)


def simulate_cors_failure(board):
    return cross_origin_get(CORS_FAILURE_URL, board.origin, session=board.session, timeout=board.timeout)


def simulate_json_parse_error(board):
    json.loads('{invalid json!!!}')


def simulate_resource_load_failure(board):
    load_resource(ResourceElement('img', BROKEN_IMAGE_URL), timeout=board.timeout, session=board.session)
