"""HTTP session used by the client for every outgoing call.

The requests instrumentation injects trace headers into all requests. Only
the API is meant to join the client's traces, so the adapter drops those
headers again for any other host; the client span for the call is still
recorded.
"""

import requests
from requests.adapters import HTTPAdapter

TRACE_HEADERS = ('traceparent', 'tracestate', 'baggage')


class PropagationAdapter(HTTPAdapter):
    def __init__(self, propagate_urls, **kwargs):
        self.propagate_urls = tuple(propagate_urls)
        super().__init__(**kwargs)

    def should_propagate(self, url):
        return url.startswith(self.propagate_urls)

    def send(self, request, **kwargs):
        if not self.should_propagate(request.url):
            for header in TRACE_HEADERS:
                request.headers.pop(header, None)
        return super().send(request, **kwargs)


def build_session(propagate_urls):
    session = requests.Session()
    adapter = PropagationAdapter(propagate_urls)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session
