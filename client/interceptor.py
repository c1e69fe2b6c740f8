"""Process-wide error interceptor for the client.

Registered once at startup. It owns three entry points that turn otherwise
unreported failures into ``error`` spans:

* ``handle_error`` is the top-level handler. It is installed as
  ``sys.excepthook`` and ``threading.excepthook`` and the client's Flask error
  handler calls it. After reporting, the exception is handed to the previous
  ``sys.excepthook`` so it still shows up on the console.
* ``on_unhandled_rejection`` is the exception handler of every event loop
  passed to ``watch_loop``; futures that fail without anyone retrieving the
  result end up here.
* ``on_resource_error`` listens on the ``resource-error`` signal for failed
  ``img``, ``script`` and ``link`` loads.

Neither listener changes what would have happened without it: the loop's
default handler still runs, and failed resource loads stay failed.
"""

import logging
import sys
import threading
import weakref

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from client.signals import resource_error
from telemetry import record_exception

logger = logging.getLogger(__name__)

RESOURCE_TAGS = frozenset(['img', 'script', 'link'])

_REPORTED_FLAG = '_pathfinder_reported'


def _mark_reported(exc):
    """True the first time an exception is seen, False afterwards."""
    if getattr(exc, _REPORTED_FLAG, False):
        return False
    try:
        setattr(exc, _REPORTED_FLAG, True)
    except AttributeError:
        pass
    return True


class GlobalErrorInterceptor:
    def __init__(self, tracer=None, console=None):
        self._tracer = tracer or trace.get_tracer('pathfinder-client')
        self._console = console
        self._lock = threading.Lock()
        self._installed = False
        self._previous_excepthook = None
        self._previous_threading_excepthook = None
        self._loops = weakref.WeakSet()

    @property
    def installed(self):
        return self._installed

    def install(self):
        """Attach the hooks; a second call is a no-op returning False."""
        with self._lock:
            if self._installed:
                return False
            self._previous_excepthook = sys.excepthook
            self._previous_threading_excepthook = threading.excepthook
            sys.excepthook = self._excepthook
            threading.excepthook = self._threading_excepthook
            resource_error.connect(self.on_resource_error, weak=False)
            self._installed = True
        logger.info("Global error interceptor installed")
        return True

    def uninstall(self):
        with self._lock:
            if not self._installed:
                return False
            if sys.excepthook == self._excepthook:
                sys.excepthook = self._previous_excepthook
            if threading.excepthook == self._threading_excepthook:
                threading.excepthook = self._previous_threading_excepthook
            resource_error.disconnect(self.on_resource_error)
            for loop in list(self._loops):
                loop.set_exception_handler(None)
            self._loops = weakref.WeakSet()
            self._installed = False
        return True

    def watch_loop(self, loop):
        if loop not in self._loops:
            loop.set_exception_handler(self.on_unhandled_rejection)
            self._loops.add(loop)

    def handle_error(self, exc):
        """Report an uncaught exception, then show it on the console.

        Returns False when the exception had already been reported.
        """
        if not self._report(exc):
            return False
        self._show(type(exc), exc, exc.__traceback__)
        return True

    def on_unhandled_rejection(self, loop, context):
        exc = context.get('exception')
        if exc is not None and _mark_reported(exc):
            span = self._tracer.start_span('unhandled-promise-rejection')
            record_exception(span, exc)
            span.end()
        loop.default_exception_handler(context)

    def on_resource_error(self, element, **kwargs):
        tag = (element.tag or '').lower()
        if tag not in RESOURCE_TAGS:
            return
        src = element.src or 'unknown'
        span = self._tracer.start_span('resource-load-failure')
        span.set_attribute('resource.type', tag)
        span.set_attribute('resource.src', src)
        span.set_status(Status(StatusCode.ERROR, f"Failed to load {tag}: {src}"))
        span.end()

    def _report(self, exc):
        if not _mark_reported(exc):
            return False
        span = self._tracer.start_span('uncaught-error')
        record_exception(span, exc)
        span.end()
        return True

    def _show(self, exc_type, exc, tb):
        console = self._console or self._previous_excepthook or sys.__excepthook__
        console(exc_type, exc, tb)

    def _excepthook(self, exc_type, exc, tb):
        if issubclass(exc_type, Exception) and not self._report(exc):
            return  # already reported and shown
        self._show(exc_type, exc, tb)

    def _threading_excepthook(self, args):
        if args.exc_value is not None and issubclass(args.exc_type, Exception):
            self._report(args.exc_value)
        previous = self._previous_threading_excepthook or threading.__excepthook__
        previous(args)


_interceptor = None
_install_lock = threading.Lock()


def install_interceptor(**kwargs):
    """Return the process interceptor, creating and installing it on first use."""
    global _interceptor
    with _install_lock:
        if _interceptor is None:
            _interceptor = GlobalErrorInterceptor(**kwargs)
            _interceptor.install()
        return _interceptor


def get_interceptor():
    return _interceptor
