"""Failure modes reproduced by the backend.

Each function reproduces one observable condition, annotates its own span
and returns a ``SimulationOutcome``. ``unhandled_exception`` is the one case
that lets its error escape: it exists to show that the top-level error
handler still produces the standard envelope.
"""

import gc
import json
import logging
import math
import os
import random
import time

import requests
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from backend.outcomes import OutcomeKind, SimulationOutcome
from telemetry import current_trace_id, record_exception

logger = logging.getLogger(__name__)
tracer = trace.get_tracer('pathfinder-api')

TIMEOUT_DELAY_SECONDS = float(os.getenv('TIMEOUT_DELAY_SECONDS', '30'))
SLOW_RESPONSE_SECONDS = float(os.getenv('SLOW_RESPONSE_SECONDS', '5'))
CPU_SPIKE_SECONDS = float(os.getenv('CPU_SPIKE_SECONDS', '3'))
MEMORY_CHUNK_MB = int(os.getenv('MEMORY_CHUNK_MB', '10'))
MEMORY_CHUNKS = int(os.getenv('MEMORY_CHUNKS', '50'))
DEPENDENCY_URL = os.getenv('DEPENDENCY_URL', 'http://unreachable-service.local:9999/api/data')
DEPENDENCY_TIMEOUT_SECONDS = float(os.getenv('DEPENDENCY_TIMEOUT_SECONDS', '5'))

DB_CONNECTION_ERROR = (
    "Database connection failed: Unable to connect to server 'db-server:5432'. "
    "Connection refused."
)


def _failed(kind, error, exc, span):
    record_exception(span, exc)
    return SimulationOutcome(kind, str(exc), trace_id=current_trace_id(), error=error)


def unhandled_exception():
    with tracer.start_as_current_span('simulate-unhandled-exception'):
        logger.info("Triggering unhandled AttributeError")
        value = None
        value.upper()  # AttributeError, left for the top-level handler


def handled_exception():
    with tracer.start_as_current_span('simulate-handled-exception') as span:
        try:
            raise RuntimeError("Simulated handled exception")
        except RuntimeError as e:
            logger.error("Handled exception occurred", exc_info=True)
            return _failed(OutcomeKind.HANDLED_ERROR, 'HandledException', e, span)


def sql_error():
    with tracer.start_as_current_span('simulate-sql-error') as span:
        try:
            raise ConnectionRefusedError(DB_CONNECTION_ERROR)
        except ConnectionRefusedError as e:
            span.set_attribute('db.system', 'postgresql')
            span.set_attribute('db.statement', 'SELECT * FROM users WHERE id = @id')
            logger.error("Database error occurred", exc_info=True)
            return _failed(OutcomeKind.HANDLED_ERROR, 'DatabaseError', e, span)


def timeout():
    with tracer.start_as_current_span('simulate-timeout') as span:
        span.set_attribute('timeout.duration_ms', int(TIMEOUT_DELAY_SECONDS * 1000))
        logger.warning("Starting %.0f-second timeout simulation", TIMEOUT_DELAY_SECONDS)

        time.sleep(TIMEOUT_DELAY_SECONDS)

        return SimulationOutcome(
            OutcomeKind.TIMEOUT, "Completed after timeout delay", trace_id=current_trace_id())


def cpu_spike():
    with tracer.start_as_current_span('simulate-cpu-spike') as span:
        span.set_attribute('cpu.duration_seconds', CPU_SPIKE_SECONDS)
        logger.warning("Starting CPU spike simulation (%.0f seconds)", CPU_SPIKE_SECONDS)

        start = time.perf_counter()
        while time.perf_counter() - start < CPU_SPIKE_SECONDS:
            math.sqrt(random.random())
        duration_ms = int((time.perf_counter() - start) * 1000)

        span.set_attribute('cpu.actual_duration_ms', duration_ms)
        logger.info("CPU spike completed after %dms", duration_ms)

        return SimulationOutcome(
            OutcomeKind.RESOURCE_SPIKE,
            "CPU spike simulation completed",
            trace_id=current_trace_id(),
            extra={"durationMs": duration_ms},
        )


def memory_spike():
    with tracer.start_as_current_span('simulate-memory-spike') as span:
        logger.warning("Starting memory spike simulation")

        chunk = MEMORY_CHUNK_MB * 1024 * 1024
        data = []
        try:
            for _ in range(MEMORY_CHUNKS):
                # bytes * n writes every page, so the block is really committed
                data.append(b'\x01' * chunk)
            allocated_mb = len(data) * MEMORY_CHUNK_MB
            span.set_attribute('memory.allocated_mb', allocated_mb)
            logger.info("Allocated %dMB", allocated_mb)
        finally:
            data.clear()
            gc.collect()

        return SimulationOutcome(
            OutcomeKind.RESOURCE_SPIKE,
            "Memory spike simulation completed",
            trace_id=current_trace_id(),
            extra={"allocatedMb": allocated_mb},
        )


def dependency_failure():
    with tracer.start_as_current_span('simulate-dependency-failure') as span:
        span.set_attribute('dependency.url', DEPENDENCY_URL)
        logger.warning("Calling unreachable dependency %s", DEPENDENCY_URL)

        try:
            response = requests.get(DEPENDENCY_URL, timeout=DEPENDENCY_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error("Dependency call failed", exc_info=True)
            return _failed(OutcomeKind.DEPENDENCY_ERROR, 'DependencyFailure', e, span)

        # Something answered on the unreachable address; still not a usable dependency.
        exc = requests.exceptions.ConnectionError(
            f"Unexpected response from {DEPENDENCY_URL}: HTTP {response.status_code}")
        logger.error("Dependency call returned unexpectedly")
        return _failed(OutcomeKind.DEPENDENCY_ERROR, 'DependencyFailure', exc, span)


def serialization_error():
    with tracer.start_as_current_span('simulate-serialization-error') as span:
        logger.warning("Triggering serialization error with circular reference")

        a = {"name": "A"}
        b = {"name": "B", "ref": a}
        a["ref"] = b

        try:
            json.dumps(a)
        except ValueError as e:
            logger.error("Serialization failed", exc_info=True)
            return _failed(OutcomeKind.HANDLED_ERROR, 'SerializationError', e, span)


def auth_failure():
    with tracer.start_as_current_span('simulate-auth-failure') as span:
        span.set_attribute('auth.type', 'Bearer')
        span.set_status(Status(StatusCode.ERROR, 'Unauthorized'))
        logger.warning("Simulating authentication failure (401)")

        return SimulationOutcome(
            OutcomeKind.AUTH_ERROR,
            "Invalid or missing authentication token",
            trace_id=current_trace_id(),
            error='Unauthorized',
        )


def forbidden():
    with tracer.start_as_current_span('simulate-forbidden') as span:
        span.set_attribute('auth.type', 'Bearer')
        span.set_attribute('auth.required_role', 'Admin')
        span.set_status(Status(StatusCode.ERROR, 'Forbidden'))
        logger.warning("Simulating authorization failure (403)")

        return SimulationOutcome(
            OutcomeKind.FORBIDDEN_ERROR,
            "You do not have permission to access this resource. Required role: Admin",
            trace_id=current_trace_id(),
            error='Forbidden',
        )


def slow_response():
    with tracer.start_as_current_span('simulate-slow-response') as span:
        delay_ms = int(SLOW_RESPONSE_SECONDS * 1000)
        span.set_attribute('delay.duration_ms', delay_ms)
        logger.info("Starting slow response (%.0f-second delay)", SLOW_RESPONSE_SECONDS)

        time.sleep(SLOW_RESPONSE_SECONDS)

        logger.info("Slow response completed")
        return SimulationOutcome(
            OutcomeKind.SLOW,
            f"Slow response completed after {SLOW_RESPONSE_SECONDS:g} seconds",
            trace_id=current_trace_id(),
            extra={"delayMs": delay_ms},
        )
