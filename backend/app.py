from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
import logging
import os
from datetime import datetime, timezone

from backend import simulations
from backend.outcomes import OutcomeKind, SimulationOutcome, error_envelope
from telemetry import configure_logging, current_trace_id, init_tracing, record_exception

# Configuration
SERVICE_NAME = os.getenv('OTEL_SERVICE_NAME', 'pathfinder-api')
CORS_ORIGINS = [o.strip() for o in os.getenv(
    'CORS_ORIGINS', 'http://localhost:4200,http://localhost:4201').split(',') if o.strip()]

configure_logging()
init_tracing(SERVICE_NAME)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer('pathfinder-api')

app = Flask(__name__)
FlaskInstrumentor().instrument_app(app)
if not RequestsInstrumentor().is_instrumented_by_opentelemetry:
    RequestsInstrumentor().instrument()


# CORS for the browser UI origins
@app.after_request
def add_cors_headers(response):
    origin = request.headers.get('Origin')
    if origin and origin in CORS_ORIGINS:
        response.headers['Access-Control-Allow-Origin'] = origin
        response.headers['Access-Control-Allow-Credentials'] = 'true'
        response.headers['Access-Control-Allow-Headers'] = request.headers.get(
            'Access-Control-Request-Headers', '*')
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, DELETE, OPTIONS'
        response.headers.add('Vary', 'Origin')
    return response


# Top-level handler: the only place an escaped exception becomes a response
@app.errorhandler(Exception)
def handle_unhandled_exception(e):
    if isinstance(e, HTTPException):
        return jsonify(error_envelope(e.name, e.description, current_trace_id())), e.code

    record_exception(trace.get_current_span(), e)
    logger.error("Unhandled exception on %s", request.path, exc_info=e)

    return SimulationOutcome(
        OutcomeKind.UNHANDLED_ERROR, str(e), trace_id=current_trace_id(), error=type(e).__name__
    ).to_response()


# Health check endpoint
@app.route('/api/health')
def health_check():
    with tracer.start_as_current_span('health-check') as span:
        span.set_attribute('health.status', 'ok')
        return SimulationOutcome(OutcomeKind.SUCCESS, None, trace_id=current_trace_id(), extra={
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }).to_response()


# Error simulation endpoints
@app.route('/api/errors/unhandled-exception')
def unhandled_exception():
    simulations.unhandled_exception()
    return jsonify({})  # never reached


@app.route('/api/errors/handled-exception')
def handled_exception():
    return simulations.handled_exception().to_response()


@app.route('/api/errors/sql-error')
def sql_error():
    return simulations.sql_error().to_response()


@app.route('/api/errors/timeout')
def timeout():
    return simulations.timeout().to_response()


@app.route('/api/errors/cpu-spike')
def cpu_spike():
    return simulations.cpu_spike().to_response()


@app.route('/api/errors/memory-spike')
def memory_spike():
    return simulations.memory_spike().to_response()


@app.route('/api/errors/dependency-failure')
def dependency_failure():
    return simulations.dependency_failure().to_response()


@app.route('/api/errors/serialization-error')
def serialization_error():
    return simulations.serialization_error().to_response()


@app.route('/api/errors/auth-failure')
def auth_failure():
    return simulations.auth_failure().to_response()


@app.route('/api/errors/forbidden')
def forbidden():
    return simulations.forbidden().to_response()


@app.route('/api/errors/slow-response')
def slow_response():
    return simulations.slow_response().to_response()


# Start the server
if __name__ == '__main__':
    port = int(os.getenv('PORT', '5215'))
    app.run(host='0.0.0.0', port=port, threaded=True)
