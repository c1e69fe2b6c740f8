# Client Service (Python) - action triggers for the Pathfinder error simulation API
from flask import Flask, abort, jsonify, request
from werkzeug.exceptions import HTTPException
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
import asyncio
import logging
import os

from client.actions import ActionBoard
from client.interceptor import install_interceptor
from client.signals import action_state_changed
from telemetry import configure_logging, current_trace_id, init_tracing

# Configuration
SERVICE_NAME = os.getenv('OTEL_SERVICE_NAME', 'pathfinder-client')
API_URL = os.getenv('API_URL', 'http://localhost:5215/api')
TIMEOUT_MS = float(os.getenv('TIMEOUT_MS', '10000'))
TIMEOUT_SECONDS = TIMEOUT_MS / 1000.0
CLIENT_ORIGIN = os.getenv('CLIENT_ORIGIN', 'http://localhost:4200')
JAEGER_UI_URL = os.getenv('JAEGER_UI_URL', 'http://localhost:16686')

configure_logging()
init_tracing(SERVICE_NAME)

logger = logging.getLogger(__name__)

# Registered once per process, before any action can run
interceptor = install_interceptor()
client_loop = asyncio.new_event_loop()
interceptor.watch_loop(client_loop)

board = ActionBoard(api_url=API_URL, timeout=TIMEOUT_SECONDS, origin=CLIENT_ORIGIN, loop=client_loop)

app = Flask(__name__)
FlaskInstrumentor().instrument_app(app)
if not RequestsInstrumentor().is_instrumented_by_opentelemetry:
    RequestsInstrumentor().instrument()


@action_state_changed.connect_via(board)
def render_action(sender, action):
    logger.info("[%s] %s %s", action['id'], action['status'], action['response'] or '')


@app.errorhandler(Exception)
def handle_uncaught(e):
    if isinstance(e, HTTPException):
        return jsonify({"error": e.name, "message": e.description, "traceId": current_trace_id()}), e.code

    interceptor.handle_error(e)
    body = {"error": type(e).__name__, "message": str(e), "traceId": current_trace_id()}
    action_id = (request.view_args or {}).get('action_id')
    if action_id in board:
        body["action"] = board.get(action_id)
    return jsonify(body), 500


# Health check
@app.route('/health')
def health_check():
    return jsonify({"status": "ok"})


@app.route('/actions')
def list_actions():
    return jsonify({
        "apiUrl": API_URL,
        "jaegerUrl": JAEGER_UI_URL,
        "clientActions": board.descriptors('client'),
        "serverActions": board.descriptors('server')
    })


@app.route('/actions/<action_id>')
def get_action(action_id):
    if action_id not in board:
        abort(404, description=f"Unknown action '{action_id}'")
    return jsonify(board.get(action_id))


# Invoke an action; ?wait=true blocks until an HTTP action completes
@app.route('/actions/<action_id>', methods=['POST'])
def invoke_action(action_id):
    if action_id not in board:
        abort(404, description=f"Unknown action '{action_id}'")

    future = board.invoke(action_id)
    if future is None:
        return jsonify(board.get(action_id))

    if request.args.get('wait', '').lower() in ('1', 'true', 'yes'):
        return jsonify(future.result())
    return jsonify(board.get(action_id)), 202


# Start server
if __name__ == '__main__':
    port = int(os.getenv('PORT', '5000'))
    app.run(host='0.0.0.0', port=port, threaded=True)
