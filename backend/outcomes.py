"""Result type returned by every simulation handler.

A handler never builds its JSON by hand: it returns a ``SimulationOutcome``
and the route renders it. Error kinds render as the uniform envelope
``{error, message, traceId}``; the others as ``{message, traceId, ...}``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from flask import jsonify


class OutcomeKind(Enum):
    SUCCESS = ('success', 200)
    HANDLED_ERROR = ('handled-error', 500)
    UNHANDLED_ERROR = ('unhandled-error', 500)
    DEPENDENCY_ERROR = ('dependency-error', 502)
    AUTH_ERROR = ('auth-error', 401)
    FORBIDDEN_ERROR = ('forbidden-error', 403)
    TIMEOUT = ('timeout', 200)
    SLOW = ('slow', 200)
    RESOURCE_SPIKE = ('resource-spike', 200)

    def __init__(self, label, status):
        self.label = label
        self.status = status

    @property
    def is_error(self):
        return self.status >= 400


@dataclass
class SimulationOutcome:
    kind: OutcomeKind
    message: Optional[str]
    trace_id: Optional[str] = None
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> int:
        return self.kind.status

    def body(self) -> Dict[str, Any]:
        if self.kind.is_error:
            return error_envelope(self.error or self.kind.label, self.message, self.trace_id)
        body = {} if self.message is None else {"message": self.message}
        body.update(self.extra)
        body["traceId"] = self.trace_id
        return body

    def to_response(self):
        return jsonify(self.body()), self.status


def error_envelope(error, message, trace_id):
    return {"error": error, "message": message, "traceId": trace_id}
