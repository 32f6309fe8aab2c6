"""Structured failures raised by the pool and booking operations.

Every error is recoverable at the caller boundary; the HTTP layer renders
them with ``to_dict()`` and ``status_code`` instead of letting them escape.
"""
from typing import Any, Dict, Optional


class PoolError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        out = {"success": False, "error": self.message, "kind": self.kind}
        out.update(self.context)
        return out


class NotFound(PoolError):
    kind = "not_found"
    status_code = 404


class InvalidState(PoolError):
    kind = "invalid_state"


class CapacityExceeded(PoolError):
    kind = "capacity_exceeded"


class MissingField(PoolError):
    kind = "missing_field"

    def __init__(self, message: str, required=None, missing=None, **context: Any):
        if required is not None:
            context["required"] = list(required)
        if missing is not None:
            context["missing"] = list(missing)
        super().__init__(message, **context)


def require_fields(payload: Dict[str, Any], required, message: Optional[str] = None):
    missing = [k for k in required if payload.get(k) is None or payload.get(k) == ""]
    if missing:
        raise MissingField(message or "missing required fields", required=required, missing=missing)
