"""
Run and request context carried through contextvars.
"""

import contextvars
import uuid
from typing import Optional

_run_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "run_id", default=None
)
_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def get_run_id() -> Optional[str]:
    """Get the current pipeline run ID from context."""
    return _run_id_var.get()


def get_request_id() -> Optional[str]:
    """Get the current HTTP request ID from context."""
    return _request_id_var.get()


def set_request_id(request_id: str) -> contextvars.Token:
    return _request_id_var.set(request_id)


def generate_run_id() -> str:
    return f"run-{uuid.uuid4().hex[:16]}"


def generate_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:16]}"


class RunContext:
    """
    Context manager scoping log lines to one pipeline run.

    Usage:
        with RunContext() as ctx:
            run_pipeline(...)  # every log line carries ctx.run_id
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id or generate_run_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "RunContext":
        self._token = _run_id_var.set(self.run_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _run_id_var.reset(self._token)


class RequestContext:
    """Context manager for request-scoped operations in the API."""

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or generate_request_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "RequestContext":
        self._token = set_request_id(self.request_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_id_var.reset(self._token)
