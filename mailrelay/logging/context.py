"""Scoped logging context for queue jobs, workers, and token flows.

Fields pushed here are merged into every log record emitted inside the scope
by ``ContextualFilter``. Storage is a ``ContextVar`` so each worker thread keeps
its own job/worker identifiers.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("mailrelay_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields active in the current scope."""
    return LogContextVar.get().copy()


def push_log_context(**fields: Any) -> Token:
    """Merge fields into the current context.

    Fields whose value is None are skipped so optional identifiers can be passed
    through unconditionally.

    Args:
        **fields: Key-value pairs to add

    Returns:
        Token for ``pop_log_context``
    """
    merged = {**LogContextVar.get()}
    merged.update({key: value for key, value in fields.items() if value is not None})
    return LogContextVar.set(merged)


def pop_log_context(token: Token) -> None:
    """Restore the context captured by ``push_log_context``."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop every field (used by tests and at worker thread start)."""
    LogContextVar.set({})


class log_context:
    """Context manager that scopes logging fields.

    Example:
        >>> with log_context(job_id="3f2a...", worker_id="worker-1"):
        ...     logger.info("Delivering")  # record carries job_id and worker_id
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
