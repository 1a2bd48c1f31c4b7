"""Correlation id propagation.

A correlation id ties together every audit event and log line produced while
serving one request. It travels in a ContextVar, so it follows the request
across awaits and into tasks spawned from it.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional


correlation_id_var: ContextVar[Optional[str]] = ContextVar("neo_access_correlation_id", default=None)


def new_correlation_id() -> str:
    """Generate a fresh correlation id."""
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Correlation id of the current request, if any."""
    return correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id (generated when omitted) for the enclosed block."""
    value = correlation_id or new_correlation_id()
    token = correlation_id_var.set(value)
    try:
        yield value
    finally:
        correlation_id_var.reset(token)
