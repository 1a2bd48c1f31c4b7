"""Audit feature: events, emitters and correlation ids."""

from .correlation import (
    correlation_id_var,
    correlation_scope,
    get_correlation_id,
    new_correlation_id,
)
from .events import AuditEvent
from .emitter import AuditEmitter, LoggingAuditEmitter, InMemoryAuditEmitter, emit_safely

__all__ = [
    "correlation_id_var",
    "correlation_scope",
    "get_correlation_id",
    "new_correlation_id",
    "AuditEvent",
    "AuditEmitter",
    "LoggingAuditEmitter",
    "InMemoryAuditEmitter",
    "emit_safely",
]
