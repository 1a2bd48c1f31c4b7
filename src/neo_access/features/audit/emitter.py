"""Audit emitters.

The audit subsystem itself is external; the access layer only needs
somewhere to send events. ``LoggingAuditEmitter`` writes each event as one
JSON line on the ``neo_access.audit`` logger, which ``LoggingConfig`` routes
to its own handler.
"""

import json
import logging
from abc import abstractmethod
from typing import List, Protocol, runtime_checkable

from ...config.logging_config import AUDIT_LOGGER_NAME
from .events import AuditEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class AuditEmitter(Protocol):
    """Protocol for audit event sinks."""

    @abstractmethod
    async def emit(self, event: AuditEvent) -> None:
        """Record an audit event."""
        ...


class LoggingAuditEmitter:
    """Writes audit events to the audit logger as JSON."""

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME):
        self._audit_logger = logging.getLogger(logger_name)

    async def emit(self, event: AuditEvent) -> None:
        self._audit_logger.info(json.dumps(event.to_dict(), default=str, sort_keys=True))


class InMemoryAuditEmitter:
    """Collects events in a list. Useful in development and tests."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def clear(self) -> None:
        self.events.clear()


async def emit_safely(emitter: AuditEmitter, event: AuditEvent) -> None:
    """Emit an event; failures are logged and never propagate to the caller."""
    try:
        await emitter.emit(event)
    except Exception as e:
        logger.error(
            f"Audit emission failed for {event.action} on {event.resource_type} "
            f"(tenant {event.tenant_id}, correlation {event.correlation_id}): {e}"
        )
