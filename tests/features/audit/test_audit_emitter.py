"""Tests for audit events and emitters."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from neo_access.config.constants import AuditOutcome
from neo_access.features.audit.correlation import correlation_scope, get_correlation_id
from neo_access.features.audit.emitter import InMemoryAuditEmitter, LoggingAuditEmitter, emit_safely
from neo_access.features.audit.events import AuditEvent


def make_event(**overrides):
    fields = {
        "tenant_id": "t1",
        "user_id": "u1",
        "action": "delete",
        "resource_type": "users",
        "outcome": AuditOutcome.DENIED,
    }
    fields.update(overrides)
    return AuditEvent(**fields)


class TestCorrelation:
    """Test correlation id propagation into events."""

    def test_event_takes_scope_correlation_id(self):
        with correlation_scope("req-1") as correlation_id:
            assert correlation_id == "req-1"
            assert make_event().correlation_id == "req-1"
        assert get_correlation_id() is None

    def test_event_generates_correlation_id_outside_scope(self):
        first, second = make_event(), make_event()
        assert first.correlation_id
        assert first.correlation_id != second.correlation_id


class TestEmitters:
    """Test the provided emitters."""

    @pytest.mark.asyncio
    async def test_logging_emitter_writes_json(self):
        emitter = LoggingAuditEmitter()
        emitter._audit_logger = MagicMock()

        await emitter.emit(make_event(resource_id="u2", detail={"reason": "x"}))

        payload = json.loads(emitter._audit_logger.info.call_args.args[0])
        assert payload["outcome"] == "denied"
        assert payload["resource_id"] == "u2"
        assert payload["detail"] == {"reason": "x"}

    @pytest.mark.asyncio
    async def test_in_memory_emitter(self):
        emitter = InMemoryAuditEmitter()
        await emitter.emit(make_event())
        assert len(emitter.events) == 1
        emitter.clear()
        assert emitter.events == []

    @pytest.mark.asyncio
    async def test_emit_safely_swallows_sink_errors(self):
        emitter = AsyncMock()
        emitter.emit.side_effect = ConnectionError("sink down")

        with patch("neo_access.features.audit.emitter.logger") as mock_logger:
            await emit_safely(emitter, make_event())
        mock_logger.error.assert_called_once()
