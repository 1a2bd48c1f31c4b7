"""Tenant context for a unit of work.

The active tenant lives in a ``ContextVar`` so each asyncio task (and each
thread) sees its own value. Every grant-store query and every resolution
requires an active tenant; the absence of one is a programming error and
raises ``MissingTenantContext`` rather than defaulting to any tenant.

Usage:
    async def handler():
        return await with_tenant("t1", resolver.check, "t1", "u1", "read", "documents")

    with tenant_scope("t1"):
        ...
"""

import inspect
import logging
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Union

from ...core.exceptions import MissingTenantContext, TenantContextViolation, ValidationError
from ...core.value_objects import validate_identifier

logger = logging.getLogger(__name__)


tenant_id_var: ContextVar[Optional[str]] = ContextVar("neo_access_tenant_id", default=None)


def get_current_tenant_id() -> Optional[str]:
    """Return the active tenant id, or None outside any tenant scope."""
    return tenant_id_var.get()


def require_tenant_id(operation: Optional[str] = None) -> str:
    """Return the active tenant id or raise MissingTenantContext."""
    tenant_id = tenant_id_var.get()
    if tenant_id is None:
        raise MissingTenantContext(operation)
    return tenant_id


def ensure_tenant(tenant_id: str, operation: Optional[str] = None) -> str:
    """Check that ``tenant_id`` is the active tenant.

    Raises:
        MissingTenantContext: no tenant context is active
        TenantContextViolation: a different tenant is active
    """
    active = require_tenant_id(operation)
    if tenant_id != active:
        raise TenantContextViolation(requested_tenant_id=tenant_id, active_tenant_id=active)
    return active


@contextmanager
def tenant_scope(tenant_id: str) -> Iterator[str]:
    """Make ``tenant_id`` the active tenant for the enclosed block.

    The previous value is restored on every exit path, including exceptions
    and task cancellation, so nested scopes unwind correctly.
    """
    validated = validate_identifier(tenant_id, "Tenant ID")
    token = tenant_id_var.set(validated)
    try:
        yield validated
    finally:
        tenant_id_var.reset(token)


async def with_tenant(
    tenant_id: str,
    fn: Callable[..., Union[Any, Awaitable[Any]]],
    *args,
    **kwargs
) -> Any:
    """Run ``fn`` with ``tenant_id`` as the active tenant.

    ``fn`` may be a plain callable or a coroutine function.
    """
    with tenant_scope(tenant_id):
        result = fn(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


@dataclass
class TenantContextMetrics:
    """Counters for tenant context establishment."""

    switch_count: int = 0
    failure_count: int = 0
    total_switch_seconds: float = 0.0
    last_tenant_id: Optional[str] = None
    per_tenant: Dict[str, int] = field(default_factory=dict)

    @property
    def average_switch_seconds(self) -> float:
        """Average time spent establishing a context."""
        return self.total_switch_seconds / self.switch_count if self.switch_count else 0.0

    @property
    def failure_rate(self) -> float:
        """Share of establishment attempts that failed."""
        attempts = self.switch_count + self.failure_count
        return self.failure_count / attempts if attempts else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize metrics."""
        return {
            "switch_count": self.switch_count,
            "failure_count": self.failure_count,
            "average_switch_seconds": self.average_switch_seconds,
            "failure_rate": self.failure_rate,
            "last_tenant_id": self.last_tenant_id,
            "per_tenant": dict(self.per_tenant),
        }


class TenantContext:
    """Tenant context service with switching metrics.

    Wraps ``tenant_scope``/``with_tenant`` and records how often and how fast
    contexts are established. One instance is typically owned by the engine.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self._metrics = TenantContextMetrics()
        self._lock = threading.Lock()

    @property
    def metrics(self) -> TenantContextMetrics:
        """Switching metrics collected so far."""
        return self._metrics

    @staticmethod
    def current() -> Optional[str]:
        """Active tenant id, if any."""
        return get_current_tenant_id()

    @staticmethod
    def require(operation: Optional[str] = None) -> str:
        """Active tenant id or MissingTenantContext."""
        return require_tenant_id(operation)

    @staticmethod
    def ensure(tenant_id: str, operation: Optional[str] = None) -> str:
        """Check ``tenant_id`` against the active tenant."""
        return ensure_tenant(tenant_id, operation)

    @contextmanager
    def scope(self, tenant_id: str) -> Iterator[str]:
        """Establish a tenant scope and record the establishment time."""
        started = self._clock()
        try:
            validated = validate_identifier(tenant_id, "Tenant ID")
        except ValidationError:
            with self._lock:
                self._metrics.failure_count += 1
            logger.warning(f"Failed to establish tenant context for {tenant_id!r}")
            raise

        with tenant_scope(validated) as active:
            self._record_switch(active, self._clock() - started)
            yield active

    async def run(
        self,
        tenant_id: str,
        fn: Callable[..., Union[Any, Awaitable[Any]]],
        *args,
        **kwargs
    ) -> Any:
        """Metered ``with_tenant``."""
        with self.scope(tenant_id):
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

    def _record_switch(self, tenant_id: str, elapsed: float) -> None:
        with self._lock:
            self._metrics.switch_count += 1
            self._metrics.total_switch_seconds += elapsed
            self._metrics.last_tenant_id = tenant_id
            self._metrics.per_tenant[tenant_id] = self._metrics.per_tenant.get(tenant_id, 0) + 1
