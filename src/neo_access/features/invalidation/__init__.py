"""Invalidation feature for neo-access.

- entities/: grant-change events, results, metrics and distributor protocol
- services/: the invalidation coordinator
- distributors/: cross-process broadcast over Redis
"""

from .entities import (
    GrantChangeEvent,
    InvalidationResult,
    InvalidationMetrics,
    InvalidationDistributor,
)
from .services import InvalidationCoordinator
from .distributors import RedisInvalidationDistributor

__all__ = [
    "GrantChangeEvent",
    "InvalidationResult",
    "InvalidationMetrics",
    "InvalidationDistributor",
    "InvalidationCoordinator",
    "RedisInvalidationDistributor",
]
