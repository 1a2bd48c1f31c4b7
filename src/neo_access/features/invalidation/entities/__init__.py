"""Invalidation entities and protocols."""

from .events import GrantChangeEvent, InvalidationResult
from .metrics import InvalidationMetrics
from .protocols import InvalidationDistributor, RemoteEventHandler

__all__ = [
    "GrantChangeEvent",
    "InvalidationResult",
    "InvalidationMetrics",
    "InvalidationDistributor",
    "RemoteEventHandler",
]
