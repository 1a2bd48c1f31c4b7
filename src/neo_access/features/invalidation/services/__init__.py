"""Invalidation services."""

from .invalidation_coordinator import InvalidationCoordinator

__all__ = ["InvalidationCoordinator"]
