"""Invalidation distributors."""

from .redis_distributor import RedisInvalidationDistributor

__all__ = ["RedisInvalidationDistributor"]
