"""Grant store implementations."""

from .memory_grant_store import InMemoryGrantStore
from .asyncpg_grant_store import AsyncPGGrantStore

__all__ = [
    "InMemoryGrantStore",
    "AsyncPGGrantStore",
]
