"""Resolution cache for effective permission sets.

Entries are keyed by the composite ``(tenant_id, user_id)`` and never shared
across tenants. Each entry has a TTL (purged lazily on read and by a
periodic sweep) and the cache is bounded with LRU eviction.

Stale-write protection: a resolver takes ``version()`` before it queries the
grant store and hands the token back to ``put``. Every eviction stamps the
key (or tenant) with a new generation, and a put carrying a token older than
that stamp is dropped. A resolution that started before a revocation can
therefore never re-insert the revoked grant.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Set, Tuple, Any, TYPE_CHECKING

from ...config.constants import CacheDefaults
from ...core.exceptions import CacheError

if TYPE_CHECKING:
    from ..permissions.entities.effective import EffectivePermissionSet

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


@dataclass
class ResolutionCacheEntry:
    """Cached permission set with expiry on the cache clock."""

    value: "EffectivePermissionSet"
    created_at: float
    expires_at: float
    version: int

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    """Resolution cache counters."""

    size: int = 0
    max_entries: int = 0
    hits: int = 0
    misses: int = 0
    puts: int = 0
    evictions: int = 0
    capacity_evictions: int = 0
    expirations: int = 0
    stale_puts_rejected: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 4),
            "puts": self.puts,
            "evictions": self.evictions,
            "capacity_evictions": self.capacity_evictions,
            "expirations": self.expirations,
            "stale_puts_rejected": self.stale_puts_rejected,
        }


class ResolutionCache:
    """In-process TTL + LRU cache of EffectivePermissionSet.

    All mutation happens under a short asyncio lock. Grant store queries are
    never made while holding it.
    """

    def __init__(
        self,
        ttl_seconds: float = CacheDefaults.TTL_SECONDS,
        max_entries: int = CacheDefaults.MAX_ENTRIES,
        sweep_interval_seconds: float = CacheDefaults.SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        eviction_record_seconds: Optional[float] = None
    ):
        """Initialize the cache.

        Args:
            ttl_seconds: Default entry TTL
            max_entries: LRU bound
            sweep_interval_seconds: Interval of the background sweep
            clock: Monotonic clock, injectable for tests
            eviction_record_seconds: How long eviction stamps are kept before
                being folded into the global floor (defaults to the TTL). Folding
                happens on every eviction and sweep, and at most ``max_entries``
                stamps are kept per kind, so the sweeper is not required.
        """
        if ttl_seconds <= 0:
            raise CacheError("Cache TTL must be positive")
        if max_entries <= 0:
            raise CacheError("Cache max_entries must be positive")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.sweep_interval_seconds = sweep_interval_seconds
        self.eviction_record_seconds = (
            eviction_record_seconds if eviction_record_seconds is not None else ttl_seconds
        )
        self._clock = clock

        self._entries: "OrderedDict[CacheKey, ResolutionCacheEntry]" = OrderedDict()
        self._tenant_index: Dict[str, Set[str]] = {}

        # Eviction generations: key/tenant -> (generation, stamped_at)
        self._generation = 0
        self._floor = 0
        self._key_evictions: Dict[CacheKey, Tuple[int, float]] = {}
        self._tenant_evictions: Dict[str, Tuple[int, float]] = {}

        self._stats = CacheStats(max_entries=max_entries)
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    # Lifecycle

    async def start(self) -> None:
        """Start the periodic sweep task."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"Resolution cache sweeper started (interval {self.sweep_interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the periodic sweep task."""
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                removed = await self.sweep()
                if removed:
                    logger.debug(f"Resolution cache sweep removed {removed} expired entries")
            except CacheError as e:
                logger.warning(f"Resolution cache sweep failed: {e}")

    # Versioning

    def version(self, tenant_id: str, user_id: str) -> int:
        """Token to pass to ``put`` for stale-write protection."""
        return self._generation

    def _is_stale(self, key: CacheKey, version: int) -> bool:
        if version < self._floor:
            return True
        stamp = self._key_evictions.get(key)
        if stamp is not None and stamp[0] > version:
            return True
        tenant_stamp = self._tenant_evictions.get(key[0])
        return tenant_stamp is not None and tenant_stamp[0] > version

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    # Reads

    async def get(self, tenant_id: str, user_id: str) -> Optional["EffectivePermissionSet"]:
        """Cached set for (tenant, user), or None on miss or expiry."""
        key = (tenant_id, user_id)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired(self._clock()):
                self._remove(key)
                self._stats.expirations += 1
                self._stats.misses += 1
                return None

            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry.value

    async def contains(self, tenant_id: str, user_id: str) -> bool:
        """Whether a live entry exists, without touching LRU order or stats."""
        async with self._lock:
            entry = self._entries.get((tenant_id, user_id))
            return entry is not None and not entry.is_expired(self._clock())

    # Writes

    async def put(
        self,
        tenant_id: str,
        user_id: str,
        value: "EffectivePermissionSet",
        ttl: Optional[float] = None,
        version: Optional[int] = None
    ) -> bool:
        """Store a set. Returns False if the put was dropped.

        Concurrent puts are last-writer-wins. A put whose ``version`` predates
        an eviction of the key or its tenant is dropped.
        """
        if value.tenant_id != tenant_id or value.user_id != user_id:
            raise CacheError(
                "Permission set does not belong to the cache key",
                details={"key": [tenant_id, user_id], "set": [value.tenant_id, value.user_id]},
            )

        ttl = self.ttl_seconds if ttl is None else min(ttl, self.ttl_seconds)
        if ttl <= 0:
            return False

        key = (tenant_id, user_id)
        async with self._lock:
            if version is not None and self._is_stale(key, version):
                self._stats.stale_puts_rejected += 1
                logger.debug(f"Dropped stale cache put for user {user_id} in tenant {tenant_id}")
                return False

            now = self._clock()
            self._entries[key] = ResolutionCacheEntry(
                value=value,
                created_at=now,
                expires_at=now + ttl,
                version=self._generation if version is None else version,
            )
            self._entries.move_to_end(key)
            self._tenant_index.setdefault(tenant_id, set()).add(user_id)
            self._stats.puts += 1

            while len(self._entries) > self.max_entries:
                oldest_key = next(iter(self._entries))
                self._remove(oldest_key)
                self._stats.capacity_evictions += 1
            return True

    async def evict(self, tenant_id: str, user_id: str) -> bool:
        """Evict one entry. Idempotent; returns whether an entry was present."""
        async with self._lock:
            return self._evict_locked((tenant_id, user_id))

    async def evict_many(self, tenant_id: str, user_ids: Iterable[str]) -> int:
        """Evict several users of one tenant. Returns entries actually removed."""
        async with self._lock:
            return sum(1 for user_id in user_ids if self._evict_locked((tenant_id, user_id)))

    async def evict_tenant(self, tenant_id: str) -> int:
        """Evict every entry of a tenant. Returns entries removed."""
        async with self._lock:
            self._stamp(self._tenant_evictions, tenant_id)
            users = self._tenant_index.pop(tenant_id, set())
            for user_id in users:
                self._entries.pop((tenant_id, user_id), None)
            self._stats.evictions += len(users)
            if users:
                logger.debug(f"Evicted {len(users)} cached permission sets for tenant {tenant_id}")
            return len(users)

    async def clear(self) -> None:
        """Drop all entries. Puts from resolutions already in flight are dropped too."""
        async with self._lock:
            self._entries.clear()
            self._tenant_index.clear()
            self._key_evictions.clear()
            self._tenant_evictions.clear()
            self._floor = self._next_generation()

    async def sweep(self) -> int:
        """Remove expired entries and fold old eviction stamps into the floor."""
        async with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._remove(key)
            self._stats.expirations += len(expired)

            for records in (self._key_evictions, self._tenant_evictions):
                self._prune(records, now)
            return len(expired)

    def _evict_locked(self, key: CacheKey) -> bool:
        self._stamp(self._key_evictions, key)
        if key not in self._entries:
            return False
        self._remove(key)
        self._stats.evictions += 1
        return True

    def _stamp(self, records: Dict[Any, Tuple[int, float]], record_key: Any) -> None:
        # Records stay ordered by stamp time, oldest first.
        records.pop(record_key, None)
        now = self._clock()
        records[record_key] = (self._next_generation(), now)
        self._prune(records, now)

    def _prune(self, records: Dict[Any, Tuple[int, float]], now: float) -> None:
        """Fold old stamps, and the oldest beyond ``max_entries``, into the floor."""
        cutoff = now - self.eviction_record_seconds
        while records:
            record_key, (generation, stamped_at) = next(iter(records.items()))
            if stamped_at > cutoff and len(records) <= self.max_entries:
                break
            self._floor = max(self._floor, generation)
            del records[record_key]

    def _remove(self, key: CacheKey) -> None:
        self._entries.pop(key, None)
        tenant_id, user_id = key
        users = self._tenant_index.get(tenant_id)
        if users is not None:
            users.discard(user_id)
            if not users:
                del self._tenant_index[tenant_id]

    # Introspection

    def stats(self) -> CacheStats:
        """Snapshot of counters."""
        snapshot = CacheStats(**vars(self._stats))
        snapshot.size = len(self._entries)
        return snapshot

    def __len__(self) -> int:
        return len(self._entries)
