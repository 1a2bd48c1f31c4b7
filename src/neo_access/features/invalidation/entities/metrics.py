"""Invalidation metrics."""

from dataclasses import dataclass, field
from typing import Any, Dict

from ....config.constants import GrantChangeType


@dataclass
class InvalidationMetrics:
    """Running totals over applied invalidations."""

    total: int = 0
    by_type: Dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in GrantChangeType})
    total_depth: int = 0
    total_fanout: int = 0
    max_fanout: int = 0
    total_evicted: int = 0
    fallbacks: int = 0
    remote_applied: int = 0
    broadcast_failures: int = 0

    @property
    def average_depth(self) -> float:
        return self.total_depth / self.total if self.total else 0.0

    @property
    def average_fanout(self) -> float:
        return self.total_fanout / self.total if self.total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_type": dict(self.by_type),
            "average_depth": round(self.average_depth, 3),
            "average_fanout": round(self.average_fanout, 3),
            "max_fanout": self.max_fanout,
            "total_evicted": self.total_evicted,
            "fallbacks": self.fallbacks,
            "remote_applied": self.remote_applied,
            "broadcast_failures": self.broadcast_failures,
        }
