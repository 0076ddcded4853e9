"""
Price Cache - TTL store for resolved prices and token metadata

Two price classes live side by side: the reference (wrapped-native) price
with a short TTL, consulted on almost every lookup, and per-token quotes
with a longer TTL. Token metadata rarely changes and gets the longest TTL.

DESIGN:
- In-memory dict, one owning instance per engine (no module-level state)
- Reads never write: an expired entry is a miss and stays until sweep()
- Entries are frozen and replaced wholesale on refresh
- Single event loop; no locking. Guard with a mutex before sharing
  across threads.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("PriceCache")

REFERENCE_PRICE_KEY = "reference-price"


class CacheKind(Enum):
    """Cache classes with independent TTLs"""
    REFERENCE_PRICE = "reference_price"   # short TTL, tracks the market
    TOKEN_PRICE = "token_price"
    TOKEN_METADATA = "token_metadata"     # symbol / name / decimals


DEFAULT_TTLS = {
    CacheKind.REFERENCE_PRICE: 60,
    CacheKind.TOKEN_PRICE: 300,
    CacheKind.TOKEN_METADATA: 3600,
}


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.inserted_at < self.ttl


class PriceCache:
    """
    get / set / sweep over a plain dict.

    A miss is never an error; callers compute and populate.
    When disabled, every get() misses and set() is a no-op.
    """

    def __init__(
        self,
        ttls: Optional[Dict[CacheKind, float]] = None,
        clock: Callable[[], float] = time.time,
        enabled: bool = True,
    ):
        self._entries: Dict[str, CacheEntry] = {}
        self._ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._clock = clock
        self.enabled = enabled
        self._sweeper: Optional[asyncio.Task] = None

        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
        }

    @classmethod
    def from_config(cls, cache_config, clock: Callable[[], float] = time.time) -> "PriceCache":
        return cls(
            ttls={
                CacheKind.REFERENCE_PRICE: cache_config.reference_ttl,
                CacheKind.TOKEN_PRICE: cache_config.token_ttl,
                CacheKind.TOKEN_METADATA: cache_config.metadata_ttl,
            },
            clock=clock,
            enabled=cache_config.enabled,
        )

    @staticmethod
    def key_for(kind: CacheKind, identifier: str) -> str:
        if kind == CacheKind.REFERENCE_PRICE:
            return REFERENCE_PRICE_KEY
        return f"{kind.value}:{identifier.lower()}"

    def ttl_for(self, kind: CacheKind) -> float:
        return self._ttls[kind]

    def get(self, key: str) -> Optional[Any]:
        """Value if present and younger than its TTL, else None"""
        entry = self._entries.get(key) if self.enabled else None

        if entry is not None and entry.is_valid(self._clock()):
            self._stats["hits"] += 1
            logger.debug(f"Cache HIT: {key}")
            return entry.value

        self._stats["misses"] += 1
        logger.debug(f"Cache MISS: {key}")
        return None

    def set(self, key: str, value: Any, ttl: float):
        """Store value, replacing any previous entry for key"""
        if not self.enabled:
            return
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            inserted_at=self._clock(),
            ttl=ttl,
        )

    def get_kind(self, kind: CacheKind, identifier: str = "") -> Optional[Any]:
        return self.get(self.key_for(kind, identifier))

    def set_kind(self, kind: CacheKind, identifier: str, value: Any):
        self.set(self.key_for(kind, identifier), value, self.ttl_for(kind))

    def sweep(self) -> int:
        """Drop every entry whose age reached its TTL. Returns the count removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self._entries[key]
        self._stats["evictions"] += len(expired)
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    async def _sweep_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def start_sweeper(self, interval: float) -> asyncio.Task:
        """Run sweep() every interval seconds on the running loop"""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(interval))
            logger.info(f"Cache sweeper started (interval: {interval}s)")
        return self._sweeper

    async def stop_sweeper(self):
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Cache sweeper stopped")

    def invalidate(self, key: str):
        """Manually invalidate a cache entry."""
        self._entries.pop(key, None)

    def get_stats(self) -> Dict:
        """Get cache statistics for monitoring."""
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / max(1, total)

        return {
            **self._stats,
            "total_requests": total,
            "hit_rate": f"{hit_rate:.1%}",
            "entries": len(self._entries),
            "enabled": self.enabled,
        }

    def clear(self):
        """Clear all cache entries."""
        self._entries.clear()
        logger.info("Cache cleared")

    def __len__(self) -> int:
        return len(self._entries)
