"""
Request Coalescer - Deduplicate concurrent identical resolutions

When a wallet holds ten LP positions that all pair against the wrapped
native token, ten reference-price lookups would start at once on a cold
cache. The first starts the work; the rest await the same task.

DESIGN:
- Track in-flight work by key
- Check-and-insert happens with no await in between, so the single event
  loop needs no lock
- The key is released as soon as the task finishes; results are not kept
  (that is the PriceCache's job)
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict
from dataclasses import dataclass

logger = logging.getLogger("Coalescer")


@dataclass
class InFlightRequest:
    task: asyncio.Task
    started_at: float
    waiter_count: int = 1


class RequestCoalescer:
    """
    Coalesces concurrent calls for the same key into one awaitable.

    Usage:
        price = await coalescer.execute(f"token:{address}", lambda: self._resolve(address))
    """

    def __init__(self):
        self._in_flight: Dict[str, InFlightRequest] = {}

        self._stats = {
            "coalesced": 0,      # callers that piggybacked on existing work
            "initiated": 0,      # callers that started new work
        }

    async def execute(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]]
    ) -> Any:
        in_flight = self._in_flight.get(key)

        if in_flight is not None:
            in_flight.waiter_count += 1
            self._stats["coalesced"] += 1
            logger.debug(f"Coalescing {key} ({in_flight.waiter_count} waiters)")
        else:
            task = asyncio.ensure_future(fetcher())
            in_flight = InFlightRequest(task=task, started_at=time.time())
            self._in_flight[key] = in_flight
            self._stats["initiated"] += 1
            task.add_done_callback(lambda _t, k=key: self._release(k))

        # A cancelled waiter must not cancel the fetch the others share
        return await asyncio.shield(in_flight.task)

    def _release(self, key: str):
        in_flight = self._in_flight.pop(key, None)
        if in_flight and in_flight.waiter_count > 1:
            logger.debug(f"Coalesced {in_flight.waiter_count} requests for {key}")

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def get_stats(self) -> Dict:
        """Get coalescing statistics."""
        total = self._stats["initiated"] + self._stats["coalesced"]
        savings_rate = self._stats["coalesced"] / max(1, total)

        return {
            **self._stats,
            "in_flight": len(self._in_flight),
            "savings_rate": f"{savings_rate:.1%}",
        }
