# infrastructure/rpc.py
"""
RPC provider pool.
Round-robins contract reads across a fixed list of node endpoints.

No health tracking: every configured endpoint is treated as interchangeable,
a failing call propagates to the caller, who may retry on the next handle.
Single event loop only; the cursor is not guarded for use from threads.
"""
import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, TypeVar

from web3 import AsyncHTTPProvider, AsyncWeb3

from infrastructure.errors import BlockchainError

logger = logging.getLogger("RPC")

T = TypeVar("T")


class ProviderSelector(Protocol):
    """Picks the handle for the next RPC round-trip"""

    def next(self) -> Any:
        ...


class RoundRobinSelector:
    """Cursor over a fixed ordered list, advanced modulo its length on every call"""

    def __init__(self, handles: Sequence[Any]):
        if not handles:
            raise ValueError("RoundRobinSelector needs at least one handle")
        self._handles = list(handles)
        self._cursor = 0

    def next(self) -> Any:
        handle = self._handles[self._cursor]
        self._cursor = (self._cursor + 1) % len(self._handles)
        return handle

    def __len__(self) -> int:
        return len(self._handles)


def make_web3(rpc_url: str) -> AsyncWeb3:
    """Async Web3 handle bound to one endpoint. Timeouts are the transport's defaults."""
    return AsyncWeb3(AsyncHTTPProvider(rpc_url))


class ProviderPool:
    """
    Owns one AsyncWeb3 handle per endpoint.

    Usage:
        pool = ProviderPool.from_urls(config.chain.rpc_urls)
        w3 = pool.next()
        block = await w3.eth.block_number

        # or rotate through handles until one answers
        block = await pool.execute(lambda w3: w3.eth.block_number)
    """

    def __init__(
        self,
        handles: Sequence[Any],
        selector: Optional[ProviderSelector] = None,
        max_attempts: int = 3,
        chain: str = "pulsechain",
        endpoints: Optional[List[str]] = None,
    ):
        self.handles = list(handles)
        self.selector = selector or RoundRobinSelector(self.handles)
        self.max_attempts = max_attempts
        self.chain = chain
        self.endpoints = endpoints or [f"handle-{i}" for i in range(len(self.handles))]

    @classmethod
    def from_urls(cls, rpc_urls: Sequence[str], max_attempts: int = 3, chain: str = "pulsechain") -> "ProviderPool":
        handles = [make_web3(url) for url in rpc_urls]
        logger.info(f"⛓️ Provider pool initialized with {len(handles)} {chain} endpoints")
        return cls(handles, max_attempts=max_attempts, chain=chain, endpoints=list(rpc_urls))

    def next(self) -> Any:
        return self.selector.next()

    async def execute(self, fn: Callable[[Any], Awaitable[T]], max_attempts: Optional[int] = None) -> T:
        """
        Run fn against successive handles until one succeeds.

        Raises BlockchainError after max_attempts failures, chained to the
        last underlying error.
        """
        attempts = max_attempts or self.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            handle = self.next()
            try:
                return await fn(handle)
            except Exception as e:
                last_error = e
                logger.debug(f"RPC attempt {attempt + 1}/{attempts} failed: {e}")

        raise BlockchainError(
            self.chain,
            f"All RPC attempts failed. Last error: {last_error}",
            attempts=attempts,
        ) from last_error

    def __len__(self) -> int:
        return len(self.handles)
