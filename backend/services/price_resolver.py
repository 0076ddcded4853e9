"""
Price Resolvers
On-chain price discovery from AMM reserves.

ReferencePriceResolver
    Wrapped-native price in the reference currency. Every factory x
    stablecoin pair is evaluated and the deepest one wins.

TokenPriceResolver
    Any token priced through its pair against the wrapped native token.
    Factories are consulted oldest first and the first usable pair wins.

Neither resolver raises: a failed reference lookup degrades to the
configured fallback constant, a failed token lookup to an unpriced quote.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from data_sources.onchain import OnChainReader
from infrastructure.config import ChainConfig, FactoryConfig, StablecoinConfig
from infrastructure.price_cache import REFERENCE_PRICE_KEY, CacheKind, PriceCache
from infrastructure.request_coalescer import RequestCoalescer
from models.tokens import PriceQuote, ReferenceQuote
from models.units import ZERO, format_units, safe_div

logger = logging.getLogger("PriceResolver")


def select_best_quote(quotes: Iterable[Optional[ReferenceQuote]]) -> Optional[ReferenceQuote]:
    """
    Highest liquidity wins. A later candidate only replaces the current best
    when strictly deeper, so equal liquidity keeps the earlier one.
    """
    best: Optional[ReferenceQuote] = None
    for quote in quotes:
        if quote is None or quote.price <= 0:
            continue
        if best is None or quote.liquidity > best.liquidity:
            best = quote
    return best


class ReferencePriceResolver:
    """Wrapped-native price from stablecoin pairs"""

    def __init__(
        self,
        reader: OnChainReader,
        cache: PriceCache,
        chain: ChainConfig,
        coalescer: Optional[RequestCoalescer] = None,
    ):
        self.reader = reader
        self.cache = cache
        self.chain = chain
        self.coalescer = coalescer

    async def resolve_reference_price(self) -> Decimal:
        quote = await self.resolve_reference_quote()
        return quote.price

    async def resolve_reference_quote(self) -> ReferenceQuote:
        cached = self.cache.get_kind(CacheKind.REFERENCE_PRICE)
        if cached is not None:
            return cached

        if self.coalescer is not None:
            return await self.coalescer.execute(REFERENCE_PRICE_KEY, self._discover)
        return await self._discover()

    async def _discover(self) -> ReferenceQuote:
        candidates = [
            (factory, stable)
            for factory in self.chain.factories
            for stable in self.chain.stablecoins
        ]
        quotes = await asyncio.gather(
            *[self._evaluate(factory, stable) for factory, stable in candidates]
        )

        best = select_best_quote(quotes)
        if best is None:
            best = ReferenceQuote(
                price=self.chain.fallback_reference_price,
                liquidity=ZERO,
                is_fallback=True,
            )
            logger.warning(
                f"No usable {self.chain.native_symbol} stablecoin pair, "
                f"using fallback price ${best.price}"
            )
        else:
            logger.info(
                f"💲 {self.chain.native_symbol} = ${best.price:.8f} via {best.stablecoin} "
                f"on {best.factory} (liquidity ${best.liquidity:,.0f})"
            )

        self.cache.set_kind(CacheKind.REFERENCE_PRICE, REFERENCE_PRICE_KEY, best)
        return best

    async def _evaluate(self, factory: FactoryConfig, stable: StablecoinConfig) -> Optional[ReferenceQuote]:
        """Quote from one factory x stablecoin pair, None when missing or unusable"""
        try:
            pair = await self.reader.get_pair(factory.address, self.chain.wrapped_native, stable.address)
            if pair is None:
                logger.debug(f"No {stable.symbol} pair on {factory.name}")
                return None

            reserves = await self.reader.get_reserves(pair)
            native_raw, stable_raw = reserves.oriented(self.chain.wrapped_native)

            native_amount = format_units(native_raw, self.chain.wrapped_native_decimals)
            stable_amount = format_units(stable_raw, stable.decimals)
            if native_amount <= 0:
                return None

            return ReferenceQuote(
                price=safe_div(stable_amount, native_amount),
                liquidity=stable_amount * 2,
                pair_address=pair,
                stablecoin=stable.symbol,
                factory=factory.name,
            )
        except Exception as e:
            logger.debug(f"Skipping {stable.symbol} pair on {factory.name}: {e}")
            return None


class TokenPriceResolver:
    """Token price through its wrapped-native pair, first usable factory wins"""

    def __init__(
        self,
        reader: OnChainReader,
        cache: PriceCache,
        chain: ChainConfig,
        reference: ReferencePriceResolver,
        coalescer: Optional[RequestCoalescer] = None,
    ):
        self.reader = reader
        self.cache = cache
        self.chain = chain
        self.reference = reference
        self.coalescer = coalescer
        self._wrapped_native = chain.wrapped_native.lower()

    def is_wrapped_native(self, address: str) -> bool:
        return address.lower() == self._wrapped_native

    async def resolve_token_price(self, address: str, decimals: Optional[int] = None) -> PriceQuote:
        """
        Cached quote, or a fresh one from the first factory with a usable pair.

        Returns PriceQuote.unpriced() when no factory has a pair, every pair
        is below the liquidity floor, or the lookup fails outright.
        """
        address = address.lower()

        cached = self.cache.get_kind(CacheKind.TOKEN_PRICE, address)
        if cached is not None:
            return cached

        if self.is_wrapped_native(address):
            ref = await self.reference.resolve_reference_quote()
            return PriceQuote(
                price=ref.price,
                has_price=ref.price > 0,
                liquidity=ref.liquidity,
                pair_address=ref.pair_address,
                factory=ref.factory,
            )

        if self.coalescer is not None:
            return await self.coalescer.execute(
                f"token:{address}:{decimals}",
                lambda: self._discover(address, decimals),
            )
        return await self._discover(address, decimals)

    async def resolve_many(
        self,
        addresses: Sequence[str],
        decimals: Optional[Dict[str, int]] = None,
    ) -> Dict[str, PriceQuote]:
        decimals = {k.lower(): v for k, v in (decimals or {}).items()}
        unique: List[str] = list(dict.fromkeys(a.lower() for a in addresses))
        quotes = await asyncio.gather(
            *[self.resolve_token_price(a, decimals.get(a)) for a in unique]
        )
        return dict(zip(unique, quotes))

    async def _discover(self, address: str, decimals: Optional[int]) -> PriceQuote:
        try:
            reference_price = await self.reference.resolve_reference_price()
            if decimals is None:
                decimals = (await self.reader.read_token_metadata(address)).decimals

            for factory in self.chain.factories:
                quote = await self._quote_from_factory(factory, address, decimals, reference_price)
                if quote is not None:
                    self.cache.set_kind(CacheKind.TOKEN_PRICE, address, quote)
                    logger.debug(f"Priced {address} at ${quote.price} on {factory.name}")
                    return quote

            logger.debug(f"No usable {self.chain.native_symbol} pair for {address}")
        except Exception as e:
            logger.error(f"Price fetch failed for {address}: {e}")

        return PriceQuote.unpriced()

    async def _quote_from_factory(
        self,
        factory: FactoryConfig,
        address: str,
        decimals: int,
        reference_price: Decimal,
    ) -> Optional[PriceQuote]:
        pair = await self.reader.get_pair(factory.address, address, self.chain.wrapped_native)
        if pair is None:
            return None

        reserves = await self.reader.get_reserves(pair)
        token_raw, native_raw = reserves.oriented(address)
        if token_raw == 0 or native_raw == 0:
            logger.debug(f"Empty pair {pair} on {factory.name}")
            return None

        token_amount = format_units(token_raw, decimals)
        native_amount = format_units(native_raw, self.chain.wrapped_native_decimals)
        if native_amount <= self.chain.min_native_liquidity:
            logger.debug(
                f"Pair {pair} on {factory.name} below floor "
                f"({native_amount} <= {self.chain.min_native_liquidity} {self.chain.native_symbol})"
            )
            return None

        price_in_native = safe_div(native_amount, token_amount)
        return PriceQuote(
            price=price_in_native * reference_price,
            has_price=True,
            liquidity=native_amount * reference_price * 2,
            pair_address=pair,
            factory=factory.name,
        )
