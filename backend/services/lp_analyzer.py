"""
LP Position Analyzer
Decomposes a V2-style LP token holding into its two underlying legs and
values it as the sum of those legs.

Usage:
    analyzer = LPPositionAnalyzer(reader, token_resolver, reference_resolver, chain)
    position = await analyzer.analyze_lp_position(lp_address, holder_balance, holder)
    if position is None:
        # could not value this position, keep the raw entry
        ...
"""

import asyncio
import logging
from decimal import localcontext
from typing import Dict, List, Optional, Protocol, Sequence

from data_sources.onchain import OnChainReader
from infrastructure.config import ChainConfig
from models.tokens import LPLeg, LPPosition, TokenMetadata, TokenQuote, UnvaluedLPToken
from models.units import HUNDRED, UNIT_CONTEXT, ZERO, format_units, safe_div
from services.price_resolver import ReferencePriceResolver, TokenPriceResolver

logger = logging.getLogger("LPAnalyzer")

LP_SYMBOL_MARKERS = ("PLP", "-LP")
LP_NAME_MARKERS = ("PulseX LP", "Liquidity")

# LP analysis fans out into ~10 reads per position
LP_BATCH_SIZE = 5


def looks_like_lp(symbol: Optional[str], name: Optional[str]) -> bool:
    """Cheap symbol/name check before asking the contract"""
    symbol = symbol or ""
    name = name or ""
    return any(m in symbol for m in LP_SYMBOL_MARKERS) or any(m in name for m in LP_NAME_MARKERS)


class LPAnalyzer(Protocol):
    enabled: bool

    async def analyze_lp_position(
        self,
        lp_address: str,
        holder_balance: Optional[int] = None,
        holder: Optional[str] = None,
    ) -> Optional[LPPosition]:
        ...

    async def process_lp_tokens(self, quotes: Sequence[TokenQuote], holder: str) -> List[TokenQuote]:
        ...


class NullLPAnalyzer:
    """Selected when LP analysis is disabled. Values nothing, changes nothing."""

    enabled = False

    async def analyze_lp_position(self, lp_address, holder_balance=None, holder=None) -> Optional[LPPosition]:
        return None

    async def process_lp_tokens(self, quotes: Sequence[TokenQuote], holder: str) -> List[TokenQuote]:
        return list(quotes)


class LPPositionAnalyzer:
    """Reads pair state, prices both legs, and builds an LPPosition"""

    enabled = True

    def __init__(
        self,
        reader: OnChainReader,
        token_resolver: TokenPriceResolver,
        reference: ReferencePriceResolver,
        chain: ChainConfig,
    ):
        self.reader = reader
        self.token_resolver = token_resolver
        self.reference = reference
        self.chain = chain

    async def analyze_lp_position(
        self,
        lp_address: str,
        holder_balance: Optional[int] = None,
        holder: Optional[str] = None,
    ) -> Optional[LPPosition]:
        """
        Value one LP holding.

        Args:
            lp_address: LP (pair) contract address
            holder_balance: raw LP balance if already known, else read via balanceOf(holder)
            holder: wallet address, only needed when holder_balance is None

        Returns:
            LPPosition, or None for a zero balance, a zero total supply, or
            any failure along the way
        """
        if holder_balance is not None and int(holder_balance) == 0:
            logger.debug(f"No balance for LP token {lp_address}")
            return None

        try:
            return await self._analyze(lp_address, holder_balance, holder)
        except Exception as e:
            logger.error(f"Failed to analyze LP token {lp_address}: {e}")
            return None

    async def _analyze(
        self,
        lp_address: str,
        holder_balance: Optional[int],
        holder: Optional[str],
    ) -> Optional[LPPosition]:
        state = await self.reader.read_lp_state(lp_address, holder, holder_balance)

        if state.holder_balance == 0:
            logger.debug(f"No balance for LP token {lp_address}")
            return None
        if state.total_supply == 0:
            logger.warning(f"LP token {lp_address} has zero total supply, cannot calculate share")
            return None

        meta0, meta1 = await asyncio.gather(
            self.reader.read_token_metadata(state.token0),
            self.reader.read_token_metadata(state.token1),
        )
        (price0, priced0), (price1, priced1) = await asyncio.gather(
            self._leg_price(state.token0, meta0),
            self._leg_price(state.token1, meta1),
        )

        with localcontext(UNIT_CONTEXT):
            user_amount = format_units(state.holder_balance, state.decimals)
            total_amount = format_units(state.total_supply, state.decimals)
            fraction = safe_div(user_amount, total_amount)
            share_percent = fraction * HUNDRED

            leg0 = self._leg(meta0, state.reserves.reserve0, fraction, price0, priced0)
            leg1 = self._leg(meta1, state.reserves.reserve1, fraction, price1, priced1)
            total_value = leg0.value + leg1.value

        position = LPPosition(
            address=state.lp_address,
            symbol=state.symbol,
            name=state.name,
            decimals=state.decimals,
            raw_balance=state.holder_balance,
            balance_formatted=user_amount,
            price=safe_div(total_value, user_amount),
            value=total_value,
            has_price=priced0 or priced1,
            liquidity_estimate=total_value,
            token0=leg0,
            token1=leg1,
            user_share_percent=share_percent,
            total_supply=state.total_supply,
            reserves=state.reserves,
        )

        logger.info(
            f"🔍 {position.pair_label} LP {lp_address[:10]}...: "
            f"{share_percent:.4f}% of pool, ${total_value:,.2f}"
        )
        return position

    async def _leg_price(self, address: str, metadata: TokenMetadata):
        """(price, has_price) for one leg"""
        # A wrapped-native pair against itself is degenerate; use the reference price directly
        if self.token_resolver.is_wrapped_native(address):
            price = await self.reference.resolve_reference_price()
            return price, price > 0

        quote = await self.token_resolver.resolve_token_price(address, metadata.decimals)
        return quote.price, quote.has_price

    @staticmethod
    def _leg(metadata: TokenMetadata, raw_reserve: int, fraction, price, has_price: bool) -> LPLeg:
        reserve = format_units(raw_reserve, metadata.decimals)
        amount = fraction * reserve
        return LPLeg(
            address=metadata.address,
            symbol=metadata.symbol,
            name=metadata.name,
            decimals=metadata.decimals,
            reserve=reserve,
            amount=amount,
            price=price,
            value=amount * price,
            has_price=has_price,
        )

    async def is_liquidity_pair(self, quote: TokenQuote) -> bool:
        """Symbol/name heuristic first, then ask the contract for token0/token1"""
        if looks_like_lp(quote.symbol, quote.name):
            return True
        return await self.reader.is_pair_contract(quote.address)

    async def process_lp_tokens(self, quotes: Sequence[TokenQuote], holder: str) -> List[TokenQuote]:
        """
        Replace LP-shaped quotes with their decomposition.

        A position that cannot be analyzed stays in the list as an unvalued
        LP entry so the holdings stay complete.
        """
        checks = await asyncio.gather(*[self.is_liquidity_pair(q) for q in quotes])
        lp_quotes = [q for q, is_lp in zip(quotes, checks) if is_lp]
        processed: List[TokenQuote] = [q for q, is_lp in zip(quotes, checks) if not is_lp]

        if lp_quotes:
            logger.info(f"Found {len(lp_quotes)} LP tokens for {holder[:10]}...")

        for i in range(0, len(lp_quotes), LP_BATCH_SIZE):
            batch = lp_quotes[i:i + LP_BATCH_SIZE]
            positions = await asyncio.gather(
                *[self.analyze_lp_position(q.address, q.raw_balance, holder) for q in batch]
            )
            for quote, position in zip(batch, positions):
                if position is not None:
                    processed.append(position)
                else:
                    processed.append(UnvaluedLPToken.build(
                        quote.address, quote.symbol, quote.name, quote.decimals, quote.raw_balance
                    ))

        return processed


def build_lp_summary(tokens: Sequence[TokenQuote]) -> Optional[Dict]:
    """Per-wallet LP overview, None when the wallet holds no LP tokens"""
    lp_tokens = [t for t in tokens if t.is_liquidity_pair]
    if not lp_tokens:
        return None

    positions = []
    for lp in lp_tokens:
        if isinstance(lp, LPPosition):
            positions.append({
                "pair": lp.pair_label,
                "address": lp.address,
                "value": float(lp.value),
                "sharePercent": float(lp.user_share_percent),
                "token0Value": float(lp.token0.value),
                "token1Value": float(lp.token1.value),
            })
        else:
            positions.append({
                "pair": lp.symbol,
                "address": lp.address,
                "value": float(lp.value),
                "sharePercent": 0.0,
                "token0Value": 0.0,
                "token1Value": 0.0,
            })

    return {
        "count": len(lp_tokens),
        "totalValue": float(sum((t.value for t in lp_tokens), ZERO)),
        "positions": positions,
    }
