"""
Portfolio data model
Token quotes, LP positions, and combined multi-wallet holdings.

Quotes and positions are frozen: a refresh produces a new object rather
than mutating the old one. CombinedToken is the exception, it is the
accumulator of a single multi-wallet fold and is never shared.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from models.units import UNIT_CONTEXT, ZERO, format_units


def _num(value: Optional[Decimal]) -> Optional[float]:
    """Decimals go out as JSON numbers, integers go out as strings."""
    if value is None:
        return None
    return float(value)


@dataclass(frozen=True)
class PriceQuote:
    """Result of a single token price resolution"""
    price: Decimal
    has_price: bool
    liquidity: Decimal
    pair_address: Optional[str] = None
    factory: Optional[str] = None

    @classmethod
    def unpriced(cls) -> "PriceQuote":
        return cls(price=ZERO, has_price=False, liquidity=ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": _num(self.price),
            "hasPrice": self.has_price,
            "liquidity": _num(self.liquidity),
            "pairAddress": self.pair_address,
        }


@dataclass(frozen=True)
class ReferenceQuote:
    """Wrapped-native price in the reference currency"""
    price: Decimal
    liquidity: Decimal
    pair_address: Optional[str] = None
    stablecoin: Optional[str] = None
    factory: Optional[str] = None
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": _num(self.price),
            "liquidity": _num(self.liquidity),
            "pairAddress": self.pair_address,
            "stablecoin": self.stablecoin,
            "factory": self.factory,
            "isFallback": self.is_fallback,
        }


@dataclass(frozen=True)
class TokenMetadata:
    address: str
    symbol: str = "Unknown"
    name: str = "Unknown"
    decimals: int = 18


@dataclass(frozen=True)
class PairReserves:
    """Point-in-time read of an AMM pair. Never cached."""
    pair_address: str
    token0: str
    token1: str
    reserve0: int
    reserve1: int
    block_timestamp_last: int = 0

    def oriented(self, token: str):
        """(reserve of token, reserve of the other side)"""
        if self.token0.lower() == token.lower():
            return self.reserve0, self.reserve1
        return self.reserve1, self.reserve0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pairAddress": self.pair_address,
            "token0": self.token0,
            "token1": self.token1,
            "reserve0": str(self.reserve0),
            "reserve1": str(self.reserve1),
            "blockTimestampLast": self.block_timestamp_last,
        }


@dataclass(frozen=True)
class TokenQuote:
    address: str
    symbol: str
    name: str
    decimals: int
    raw_balance: int
    balance_formatted: Decimal
    price: Decimal
    value: Decimal
    has_price: bool
    liquidity_estimate: Decimal

    @classmethod
    def build(
        cls,
        address: str,
        symbol: str,
        name: str,
        decimals: int,
        raw_balance: int,
        quote: Optional[PriceQuote] = None,
    ) -> "TokenQuote":
        """Derive formatted balance and value from the raw balance and a price."""
        quote = quote or PriceQuote.unpriced()
        balance = format_units(raw_balance, decimals)
        return cls(
            address=address.lower(),
            symbol=symbol,
            name=name,
            decimals=decimals,
            raw_balance=int(raw_balance),
            balance_formatted=balance,
            price=quote.price,
            value=UNIT_CONTEXT.multiply(balance, quote.price),
            has_price=quote.has_price,
            liquidity_estimate=quote.liquidity,
        )

    @property
    def is_liquidity_pair(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "balance": str(self.raw_balance),
            "balanceFormatted": _num(self.balance_formatted),
            "price": _num(self.price),
            "value": _num(self.value),
            "hasPrice": self.has_price,
            "liquidity": _num(self.liquidity_estimate),
            "isLp": self.is_liquidity_pair,
        }


@dataclass(frozen=True)
class UnvaluedLPToken(TokenQuote):
    """LP-shaped holding that could not be decomposed. Listed, never valued."""

    @property
    def is_liquidity_pair(self) -> bool:
        return True


@dataclass(frozen=True)
class LPLeg:
    """One underlying side of an LP position, scaled to the holder's share"""
    address: str
    symbol: str
    name: str
    decimals: int
    reserve: Decimal
    amount: Decimal
    price: Decimal
    value: Decimal
    has_price: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "reserve": _num(self.reserve),
            "amount": _num(self.amount),
            "price": _num(self.price),
            "value": _num(self.value),
            "hasPrice": self.has_price,
        }


@dataclass(frozen=True)
class LPPosition(TokenQuote):
    """
    Decomposed LP token holding.

    value is always token0.value + token1.value, and price is the synthetic
    value per LP token. LP tokens have no market price of their own.
    """
    token0: LPLeg
    token1: LPLeg
    user_share_percent: Decimal
    total_supply: int
    reserves: PairReserves

    @property
    def is_liquidity_pair(self) -> bool:
        return True

    @property
    def pair_label(self) -> str:
        return f"{self.token0.symbol}/{self.token1.symbol}"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "pairInfo": {
                "token0": self.token0.to_dict(),
                "token1": self.token1.to_dict(),
                "userSharePercent": _num(self.user_share_percent),
                "totalSupply": str(self.total_supply),
                "reserves": self.reserves.to_dict(),
            },
        })
        return data


@dataclass(frozen=True)
class WalletHolding:
    """One wallet's contribution to a combined token"""
    wallet_address: str
    wallet_label: str
    raw_balance: int
    amount: Decimal
    value: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet": self.wallet_address,
            "walletLabel": self.wallet_label,
            "balance": str(self.raw_balance),
            "amount": _num(self.amount),
            "value": _num(self.value),
        }


@dataclass
class CombinedLPData:
    token0_amount: Decimal = ZERO
    token1_amount: Decimal = ZERO
    token0_value: Decimal = ZERO
    token1_value: Decimal = ZERO
    # Arithmetic sum of each wallet's share, not renormalized
    total_share_percent: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token0Amount": _num(self.token0_amount),
            "token1Amount": _num(self.token1_amount),
            "token0Value": _num(self.token0_value),
            "token1Value": _num(self.token1_value),
            "totalSharePercent": _num(self.total_share_percent),
        }


@dataclass
class CombinedToken:
    address: str
    symbol: str
    name: str
    decimals: int
    price: Decimal
    has_price: bool
    total_raw_balance: int
    total_amount: Decimal
    total_value: Decimal
    wallet_count: int = 1
    breakdown: List[WalletHolding] = field(default_factory=list)
    combined_lp_data: Optional[CombinedLPData] = None
    pair_label: Optional[str] = None
    # Amount held in wallets that had a price; price = total_value / priced_amount
    priced_amount: Decimal = ZERO

    @property
    def is_liquidity_pair(self) -> bool:
        return self.combined_lp_data is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "price": _num(self.price),
            "hasPrice": self.has_price,
            "balance": str(self.total_raw_balance),
            "totalAmount": _num(self.total_amount),
            "totalValue": _num(self.total_value),
            "walletCount": self.wallet_count,
            "wallets": [h.to_dict() for h in self.breakdown],
            "isLp": self.is_liquidity_pair,
            "pair": self.pair_label,
            "combinedLPData": self.combined_lp_data.to_dict() if self.combined_lp_data else None,
        }
