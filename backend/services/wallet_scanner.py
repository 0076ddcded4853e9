"""
Wallet Scanner
Turns discovered holdings into priced, LP-decomposed, sorted wallet scans,
and several wallets into one combined portfolio.

Token discovery itself (explorer APIs, transfer logs) happens upstream;
the scanner starts from (address, raw balance) pairs.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from data_sources.onchain import OnChainReader
from infrastructure.config import ChainConfig, FeatureFlags
from models.tokens import CombinedToken, PriceQuote, TokenQuote
from models.units import ZERO
from services.lp_analyzer import LPAnalyzer, build_lp_summary
from services.portfolio_aggregator import MultiWalletAggregator, build_combined_lp_summary, wallet_label
from services.price_resolver import ReferencePriceResolver, TokenPriceResolver

logger = logging.getLogger("WalletScanner")

# Placeholder address for the chain's native coin
NATIVE_TOKEN_ADDRESS = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"
NATIVE_DECIMALS = 18

TOKEN_BATCH_SIZE = 10


@dataclass(frozen=True)
class DiscoveredToken:
    """One holding as reported by the discovery layer"""
    address: str
    raw_balance: int
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = None


def token_value(token: Any) -> Decimal:
    """Value of a wallet quote or a combined token"""
    if isinstance(token, CombinedToken):
        return token.total_value
    return token.value


@dataclass
class WalletScanResult:
    wallet_address: str
    tokens: List[TokenQuote] = field(default_factory=list)
    total_value: Decimal = ZERO
    lp_summary: Optional[Dict] = None
    scan_duration: float = 0.0
    error: Optional[str] = None

    @classmethod
    def failed(cls, wallet_address: str, error: str) -> "WalletScanResult":
        return cls(wallet_address=wallet_address, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def token_count(self) -> int:
        return len(self.tokens)

    def summary(self) -> Dict[str, Any]:
        return {
            "address": self.wallet_address,
            "label": wallet_label(self.wallet_address),
            "totalValue": float(self.total_value),
            "tokenCount": self.token_count,
            "error": self.error,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.summary(),
            "tokens": [t.to_dict() for t in self.tokens],
            "lpSummary": self.lp_summary,
            "scanDuration": round(self.scan_duration, 1),
        }


@dataclass
class PortfolioResult:
    wallets: List[str]
    wallet_results: List[WalletScanResult]
    # CombinedTokens for several wallets, the wallet's own quotes for one
    tokens: List[Any]
    total_value: Decimal
    lp_summary: Optional[Dict] = None
    scan_duration: float = 0.0

    @property
    def token_count(self) -> int:
        return len(self.tokens)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallets": self.wallets,
            "walletResults": [r.summary() for r in self.wallet_results],
            "tokens": [t.to_dict() for t in self.tokens],
            "totalValue": float(self.total_value),
            "tokenCount": self.token_count,
            "lpSummary": self.lp_summary,
            "scanDuration": round(self.scan_duration, 1),
            "individualWalletCount": len(self.wallets),
        }


class WalletScanner:
    """Prices every holding of a wallet and runs LP decomposition"""

    def __init__(
        self,
        reader: OnChainReader,
        token_resolver: TokenPriceResolver,
        reference: ReferencePriceResolver,
        lp_analyzer: LPAnalyzer,
        aggregator: MultiWalletAggregator,
        chain: ChainConfig,
        features: FeatureFlags,
    ):
        self.reader = reader
        self.token_resolver = token_resolver
        self.reference = reference
        self.lp_analyzer = lp_analyzer
        self.aggregator = aggregator
        self.chain = chain
        self.features = features

    async def scan(
        self,
        wallet: str,
        holdings: Sequence[DiscoveredToken],
        analyze_lps: bool = True,
    ) -> WalletScanResult:
        """
        Price a wallet's holdings.

        Duplicates collapse to the first occurrence, zero balances are
        dropped, unpriceable tokens stay in the list with has_price False.
        """
        start = time.time()

        unique: Dict[str, DiscoveredToken] = {}
        for holding in holdings:
            key = holding.address.lower()
            if key not in unique:
                unique[key] = holding
        pending = [h for h in unique.values() if int(h.raw_balance) > 0]

        logger.info(f"🔎 Scanning {wallet[:10]}...: {len(pending)} tokens")

        quotes: List[TokenQuote] = []
        for i in range(0, len(pending), TOKEN_BATCH_SIZE):
            batch = pending[i:i + TOKEN_BATCH_SIZE]
            quotes.extend(await asyncio.gather(*[self._quote(h) for h in batch]))

        if analyze_lps and self.lp_analyzer.enabled:
            quotes = await self.lp_analyzer.process_lp_tokens(quotes, wallet)

        if self.features.enable_native_balance:
            native = await self._native_quote(wallet)
            if native is not None:
                quotes.insert(0, native)

        quotes.sort(key=lambda q: q.value, reverse=True)
        total_value = sum((q.value for q in quotes), ZERO)

        result = WalletScanResult(
            wallet_address=wallet,
            tokens=quotes,
            total_value=total_value,
            lp_summary=build_lp_summary(quotes),
            scan_duration=time.time() - start,
        )
        logger.info(
            f"✅ {wallet[:10]}...: ${total_value:,.2f} across {result.token_count} tokens "
            f"({result.scan_duration:.1f}s)"
        )
        return result

    async def scan_many(
        self,
        requests: Sequence[Tuple[str, Sequence[DiscoveredToken]]],
        analyze_lps: bool = True,
        min_value: Optional[Decimal] = None,
    ) -> PortfolioResult:
        """
        Scan each wallet in turn and combine them.

        A wallet that fails is recorded with its error and zero totals; the
        other wallets are still combined. With min_value, only tokens worth
        at least that much are listed; totals and LP summaries still cover
        every holding.
        """
        start = time.time()
        results: List[WalletScanResult] = []

        for i, (wallet, holdings) in enumerate(requests):
            logger.info(f"[{i + 1}/{len(requests)}] Scanning: {wallet}")
            try:
                results.append(await self.scan(wallet, holdings, analyze_lps))
            except Exception as e:
                logger.error(f"❌ Failed to scan wallet {wallet}: {e}")
                results.append(WalletScanResult.failed(wallet, str(e)))

        succeeded = [r for r in results if r.ok]
        total_value = sum((r.total_value for r in succeeded), ZERO)

        if len(requests) == 1:
            tokens: List[Any] = list(results[0].tokens)
            lp_summary = results[0].lp_summary
        else:
            tokens = self.aggregator.combine([(r.wallet_address, r.tokens) for r in succeeded])
            wallet_positions = [
                {**position, "wallet": wallet_label(r.wallet_address)}
                for r in succeeded
                if r.lp_summary
                for position in r.lp_summary["positions"]
            ]
            lp_summary = build_combined_lp_summary(tokens, wallet_positions)

        if min_value is not None:
            before = len(tokens)
            tokens = [t for t in tokens if token_value(t) >= min_value]
            logger.info(f"Kept {len(tokens)}/{before} tokens worth at least ${min_value}")

        return PortfolioResult(
            wallets=[wallet for wallet, _ in requests],
            wallet_results=results,
            tokens=tokens,
            total_value=total_value,
            lp_summary=lp_summary,
            scan_duration=time.time() - start,
        )

    async def _quote(self, holding: DiscoveredToken) -> TokenQuote:
        symbol, name, decimals = holding.symbol, holding.name, holding.decimals
        if symbol is None or name is None or decimals is None:
            metadata = await self.reader.read_token_metadata(holding.address)
            symbol = symbol if symbol is not None else metadata.symbol
            name = name if name is not None else metadata.name
            decimals = decimals if decimals is not None else metadata.decimals

        price = await self.token_resolver.resolve_token_price(holding.address, decimals)
        return TokenQuote.build(holding.address, symbol, name, decimals, holding.raw_balance, price)

    async def _native_quote(self, wallet: str) -> Optional[TokenQuote]:
        balance = await self.reader.get_native_balance(wallet)
        if balance <= 0:
            return None

        reference_price = await self.reference.resolve_reference_price()
        return TokenQuote.build(
            NATIVE_TOKEN_ADDRESS,
            self.chain.native_symbol,
            self.chain.native_name,
            NATIVE_DECIMALS,
            balance,
            PriceQuote(price=reference_price, has_price=reference_price > 0, liquidity=ZERO),
        )
