"""
Valuation Engine
Single owner of the provider pool, the price cache and every resolver.

One instance per process, created in the FastAPI lifespan and kept on
app.state. Nothing in the engine is module-level state.
"""

import logging
import time
from decimal import Decimal
from typing import Callable, Dict, Optional, Sequence, Tuple

from data_sources.onchain import OnChainReader
from infrastructure.config import EngineConfig, get_config
from infrastructure.price_cache import PriceCache
from infrastructure.request_coalescer import RequestCoalescer
from infrastructure.rpc import ProviderPool
from models.tokens import LPPosition, PriceQuote, ReferenceQuote
from services.lp_analyzer import LPAnalyzer, LPPositionAnalyzer, NullLPAnalyzer
from services.portfolio_aggregator import MultiWalletAggregator
from services.price_resolver import ReferencePriceResolver, TokenPriceResolver
from services.wallet_scanner import DiscoveredToken, PortfolioResult, WalletScanner, WalletScanResult

logger = logging.getLogger("ValuationEngine")


class ValuationEngine:
    """Wires the components together and exposes the public operations"""

    def __init__(
        self,
        config: EngineConfig,
        reader: OnChainReader,
        cache: PriceCache,
        coalescer: Optional[RequestCoalescer] = None,
    ):
        self.config = config
        self.reader = reader
        self.cache = cache
        self.coalescer = coalescer or RequestCoalescer()
        chain = config.chain

        self.reference = ReferencePriceResolver(reader, cache, chain, self.coalescer)
        self.token_resolver = TokenPriceResolver(reader, cache, chain, self.reference, self.coalescer)

        # Chosen once here; callers never check whether LP analysis exists
        self.lp_analyzer: LPAnalyzer
        if config.features.enable_lp_analysis:
            self.lp_analyzer = LPPositionAnalyzer(reader, self.token_resolver, self.reference, chain)
        else:
            self.lp_analyzer = NullLPAnalyzer()

        self.aggregator = MultiWalletAggregator()
        self.scanner = WalletScanner(
            reader,
            self.token_resolver,
            self.reference,
            self.lp_analyzer,
            self.aggregator,
            chain,
            config.features,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        if self.cache.enabled:
            self.cache.start_sweeper(self.config.cache.sweep_interval)

    async def stop(self):
        await self.cache.stop_sweeper()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def resolve_reference_quote(self) -> ReferenceQuote:
        return await self.reference.resolve_reference_quote()

    async def resolve_token_price(self, address: str, decimals: Optional[int] = None) -> PriceQuote:
        return await self.token_resolver.resolve_token_price(address, decimals)

    async def analyze_lp_position(
        self,
        lp_address: str,
        holder_balance: Optional[int] = None,
        holder: Optional[str] = None,
    ) -> Optional[LPPosition]:
        return await self.lp_analyzer.analyze_lp_position(lp_address, holder_balance, holder)

    async def scan_wallet(
        self,
        wallet: str,
        holdings: Sequence[DiscoveredToken],
        analyze_lps: bool = True,
    ) -> WalletScanResult:
        return await self.scanner.scan(wallet, holdings, analyze_lps)

    async def scan_portfolio(
        self,
        requests: Sequence[Tuple[str, Sequence[DiscoveredToken]]],
        analyze_lps: bool = True,
        min_value: Optional[Decimal] = None,
    ) -> PortfolioResult:
        return await self.scanner.scan_many(requests, analyze_lps, min_value)

    def get_stats(self) -> Dict:
        return {
            "cache": self.cache.get_stats(),
            "coalescer": self.coalescer.get_stats(),
            "lp_analysis": self.lp_analyzer.enabled,
            "chain": self.config.chain.name,
        }


def build_engine(
    config: Optional[EngineConfig] = None,
    reader: Optional[OnChainReader] = None,
    clock: Callable[[], float] = time.time,
) -> ValuationEngine:
    """
    Build a fully wired engine from configuration.

    Pass reader to run against something other than live RPC endpoints.
    """
    config = config or get_config()
    cache = PriceCache.from_config(config.cache, clock=clock)

    if reader is None:
        pool = ProviderPool.from_urls(
            config.chain.rpc_urls,
            max_attempts=config.chain.rpc_max_attempts,
            chain=config.chain.name,
        )
        reader = OnChainReader(pool, cache)

    logger.info(
        f"Valuation engine ready: {len(config.chain.factories)} factories, "
        f"{len(config.chain.stablecoins)} stablecoins, "
        f"LP analysis {'on' if config.features.enable_lp_analysis else 'off'}"
    )
    return ValuationEngine(config, reader, cache)
