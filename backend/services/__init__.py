"""
Valuation Services
Price discovery, LP decomposition, wallet scanning and multi-wallet aggregation
"""

from .price_resolver import ReferencePriceResolver, TokenPriceResolver
from .lp_analyzer import LPPositionAnalyzer, NullLPAnalyzer, looks_like_lp
from .portfolio_aggregator import MultiWalletAggregator, wallet_label
from .wallet_scanner import DiscoveredToken, WalletScanner
from .valuation_engine import ValuationEngine, build_engine

__all__ = [
    # Pricing
    "ReferencePriceResolver",
    "TokenPriceResolver",

    # LP positions
    "LPPositionAnalyzer",
    "NullLPAnalyzer",
    "looks_like_lp",

    # Portfolio
    "MultiWalletAggregator",
    "wallet_label",
    "DiscoveredToken",
    "WalletScanner",

    # MAIN ENTRY POINT
    "ValuationEngine",
    "build_engine",
]
