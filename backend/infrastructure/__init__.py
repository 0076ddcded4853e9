"""
Valuation Engine Infrastructure Module
Configuration, errors, RPC pool, caching and request coalescing
"""

from .errors import (
    EngineError,
    ValidationError,
    NotFoundError,
    BlockchainError,
    ErrorCode,
    ErrorTracker,
    ReadErrorKind,
    ReadResult,
    register_exception_handlers,
)

from .config import (
    EngineConfig,
    ChainConfig,
    CacheConfig,
    Environment,
    FeatureFlags,
    get_config,
    reload_config,
)

from .price_cache import CacheKind, PriceCache
from .request_coalescer import RequestCoalescer
from .rpc import ProviderPool, RoundRobinSelector

__all__ = [
    # Errors
    "EngineError",
    "ValidationError",
    "NotFoundError",
    "BlockchainError",
    "ErrorCode",
    "ErrorTracker",
    "ReadErrorKind",
    "ReadResult",
    "register_exception_handlers",

    # Config
    "EngineConfig",
    "ChainConfig",
    "CacheConfig",
    "Environment",
    "FeatureFlags",
    "get_config",
    "reload_config",

    # Cache / RPC
    "CacheKind",
    "PriceCache",
    "RequestCoalescer",
    "ProviderPool",
    "RoundRobinSelector",
]
