"""
Configuration Management for the wallet valuation engine
Environment-based configuration with feature flags

Features:
- Environment-based config (dev/staging/prod)
- Chain constants (RPC endpoints, wrapped native, factories, stablecoins)
- Cache TTLs
- Feature flags
- Dynamic reload
"""

import os
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional
from enum import Enum

logger = logging.getLogger("Config")


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass(frozen=True)
class FactoryConfig:
    """AMM factory exposing getPair(tokenA, tokenB)"""
    name: str
    address: str


@dataclass(frozen=True)
class StablecoinConfig:
    """Reference-currency stablecoin. Decimals are fixed per token, never assumed."""
    symbol: str
    address: str
    decimals: int


# PulseChain defaults
PULSECHAIN_RPC_URLS = [
    "https://rpc.pulsechain.com",
    "https://rpc-pulsechain.g4mm4.io",
    "https://pulsechain-rpc.publicnode.com",
]

WPLS_ADDRESS = "0xA1077a294dDE1B09bB078844df40758a5D0f9a27"

# Oldest first
PULSEX_FACTORIES = [
    FactoryConfig("PulseX V1", "0x1715a3E4A142d8b698131108995174F37aEBA10D"),
    FactoryConfig("PulseX V2", "0x29eA7545DEf87022BAdc76323F373EA1e707C523"),
]

PULSECHAIN_STABLECOINS = [
    StablecoinConfig("USDC", "0x15D38573d2feeb82e7ad5187aB8c1D52810B1f07", 6),
    StablecoinConfig("DAI", "0xefD766cCb38EaF1dfd701853BFCe31359239F305", 18),
    StablecoinConfig("USDT", "0x0Cb6F5a34ad42ec934882A05265A7d5F59b51A2f", 6),
]


@dataclass
class ChainConfig:
    """Chain and liquidity-source configuration"""
    name: str = "pulsechain"
    chain_id: int = 369
    native_symbol: str = "PLS"
    native_name: str = "PulseChain"

    rpc_urls: List[str] = field(default_factory=lambda: list(PULSECHAIN_RPC_URLS))
    rpc_max_attempts: int = 3

    wrapped_native: str = WPLS_ADDRESS
    wrapped_native_decimals: int = 18
    factories: List[FactoryConfig] = field(default_factory=lambda: list(PULSEX_FACTORIES))
    stablecoins: List[StablecoinConfig] = field(default_factory=lambda: list(PULSECHAIN_STABLECOINS))

    # Pools with this much wrapped native or less are not trusted for pricing
    min_native_liquidity: Decimal = Decimal("10")
    fallback_reference_price: Decimal = Decimal("0.000032")


@dataclass
class CacheConfig:
    """Cache configuration (seconds)"""
    enabled: bool = True
    reference_ttl: int = 60
    token_ttl: int = 300
    metadata_ttl: int = 3600
    sweep_interval: int = 300


@dataclass
class MonitoringConfig:
    """Monitoring configuration"""
    log_level: str = "INFO"
    sentry_dsn: Optional[str] = None


@dataclass
class FeatureFlags:
    """Feature flags"""
    enable_lp_analysis: bool = True
    enable_native_balance: bool = True


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() == "true"


def _env_list(name: str) -> Optional[List[str]]:
    raw = os.environ.get(name)
    if not raw:
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class EngineConfig:
    """Main application configuration"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True

    chain: ChainConfig = field(default_factory=ChainConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    features: FeatureFlags = field(default_factory=FeatureFlags)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create configuration from environment variables"""
        env = os.environ.get("ENGINE_ENV", "development").lower()

        config = cls(
            environment=Environment(env) if env in [e.value for e in Environment] else Environment.DEVELOPMENT,
            debug=_env_bool("DEBUG", True),
        )

        chain = ChainConfig()
        rpc_urls = _env_list("RPC_URLS")
        if rpc_urls:
            chain.rpc_urls = rpc_urls
        chain.rpc_max_attempts = int(os.environ.get("RPC_MAX_ATTEMPTS", chain.rpc_max_attempts))
        chain.wrapped_native = os.environ.get("WRAPPED_NATIVE_ADDRESS", chain.wrapped_native)
        factories = _env_list("FACTORY_ADDRESSES")
        if factories:
            chain.factories = [FactoryConfig(f"factory-{i}", addr) for i, addr in enumerate(factories)]
        if "MIN_NATIVE_LIQUIDITY" in os.environ:
            chain.min_native_liquidity = Decimal(os.environ["MIN_NATIVE_LIQUIDITY"])
        if "FALLBACK_REFERENCE_PRICE" in os.environ:
            chain.fallback_reference_price = Decimal(os.environ["FALLBACK_REFERENCE_PRICE"])
        config.chain = chain

        config.cache = CacheConfig(
            enabled=_env_bool("CACHE_ENABLED", True),
            reference_ttl=int(os.environ.get("REFERENCE_PRICE_TTL", "60")),
            token_ttl=int(os.environ.get("TOKEN_PRICE_TTL", "300")),
            metadata_ttl=int(os.environ.get("TOKEN_METADATA_TTL", "3600")),
            sweep_interval=int(os.environ.get("CACHE_SWEEP_INTERVAL", "300")),
        )

        config.features = FeatureFlags(
            enable_lp_analysis=_env_bool("ENABLE_LP_ANALYSIS", True),
            enable_native_balance=_env_bool("ENABLE_NATIVE_BALANCE", True),
        )

        config.monitoring = MonitoringConfig(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            sentry_dsn=os.environ.get("SENTRY_DSN"),
        )

        if config.environment == Environment.PRODUCTION:
            config.debug = False
            config.monitoring.log_level = "WARNING"

        return config

    def to_dict(self) -> Dict:
        """Convert to dictionary (hiding secrets)"""
        def sanitize(obj):
            if isinstance(obj, dict):
                return {k: sanitize(v) for k, v in obj.items() if "dsn" not in k.lower() and "secret" not in k.lower()}
            elif isinstance(obj, list):
                return [sanitize(v) for v in obj]
            elif hasattr(obj, '__dataclass_fields__'):
                return sanitize({k: getattr(obj, k) for k in obj.__dataclass_fields__})
            elif isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, Decimal):
                return str(obj)
            else:
                return obj

        return sanitize(self)


# ============================================
# GLOBAL ACCESSORS
# ============================================

_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get the process configuration, loading it on first use"""
    global _config
    if _config is None:
        _config = EngineConfig.from_env()
        logger.info(f"Configuration loaded for environment: {_config.environment.value}")
    return _config


def reload_config() -> EngineConfig:
    """Reload configuration from environment"""
    global _config
    _config = EngineConfig.from_env()
    logger.info("Configuration reloaded")
    return _config
