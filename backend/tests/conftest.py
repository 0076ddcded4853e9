"""
Pytest Configuration for Valuation Engine Tests

Run all tests: python -m pytest backend/tests/ -v
Run unit tests only: python -m pytest backend/tests/ -v -m "not integration"
Run integration tests: python -m pytest backend/tests/ -v -m integration
"""

import pytest
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

from infrastructure.config import (
    PULSECHAIN_STABLECOINS,
    PULSEX_FACTORIES,
    WPLS_ADDRESS,
    ChainConfig,
)
from infrastructure.price_cache import PriceCache
from fakes import FakeChainReader, FakeClock


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

@pytest.fixture
def test_addresses():
    """PulseChain addresses used by the default configuration"""
    return {
        "WPLS": WPLS_ADDRESS.lower(),
        "FACTORY_V1": PULSEX_FACTORIES[0].address.lower(),
        "FACTORY_V2": PULSEX_FACTORIES[1].address.lower(),
        "USDC": PULSECHAIN_STABLECOINS[0].address.lower(),
        "DAI": PULSECHAIN_STABLECOINS[1].address.lower(),
        "USDT": PULSECHAIN_STABLECOINS[2].address.lower(),
        "wallet_a": "0x1111111111111111111111111111111111111111",
        "wallet_b": "0x2222222222222222222222222222222222222222",
    }


@pytest.fixture
def chain():
    return ChainConfig()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return PriceCache(clock=clock)


@pytest.fixture
def fake_reader(test_addresses):
    reader = FakeChainReader()
    reader.add_token(test_addresses["WPLS"], "WPLS", 18, "Wrapped Pulse")
    reader.add_token(test_addresses["USDC"], "USDC", 6)
    reader.add_token(test_addresses["DAI"], "DAI", 18)
    reader.add_token(test_addresses["USDT"], "USDT", 6)
    return reader


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (use real RPC endpoints)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
