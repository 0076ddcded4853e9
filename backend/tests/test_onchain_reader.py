"""
On-chain Reader Tests
Contract reads through the provider pool against a scripted web3 handle

Run: python -m pytest backend/tests/test_onchain_reader.py -v
"""

import pytest

from data_sources.onchain import ZERO_ADDRESS, OnChainReader
from infrastructure.errors import BlockchainError
from infrastructure.price_cache import PriceCache
from infrastructure.rpc import ProviderPool
from fakes import addr

FACTORY = addr(0x500)
TOKEN_A = addr(0x501)
TOKEN_B = addr(0x502)
PAIR = addr(0x503)
HOLDER = addr(0x504)


class ContractLogicError(Exception):
    """Named like web3's revert error so it classifies as a revert"""


class _Call:
    def __init__(self, eth, address, fn_name, args):
        self.eth, self.address, self.fn_name, self.args = eth, address, fn_name, args

    async def call(self):
        self.eth.calls.append((self.address, self.fn_name, self.args))
        result = self.eth.responses.get((self.address, self.fn_name))
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(*self.args)
        return result


class _Functions:
    def __init__(self, eth, address):
        self.eth, self.address = eth, address

    def __getitem__(self, fn_name):
        return lambda *args: _Call(self.eth, self.address, fn_name, args)


class _Contract:
    def __init__(self, eth, address):
        self.functions = _Functions(eth, address)


class ScriptedEth:
    def __init__(self):
        self.responses = {}
        self.balances = {}
        self.calls = []

    def contract(self, address, abi):
        return _Contract(self, address.lower())

    async def get_balance(self, address):
        return self.balances.get(address.lower(), 0)


class ScriptedWeb3:
    def __init__(self):
        self.eth = ScriptedEth()

    def respond(self, address, fn_name, value):
        self.eth.responses[(address.lower(), fn_name)] = value


@pytest.fixture
def w3():
    return ScriptedWeb3()


@pytest.fixture
def reader(w3):
    return OnChainReader(ProviderPool([w3], max_attempts=2))


def calls_to(w3, fn_name):
    return [c for c in w3.eth.calls if c[1] == fn_name]


class TestPairReads:

    @pytest.mark.asyncio
    async def test_get_pair_lowercases_address(self, reader, w3):
        w3.respond(FACTORY, "getPair", PAIR.upper().replace("0X", "0x"))
        assert await reader.get_pair(FACTORY, TOKEN_A, TOKEN_B) == PAIR

    @pytest.mark.asyncio
    async def test_zero_address_means_no_pair(self, reader, w3):
        w3.respond(FACTORY, "getPair", ZERO_ADDRESS)
        assert await reader.get_pair(FACTORY, TOKEN_A, TOKEN_B) is None

    @pytest.mark.asyncio
    async def test_get_reserves(self, reader, w3):
        w3.respond(PAIR, "getReserves", [10 ** 30, 5, 1700000000])
        w3.respond(PAIR, "token0", TOKEN_A)
        w3.respond(PAIR, "token1", TOKEN_B)

        reserves = await reader.get_reserves(PAIR)

        assert reserves.reserve0 == 10 ** 30
        assert reserves.reserve1 == 5
        assert reserves.oriented(TOKEN_B) == (5, 10 ** 30)
        assert reserves.block_timestamp_last == 1700000000

    @pytest.mark.asyncio
    async def test_structural_failure_raises_after_retries(self, reader, w3):
        w3.respond(FACTORY, "getPair", ConnectionError("node down"))

        with pytest.raises(BlockchainError):
            await reader.get_pair(FACTORY, TOKEN_A, TOKEN_B)

        assert len(calls_to(w3, "getPair")) == 2


class TestMetadata:

    @pytest.mark.asyncio
    async def test_fields_default_independently(self, reader, w3):
        w3.respond(TOKEN_A, "symbol", "HEX")
        w3.respond(TOKEN_A, "name", ContractLogicError("execution reverted"))
        w3.respond(TOKEN_A, "decimals", 8)

        metadata = await reader.read_token_metadata(TOKEN_A)

        assert metadata.symbol == "HEX"
        assert metadata.name == "Unknown"
        assert metadata.decimals == 8
        # reverts are not retried
        assert len(calls_to(w3, "name")) == 1
        print("✅ name() reverted, symbol and decimals kept")

    @pytest.mark.asyncio
    async def test_everything_reverts(self, reader, w3):
        for field in ("symbol", "name", "decimals"):
            w3.respond(TOKEN_B, field, ContractLogicError("execution reverted"))

        metadata = await reader.read_token_metadata(TOKEN_B)

        assert (metadata.symbol, metadata.name, metadata.decimals) == ("Unknown", "Unknown", 18)

    @pytest.mark.asyncio
    async def test_read_field_classifies_failure(self, reader, w3):
        w3.respond(TOKEN_A, "symbol", ContractLogicError("execution reverted"))
        w3.respond(TOKEN_A, "decimals", TimeoutError("timed out"))

        symbol = await reader.read_field(TOKEN_A, "symbol")
        decimals = await reader.read_field(TOKEN_A, "decimals")

        assert not symbol.ok and symbol.error.value == "reverted"
        assert not decimals.ok and decimals.error.value == "timeout"

    @pytest.mark.asyncio
    async def test_metadata_cached(self, w3, clock):
        reader = OnChainReader(ProviderPool([w3]), cache=PriceCache(clock=clock))
        w3.respond(TOKEN_A, "symbol", "HEX")
        w3.respond(TOKEN_A, "name", "HEX")
        w3.respond(TOKEN_A, "decimals", 8)

        first = await reader.read_token_metadata(TOKEN_A)
        second = await reader.read_token_metadata(TOKEN_A)

        assert first == second
        assert len(calls_to(w3, "symbol")) == 1


class TestLPState:

    @pytest.fixture
    def lp_contract(self, w3):
        w3.respond(PAIR, "getReserves", [200, 800, 0])
        w3.respond(PAIR, "token0", TOKEN_A)
        w3.respond(PAIR, "token1", TOKEN_B)
        w3.respond(PAIR, "totalSupply", 1000)
        w3.respond(PAIR, "balanceOf", lambda holder: 50)
        w3.respond(PAIR, "decimals", 18)
        w3.respond(PAIR, "symbol", ContractLogicError("execution reverted"))
        w3.respond(PAIR, "name", "PulseX LP")
        return w3

    @pytest.mark.asyncio
    async def test_reads_balance_for_holder(self, reader, lp_contract):
        state = await reader.read_lp_state(PAIR, holder=HOLDER)

        assert state.holder_balance == 50
        assert state.total_supply == 1000
        assert (state.token0, state.token1) == (TOKEN_A, TOKEN_B)
        assert state.symbol == "PLP"
        assert state.name == "PulseX LP"

    @pytest.mark.asyncio
    async def test_known_balance_skips_balance_of(self, reader, lp_contract):
        state = await reader.read_lp_state(PAIR, known_balance=7)

        assert state.holder_balance == 7
        assert calls_to(lp_contract, "balanceOf") == []

    @pytest.mark.asyncio
    async def test_needs_holder_or_balance(self, reader):
        with pytest.raises(ValueError):
            await reader.read_lp_state(PAIR)

    @pytest.mark.asyncio
    async def test_is_pair_contract(self, reader, lp_contract):
        lp_contract.respond(TOKEN_A, "token0", ContractLogicError("execution reverted"))

        assert await reader.is_pair_contract(PAIR)
        assert not await reader.is_pair_contract(TOKEN_A)


class TestNativeBalance:

    @pytest.mark.asyncio
    async def test_native_balance(self, reader, w3):
        w3.eth.balances[HOLDER] = 10 ** 24
        assert await reader.get_native_balance(HOLDER) == 10 ** 24
