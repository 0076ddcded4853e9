"""
On-chain Data Reader
Read-only contract calls against AMM factories, pairs and ERC-20 tokens
through the round-robin provider pool.

Pair reserves are re-read on every call. Token metadata is cached because
symbol/name/decimals practically never change.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from web3 import Web3

from infrastructure.errors import BlockchainError, ReadResult, classify_read_error
from infrastructure.price_cache import CacheKind, PriceCache
from infrastructure.rpc import ProviderPool
from models.tokens import PairReserves, TokenMetadata

logger = logging.getLogger("OnChain")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Uniswap V2 style factory (PulseX V1 / V2)
FACTORY_ABI = [
    {
        "constant": True,
        "inputs": [
            {"name": "tokenA", "type": "address"},
            {"name": "tokenB", "type": "address"}
        ],
        "name": "getPair",
        "outputs": [{"name": "pair", "type": "address"}],
        "type": "function"
    },
]

# Uniswap V2 style pair. The pair is itself the LP token, so it carries
# the ERC-20 surface too.
PAIR_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"name": "reserve0", "type": "uint112"},
            {"name": "reserve1", "type": "uint112"},
            {"name": "blockTimestampLast", "type": "uint32"}
        ],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "token0",
        "outputs": [{"name": "", "type": "address"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "token1",
        "outputs": [{"name": "", "type": "address"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function"
    },
]

# ERC20 ABI for token info
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
]

METADATA_DEFAULTS = {
    "symbol": "Unknown",
    "name": "Unknown",
    "decimals": 18,
}

LP_METADATA_DEFAULTS = {
    "symbol": "PLP",
    "name": "PulseX LP Token",
    "decimals": 18,
}


@dataclass(frozen=True)
class LPState:
    """Everything read from an LP contract for one holder"""
    lp_address: str
    reserves: PairReserves
    total_supply: int
    holder_balance: int
    decimals: int
    symbol: str
    name: str

    @property
    def token0(self) -> str:
        return self.reserves.token0

    @property
    def token1(self) -> str:
        return self.reserves.token1


class OnChainReader:
    """Contract-call surface used by the resolvers and the LP analyzer"""

    def __init__(self, pool: ProviderPool, cache: Optional[PriceCache] = None):
        self.pool = pool
        self.cache = cache

    async def _call(
        self,
        address: str,
        abi: list,
        fn_name: str,
        *args: Any,
        max_attempts: Optional[int] = None,
    ) -> Any:
        checksum = Web3.to_checksum_address(address)

        async def run(w3):
            contract = w3.eth.contract(address=checksum, abi=abi)
            return await contract.functions[fn_name](*args).call()

        return await self.pool.execute(run, max_attempts=max_attempts)

    async def get_pair(self, factory: str, token_a: str, token_b: str) -> Optional[str]:
        """Pair address for (token_a, token_b) on factory, None when the pair does not exist"""
        pair = await self._call(
            factory,
            FACTORY_ABI,
            "getPair",
            Web3.to_checksum_address(token_a),
            Web3.to_checksum_address(token_b),
        )
        if not pair or pair.lower() == ZERO_ADDRESS:
            return None
        return pair.lower()

    async def get_reserves(self, pair: str) -> PairReserves:
        reserves, token0, token1 = await asyncio.gather(
            self._call(pair, PAIR_ABI, "getReserves"),
            self._call(pair, PAIR_ABI, "token0"),
            self._call(pair, PAIR_ABI, "token1"),
        )
        return PairReserves(
            pair_address=pair.lower(),
            token0=token0.lower(),
            token1=token1.lower(),
            reserve0=int(reserves[0]),
            reserve1=int(reserves[1]),
            block_timestamp_last=int(reserves[2]),
        )

    async def read_field(self, token: str, field: str, abi: Optional[list] = None) -> ReadResult:
        """
        Single metadata read that never raises.

        Reverts are not retried on other endpoints: a contract that reverts
        on one node reverts on all of them.
        """
        try:
            value = await self._call(token, abi or ERC20_ABI, field, max_attempts=1)
        except Exception as e:
            # the pool wraps the node error, classify what the node said
            cause = e.__cause__ if isinstance(e, BlockchainError) and e.__cause__ else e
            kind = classify_read_error(cause)
            logger.debug(f"{field}() failed on {token}: {kind.value} ({cause})")
            return ReadResult.failure(kind, str(cause))
        return ReadResult.success(value)

    async def read_token_metadata(self, token: str) -> TokenMetadata:
        """symbol / name / decimals, each defaulted independently"""
        if self.cache is not None:
            cached = self.cache.get_kind(CacheKind.TOKEN_METADATA, token)
            if cached is not None:
                return cached

        symbol, name, decimals = await asyncio.gather(
            self.read_field(token, "symbol"),
            self.read_field(token, "name"),
            self.read_field(token, "decimals"),
        )
        metadata = TokenMetadata(
            address=token.lower(),
            symbol=symbol.unwrap_or(METADATA_DEFAULTS["symbol"]),
            name=name.unwrap_or(METADATA_DEFAULTS["name"]),
            decimals=int(decimals.unwrap_or(METADATA_DEFAULTS["decimals"])),
        )

        if self.cache is not None:
            self.cache.set_kind(CacheKind.TOKEN_METADATA, token, metadata)
        return metadata

    async def read_lp_state(
        self,
        lp_address: str,
        holder: Optional[str] = None,
        known_balance: Optional[int] = None,
    ) -> LPState:
        """
        Read pair state, supply and LP metadata in parallel.

        balanceOf(holder) is only queried when known_balance is None.
        Structural reads (reserves, supply, balance) raise on failure.
        """
        if known_balance is None and holder is None:
            raise ValueError("read_lp_state needs a holder or a known balance")

        async def holder_balance() -> int:
            if known_balance is not None:
                return int(known_balance)
            return int(await self._call(lp_address, PAIR_ABI, "balanceOf", Web3.to_checksum_address(holder)))

        reserves, total_supply, balance, decimals, symbol, name = await asyncio.gather(
            self.get_reserves(lp_address),
            self._call(lp_address, PAIR_ABI, "totalSupply"),
            holder_balance(),
            self.read_field(lp_address, "decimals", PAIR_ABI),
            self.read_field(lp_address, "symbol", PAIR_ABI),
            self.read_field(lp_address, "name", PAIR_ABI),
        )

        return LPState(
            lp_address=lp_address.lower(),
            reserves=reserves,
            total_supply=int(total_supply),
            holder_balance=balance,
            decimals=int(decimals.unwrap_or(LP_METADATA_DEFAULTS["decimals"])),
            symbol=symbol.unwrap_or(LP_METADATA_DEFAULTS["symbol"]),
            name=name.unwrap_or(LP_METADATA_DEFAULTS["name"]),
        )

    async def is_pair_contract(self, token: str) -> bool:
        """True when token0() and token1() both answer with distinct addresses"""
        token0, token1 = await asyncio.gather(
            self.read_field(token, "token0", PAIR_ABI),
            self.read_field(token, "token1", PAIR_ABI),
        )
        if not (token0.ok and token1.ok) or not token0.value or not token1.value:
            return False
        return token0.value.lower() != token1.value.lower()

    async def get_native_balance(self, wallet: str) -> int:
        checksum = Web3.to_checksum_address(wallet)
        return int(await self.pool.execute(lambda w3: w3.eth.get_balance(checksum)))
