"""
Valuation Router - Token prices, LP positions and wallet/portfolio scans
Integer balances travel as decimal strings in both directions.
"""
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import List, Optional
from web3 import Web3

from infrastructure.errors import ErrorCode, NotFoundError, ValidationError
from services.valuation_engine import ValuationEngine
from services.wallet_scanner import DiscoveredToken

router = APIRouter(prefix="/api/valuation", tags=["valuation"])

MAX_WALLETS = 20


class HoldingIn(BaseModel):
    address: str
    balance: str  # raw integer as a decimal string
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = Field(default=None, ge=0, le=77)


class LPRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lp_address: str = Field(alias="lpAddress")
    holder: Optional[str] = None
    balance: Optional[str] = None


class WalletRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str
    tokens: List[HoldingIn] = []
    analyze_lps: bool = Field(default=True, alias="analyzeLps")


class WalletEntry(BaseModel):
    address: str
    tokens: List[HoldingIn] = []


class PortfolioRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    wallets: List[WalletEntry]
    analyze_lps: bool = Field(default=True, alias="analyzeLps")
    # only list tokens worth at least this much
    min_value: Optional[Decimal] = Field(default=None, ge=0, alias="minValue")


def get_engine(request: Request) -> ValuationEngine:
    return request.app.state.engine


def require_address(value: str, field: str = "address") -> str:
    if not value or not Web3.is_address(value):
        raise ValidationError(f"Invalid {field}: {value}", {"field": field})
    return value.lower()


def parse_balance(value: str, field: str = "balance") -> int:
    try:
        balance = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value}", {"field": field}) from None
    if balance < 0:
        raise ValidationError(f"Negative {field}: {value}", {"field": field})
    return balance


def to_discovered(holdings: List[HoldingIn]) -> List[DiscoveredToken]:
    return [
        DiscoveredToken(
            address=require_address(h.address, "token address"),
            raw_balance=parse_balance(h.balance),
            symbol=h.symbol,
            name=h.name,
            decimals=h.decimals,
        )
        for h in holdings
    ]


@router.get("/reference-price")
async def get_reference_price(engine: ValuationEngine = Depends(get_engine)):
    """Wrapped-native price and the pair it came from"""
    quote = await engine.resolve_reference_quote()
    return {"success": True, **quote.to_dict()}


@router.get("/tokens/{address}/price")
async def get_token_price(
    address: str,
    decimals: Optional[int] = Query(default=None, ge=0, le=77),
    engine: ValuationEngine = Depends(get_engine),
):
    address = require_address(address)
    quote = await engine.resolve_token_price(address, decimals)
    return {"success": True, "address": address, **quote.to_dict()}


@router.post("/lp")
async def analyze_lp(req: LPRequest, engine: ValuationEngine = Depends(get_engine)):
    lp_address = require_address(req.lp_address, "lpAddress")
    holder = require_address(req.holder, "holder") if req.holder else None
    balance = parse_balance(req.balance) if req.balance is not None else None

    if holder is None and balance is None:
        raise ValidationError("Either holder or balance is required")

    position = await engine.analyze_lp_position(lp_address, balance, holder)
    if position is None:
        raise NotFoundError("LP position", lp_address, code=ErrorCode.POSITION_NOT_VALUED)

    return {"success": True, "position": position.to_dict()}


@router.post("/wallet")
async def scan_wallet(req: WalletRequest, engine: ValuationEngine = Depends(get_engine)):
    wallet = require_address(req.address)
    result = await engine.scan_wallet(wallet, to_discovered(req.tokens), req.analyze_lps)
    return {"success": True, **result.to_dict()}


@router.post("/portfolio")
async def scan_portfolio(req: PortfolioRequest, engine: ValuationEngine = Depends(get_engine)):
    if not req.wallets:
        raise ValidationError("At least one wallet is required")
    if len(req.wallets) > MAX_WALLETS:
        raise ValidationError(f"At most {MAX_WALLETS} wallets per request", {"count": len(req.wallets)})

    requests = [
        (require_address(w.address), to_discovered(w.tokens))
        for w in req.wallets
    ]
    result = await engine.scan_portfolio(requests, req.analyze_lps, req.min_value)
    return {"success": True, **result.to_dict()}


@router.get("/stats")
async def get_stats(request: Request, engine: ValuationEngine = Depends(get_engine)):
    stats = engine.get_stats()
    stats["config"] = engine.config.to_dict()
    tracker = getattr(request.app.state, "error_tracker", None)
    if tracker is not None:
        stats["errors"] = tracker.get_stats()
    return {"success": True, **stats}
