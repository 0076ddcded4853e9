"""
Token unit helpers.
Raw on-chain balances are integers; everything user-facing is a Decimal.
"""
from decimal import Context, Decimal, ROUND_HALF_EVEN

# uint256 has 78 decimal digits, so nothing formatted from chain data is rounded
UNIT_CONTEXT = Context(prec=80, rounding=ROUND_HALF_EVEN)

ZERO = Decimal(0)
HUNDRED = Decimal(100)


def format_units(raw: int, decimals: int) -> Decimal:
    """Exact raw / 10**decimals."""
    return Decimal(int(raw)).scaleb(-int(decimals), UNIT_CONTEXT)


def safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    if not denominator:
        return ZERO
    return UNIT_CONTEXT.divide(numerator, denominator)
