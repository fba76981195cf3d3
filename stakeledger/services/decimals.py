"""Decimal arithmetic for the ledger: context, constants, unit conversion."""

from collections.abc import Callable
from decimal import ROUND_HALF_EVEN, Context, Decimal, localcontext
from functools import wraps
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

# 18-decimal token amounts times PPM ratios need well over the default 28 digits.
LEDGER_CONTEXT: Context = Context(prec=78, rounding=ROUND_HALF_EVEN)

TOKEN_DECIMALS: int = 18
FEE_CUT_PRECISION: int = 1_000_000
MAX_DELEGATION_MULTIPLIER: int = 16

ZERO: Decimal = Decimal(0)
ONE: Decimal = Decimal(1)
SIXTEEN: Decimal = Decimal(MAX_DELEGATION_MULTIPLIER)


def exact(func: Callable[P, R]) -> Callable[P, R]:
    """Run ``func`` under the ledger decimal context."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with localcontext(LEDGER_CONTEXT):
            return func(*args, **kwargs)

    return wrapper


@exact
def token_amount_to_decimal(raw: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Convert a raw base-unit token amount to whole tokens."""
    return Decimal(raw) / (Decimal(10) ** decimals)


@exact
def fee_cut_to_ratio(raw: int) -> Decimal:
    """Convert a parts-per-million fee cut into a ratio in [0, 1]."""
    return Decimal(raw) / Decimal(FEE_CUT_PRECISION)


@exact
def safe_div(numerator: Decimal, denominator: Decimal | int) -> Decimal:
    if denominator == 0:
        return ZERO
    return numerator / Decimal(denominator)
