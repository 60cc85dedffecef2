"""
Entry Engine - GST Resolver

Computes base / GST / total for a single monetary value.

Australian GST Overview:
- Standard GST rate: 10%
- Inclusive amounts: GST = Amount - Amount / (1 + Rate)
- Exclusive amounts: GST = Amount x Rate
- Manual: GST amount supplied by the user verbatim

All monetary outputs are rounded half away from zero to 2 decimal places.
Arithmetic is done in Decimal so cent-level assertions are stable.
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Any, NamedTuple, Optional

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

# Largest magnitudes accepted on input; products of the two stay within the
# Numeric(38, 12) storage columns.
MAX_AMOUNT = Decimal("1e15")
MAX_PERCENT = Decimal("1e6")


class GSTType(str, Enum):
    """GST treatment for a field"""
    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"
    MANUAL = "manual"


class GSTBreakdown(NamedTuple):
    base: Decimal
    gst: Decimal
    total: Decimal


def round_currency(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    with localcontext() as ctx:
        # quantize needs every integer digit plus the two cents in precision
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """
    Parse a numeric value from JSON input.

    Numbers are used as-is, numeric strings are parsed. Anything else
    (booleans, None, unparseable text) counts as zero.
    """
    if isinstance(value, bool) or value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            logger.debug(f"Non-numeric value {value!r} treated as 0")
            return ZERO
        if not parsed.is_finite():
            return ZERO
        return parsed
    return ZERO


def resolve_gst(
    amount: Decimal,
    rate: Decimal,
    gst_type: str,
    manual_gst: Optional[Decimal] = None
) -> GSTBreakdown:
    """
    Resolve base, GST and total for one amount.

    Args:
        amount: Entered amount
        rate: GST rate as a percentage (10 for 10%)
        gst_type: inclusive, exclusive or manual (anything else is exclusive)
        manual_gst: User-entered GST, used only for manual treatment

    Returns:
        GSTBreakdown(base, gst, total)
    """
    if gst_type == GSTType.MANUAL.value:
        base = round_currency(amount)
        gst = round_currency(manual_gst if manual_gst is not None else ZERO)
        return GSTBreakdown(base, gst, round_currency(base + gst))

    if rate == 0:
        # Zero-rated lines pass through without rounding
        return GSTBreakdown(amount, ZERO, amount)

    rate_dec = rate / HUNDRED

    if gst_type == GSTType.INCLUSIVE.value:
        gst = amount - (amount / (1 + rate_dec))
        base = amount - gst
        # Total stays the entered amount; base + gst may be a cent off
        return GSTBreakdown(round_currency(base), round_currency(gst), amount)

    gst = round_currency(amount * rate_dec)
    return GSTBreakdown(amount, gst, round_currency(amount + gst))
