"""
salesdocs/calculations.py

Line and document totals for quotations, proforma invoices and invoices.

Rules:
- All arithmetic is Decimal. Floats are converted through str() so 91.3 stays 91.3.
- Every derived money field is quantized to 2 decimals with ROUND_HALF_UP.
  Intermediate products stay exact, so recomputing the same lines always
  yields identical totals.
- Out-of-range inputs are clamped (negative quantity/price -> 0, percents to
  [0, 100]). Rejecting bad form input is the job of validation.py.

IMPORTANT:
- Nothing here touches Flask or the database. Models call aggregate() from
  recalc_totals(); the /api/calculate endpoint calls it directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from .errors import InvalidAmountError
from .kinds import AggregationMode, DocumentKind

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
DEFAULT_VAT_PERCENT = Decimal("15")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def to_decimal(value, default: Decimal = ZERO) -> Decimal:
    """
    Convert int/str/float/Decimal/None to Decimal.

    None and empty strings give `default`. Non-numeric or non-finite values
    raise InvalidAmountError.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        raw = str(value).strip()
        if raw == "":
            return default
        try:
            result = Decimal(raw)
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise InvalidAmountError(f"Not a finite number: {value!r}")
    return result


def money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def rate(x: Decimal) -> Decimal:
    """Quantity or percent at storage scale (4 decimals, half-up)."""
    return x.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def clamp(value: Decimal, low: Decimal, high: Optional[Decimal] = None) -> Decimal:
    if value < low:
        return low
    if high is not None and value > high:
        return high
    return value


def _percent(value, default: Decimal) -> Decimal:
    return clamp(to_decimal(value, default), Decimal("0"), HUNDRED)


# ---------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class LineItem:
    """
    One priced row. vat_percent=None means "not set on the line"; the
    document VAT percent (or the default rate) is used instead.
    """

    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    vat_percent: Optional[Decimal] = None


@dataclass(frozen=True)
class LineResult:
    line_subtotal: Decimal
    discount_amount: Decimal
    vat_value: Decimal
    amount: Decimal
    # Clamped inputs actually used, so callers persist what was computed.
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    vat_percent: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    discount: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    lines: Tuple[LineResult, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "discount": self.discount,
            "vat_amount": self.vat_amount,
            "total_amount": self.total_amount,
        }


# ---------------------------------------------------------------------
# Line calculator
# ---------------------------------------------------------------------
def compute_line(
    quantity,
    unit_price,
    discount_percent=None,
    vat_percent=None,
    default_vat_percent: Decimal = DEFAULT_VAT_PERCENT,
) -> LineResult:
    """
    Compute VAT value and amount of one line.

        line_subtotal  = quantity * unit_price
        discount       = line_subtotal * discount% / 100
        after_discount = line_subtotal - discount
        vat_value      = after_discount * vat% / 100
        amount         = after_discount + vat_value

    vat_value and amount are rounded half-up to 2 decimals. amount is
    rounded from the exact value, so it always equals
    round2(q * p * (1 - d/100) * (1 + v/100)).
    """
    qty = clamp(to_decimal(quantity), Decimal("0"))
    price = clamp(to_decimal(unit_price), Decimal("0"))
    disc_pct = _percent(discount_percent, Decimal("0"))
    vat_pct = _percent(vat_percent, to_decimal(default_vat_percent, DEFAULT_VAT_PERCENT))

    line_subtotal = qty * price
    discount_amount = line_subtotal * disc_pct / HUNDRED
    after_discount = line_subtotal - discount_amount
    vat_exact = after_discount * vat_pct / HUNDRED

    return LineResult(
        line_subtotal=line_subtotal,
        discount_amount=discount_amount,
        vat_value=money(vat_exact),
        amount=money(after_discount + vat_exact),
        quantity=qty,
        unit_price=price,
        discount_percent=disc_pct,
        vat_percent=vat_pct,
    )


# ---------------------------------------------------------------------
# Document aggregator
# ---------------------------------------------------------------------
def mode_for_kind(kind: DocumentKind) -> AggregationMode:
    return DocumentKind(kind).mode


def aggregate(
    lines: Iterable[LineItem],
    document_discount_percent=None,
    document_vat_percent=None,
    mode: AggregationMode = AggregationMode.BLENDED,
    default_vat_percent: Decimal = DEFAULT_VAT_PERCENT,
) -> DocumentTotals:
    """
    Fold lines into subtotal, discount, VAT and grand total.

    subtotal is the gross sum of quantity * unit_price.

    BLENDED (quotations, proforma invoices):
        discount = sum(line discounts) + subtotal * document_discount% / 100
    LINE_VAT (invoices):
        discount = subtotal * document_discount% / 100 if supplied, else 0

    In both modes vat_amount = sum(line vat_value) and
    total_amount = subtotal - discount + vat_amount.

    document_vat_percent is used only for lines without their own VAT percent.
    An empty line list gives all zeros.
    """
    mode = AggregationMode(mode)
    line_default_vat = (
        to_decimal(document_vat_percent)
        if document_vat_percent not in (None, "")
        else to_decimal(default_vat_percent, DEFAULT_VAT_PERCENT)
    )

    results = tuple(
        compute_line(
            line.quantity,
            line.unit_price,
            line.discount_percent,
            line.vat_percent,
            default_vat_percent=line_default_vat,
        )
        for line in lines
    )

    gross = sum((r.line_subtotal for r in results), Decimal("0"))
    subtotal = money(gross)
    vat_amount = sum((r.vat_value for r in results), ZERO)

    document_discount = ZERO
    if document_discount_percent not in (None, ""):
        pct = _percent(document_discount_percent, Decimal("0"))
        document_discount = money(subtotal * pct / HUNDRED)

    if mode is AggregationMode.BLENDED:
        line_discounts = money(sum((r.discount_amount for r in results), Decimal("0")))
        discount = line_discounts + document_discount
    else:
        discount = document_discount

    total_amount = subtotal - discount + vat_amount

    return DocumentTotals(
        subtotal=money(subtotal),
        discount=money(discount),
        vat_amount=money(vat_amount),
        total_amount=money(total_amount),
        lines=results,
    )
