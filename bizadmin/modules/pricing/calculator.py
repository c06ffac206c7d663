"""
Line-item pricing.

Every amount here is a plain float and is never rounded; rounding belongs to
display formatting (utils.helpers.fmt_money).

Tax-inclusive lines are priced according to a TaxPolicy chosen per document
kind (see config.DOCUMENT_TAX_POLICY):
  - ON_TOP:  tax = after_discount * t/100,       total = after_discount + tax
  - EXTRACT: tax = after_discount * t/(100 + t), total = after_discount
Exclusive lines always add tax on top.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol


class TaxPolicy(str, Enum):
    ON_TOP = "on_top"
    EXTRACT = "extract"


@dataclass(frozen=True)
class LineAmounts:
    base_amount: float
    discount_amount: float
    after_discount: float
    tax_amount: float
    line_total: float


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: float        # sum of after-discount amounts
    discount_total: float
    tax_amount: float
    total_amount: float    # sum of line totals

    def as_header(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
        }


class _Priced(Protocol):
    quantity: float
    unit_price: float
    discount_percent: float
    tax_percent: float
    tax_inclusive: bool


def _num(x) -> float:
    try:
        return float(x or 0)
    except (TypeError, ValueError):
        return 0.0


def calculate_line(
    quantity: float,
    unit_price: float,
    discount_percent: float = 0.0,
    tax_percent: float = 0.0,
    tax_inclusive: bool = False,
    policy: TaxPolicy = TaxPolicy.ON_TOP,
) -> LineAmounts:
    """
    Price one line. Never raises: unparsable inputs count as 0, so a zero
    quantity simply yields zero tax and a zero total.
    Range checks (negative qty/price) are the caller's responsibility.
    """
    qty = _num(quantity)
    price = _num(unit_price)
    disc = _num(discount_percent)
    rate = _num(tax_percent)

    base = qty * price
    discount = base * (disc / 100)
    after = base - discount

    if rate == 0:
        tax = 0.0
        total = after
    elif tax_inclusive and TaxPolicy(policy) is TaxPolicy.EXTRACT:
        tax = after * (rate / (100 + rate))
        total = after
    else:
        tax = after * (rate / 100)
        total = after + tax

    return LineAmounts(
        base_amount=base,
        discount_amount=discount,
        after_discount=after,
        tax_amount=tax,
        line_total=total,
    )


def amounts_for(item: _Priced | dict, policy: TaxPolicy = TaxPolicy.ON_TOP) -> LineAmounts:
    """calculate_line() over anything carrying the five pricing fields (object or dict)."""
    get = item.get if isinstance(item, dict) else (lambda k, d=None: getattr(item, k, d))
    return calculate_line(
        get("quantity", 0),
        get("unit_price", 0),
        get("discount_percent", 0),
        get("tax_percent", 0),
        bool(get("tax_inclusive", False)),
        policy,
    )


def aggregate(items: Iterable[_Priced | dict], policy: TaxPolicy = TaxPolicy.ON_TOP) -> DocumentTotals:
    """
    Recompute document totals from scratch. There is no incremental path:
    callers pass the full, current item list every time.
    """
    subtotal = discount = tax = total = 0.0
    for it in items:
        a = amounts_for(it, policy)
        subtotal += a.after_discount
        discount += a.discount_amount
        tax += a.tax_amount
        total += a.line_total
    return DocumentTotals(
        subtotal=subtotal,
        discount_total=discount,
        tax_amount=tax,
        total_amount=total,
    )


def check_totals(totals: DocumentTotals, tolerance: float = 0.01) -> list[str]:
    """
    Sanity-check a totals block. Returns a list of problems; empty means OK.
    Only meaningful for ON_TOP documents, where total = subtotal + tax.
    """
    errors: list[str] = []
    if totals.subtotal < 0:
        errors.append("Subtotal cannot be negative")
    if totals.tax_amount < 0:
        errors.append("Tax total cannot be negative")
    if totals.total_amount < 0:
        errors.append("Total amount cannot be negative")
    expected = totals.subtotal + totals.tax_amount
    if abs(expected - totals.total_amount) > tolerance:
        errors.append(
            f"Total amount mismatch: calculated {expected:.2f}, got {totals.total_amount:.2f}"
        )
    return errors


def to_tax_exclusive(inclusive_price: float, tax_percent: float) -> float:
    if tax_percent <= 0:
        return inclusive_price
    return inclusive_price / (1 + tax_percent / 100)


def to_tax_inclusive(exclusive_price: float, tax_percent: float) -> float:
    if tax_percent <= 0:
        return exclusive_price
    return exclusive_price * (1 + tax_percent / 100)
