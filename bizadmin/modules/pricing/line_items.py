"""
Immutable draft state for a document being edited, plus the reducer that is
the single path by which line items (and therefore totals) change.

    draft = new_draft(TaxPolicy.ON_TOP, default_tax_rate=16)
    draft = apply_edit(draft, AddItem(quantity=2, unit_price=100, tax_percent=16))
    draft = apply_edit(draft, UpdateItem(0, {"quantity": 3}))
    draft.totals.total_amount
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace, fields
from typing import Any, Iterable, Union

from .calculator import TaxPolicy, DocumentTotals, calculate_line, aggregate

_EDITABLE = (
    "quantity",
    "unit_price",
    "discount_percent",
    "tax_percent",
    "tax_inclusive",
    "product_id",
    "description",
)


@dataclass(frozen=True)
class LineItem:
    quantity: float = 1.0
    unit_price: float = 0.0
    discount_percent: float = 0.0
    tax_percent: float = 0.0
    tax_inclusive: bool = False
    product_id: str | None = None
    description: str = ""
    policy: TaxPolicy = TaxPolicy.ON_TOP
    # derived; recomputed on every construction/replace()
    tax_amount: float = field(init=False, default=0.0)
    line_total: float = field(init=False, default=0.0)

    def __post_init__(self):
        a = calculate_line(
            self.quantity,
            self.unit_price,
            self.discount_percent,
            self.tax_percent,
            self.tax_inclusive,
            self.policy,
        )
        object.__setattr__(self, "tax_amount", a.tax_amount)
        object.__setattr__(self, "line_total", a.line_total)

    def to_payload(self) -> dict:
        """Store payload (inputs only; the orchestrator re-prices on save)."""
        return {k: getattr(self, k) for k in _EDITABLE}


def toggle_tax_inclusive(item: LineItem, inclusive: bool, default_tax_rate: float) -> LineItem:
    """
    Switching a line to tax-inclusive while its rate is 0 picks up the default
    rate; switching it back off clears the rate.
    """
    inclusive = bool(inclusive)
    if inclusive == item.tax_inclusive:
        return item
    if inclusive:
        rate = item.tax_percent if item.tax_percent else float(default_tax_rate)
        return replace(item, tax_inclusive=True, tax_percent=rate)
    return replace(item, tax_inclusive=False, tax_percent=0.0)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AddItem:
    quantity: float = 1.0
    unit_price: float = 0.0
    discount_percent: float = 0.0
    tax_percent: float = 0.0
    tax_inclusive: bool = False
    product_id: str | None = None
    description: str = ""


@dataclass(frozen=True)
class RemoveItem:
    index: int


@dataclass(frozen=True)
class UpdateItem:
    index: int
    changes: dict


@dataclass(frozen=True)
class ToggleTaxInclusive:
    index: int
    inclusive: bool


@dataclass(frozen=True)
class ReplaceItems:
    items: tuple


Action = Union[AddItem, RemoveItem, UpdateItem, ToggleTaxInclusive, ReplaceItems]


@dataclass(frozen=True)
class DocumentDraft:
    policy: TaxPolicy = TaxPolicy.ON_TOP
    default_tax_rate: float = 0.0
    items: tuple[LineItem, ...] = ()
    totals: DocumentTotals = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "totals", aggregate(self.items, self.policy))

    def payloads(self) -> list[dict]:
        return [it.to_payload() for it in self.items]


def new_draft(policy: TaxPolicy = TaxPolicy.ON_TOP, default_tax_rate: float = 0.0,
              items: Iterable[dict] = ()) -> DocumentDraft:
    """Start a draft, optionally pre-filled from stored item rows."""
    lines = tuple(_line_from(d, policy) for d in items)
    return DocumentDraft(policy=TaxPolicy(policy), default_tax_rate=default_tax_rate, items=lines)


def _line_from(data: dict | AddItem, policy: TaxPolicy) -> LineItem:
    if isinstance(data, AddItem):
        data = {f.name: getattr(data, f.name) for f in fields(data)}
    kwargs = {k: data[k] for k in _EDITABLE if k in data and data[k] is not None}
    if "tax_inclusive" in kwargs:
        kwargs["tax_inclusive"] = bool(kwargs["tax_inclusive"])
    return LineItem(policy=TaxPolicy(policy), **kwargs)


def _check_index(state: DocumentDraft, index: int) -> None:
    if not 0 <= index < len(state.items):
        raise IndexError(f"No line item at position {index} (have {len(state.items)}).")


def apply_edit(state: DocumentDraft, action: Action) -> DocumentDraft:
    """
    Return a new draft with `action` applied. Derived line amounts and the
    document totals are recomputed in full on every call.
    """
    items = list(state.items)

    if isinstance(action, AddItem):
        items.append(_line_from(action, state.policy))

    elif isinstance(action, RemoveItem):
        _check_index(state, action.index)
        del items[action.index]

    elif isinstance(action, UpdateItem):
        _check_index(state, action.index)
        unknown = set(action.changes) - set(_EDITABLE)
        if unknown:
            raise ValueError(f"Cannot edit line item field(s): {', '.join(sorted(unknown))}")
        changes: dict[str, Any] = dict(action.changes)
        if "tax_inclusive" in changes:
            # route through the toggle so the default-rate convenience applies
            inclusive = bool(changes.pop("tax_inclusive"))
            item = replace(items[action.index], **changes)
            items[action.index] = toggle_tax_inclusive(item, inclusive, state.default_tax_rate)
        else:
            items[action.index] = replace(items[action.index], **changes)

    elif isinstance(action, ToggleTaxInclusive):
        _check_index(state, action.index)
        items[action.index] = toggle_tax_inclusive(
            items[action.index], action.inclusive, state.default_tax_rate
        )

    elif isinstance(action, ReplaceItems):
        items = [_line_from(d, state.policy) if not isinstance(d, LineItem) else replace(d, policy=state.policy)
                 for d in action.items]

    else:
        raise TypeError(f"Unknown draft action: {action!r}")

    return replace(state, items=tuple(items))
