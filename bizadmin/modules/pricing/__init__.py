from .calculator import (
    TaxPolicy,
    LineAmounts,
    DocumentTotals,
    calculate_line,
    amounts_for,
    aggregate,
    check_totals,
    to_tax_exclusive,
    to_tax_inclusive,
)
from .line_items import (
    LineItem,
    DocumentDraft,
    AddItem,
    RemoveItem,
    UpdateItem,
    ToggleTaxInclusive,
    ReplaceItems,
    apply_edit,
    toggle_tax_inclusive,
    new_draft,
)

__all__ = [
    "TaxPolicy",
    "LineAmounts",
    "DocumentTotals",
    "calculate_line",
    "amounts_for",
    "aggregate",
    "check_totals",
    "to_tax_exclusive",
    "to_tax_inclusive",
    "LineItem",
    "DocumentDraft",
    "AddItem",
    "RemoveItem",
    "UpdateItem",
    "ToggleTaxInclusive",
    "ReplaceItems",
    "apply_edit",
    "toggle_tax_inclusive",
    "new_draft",
]
