from __future__ import annotations

from dataclasses import dataclass

from ... import config
from ...constants import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    REF_INVOICE,
    REF_CREDIT_NOTE,
    REVERSAL_SUFFIX,
    CACHE_INVOICES,
    CACHE_CUSTOMER_INVOICES,
    CACHE_CREDIT_NOTES,
    CACHE_CUSTOMER_CREDIT_NOTES,
    CACHE_QUOTATIONS,
    CACHE_PRODUCTS,
    CACHE_STOCK_MOVEMENTS,
)
from ..pricing import TaxPolicy


@dataclass(frozen=True)
class DocumentKind:
    """Where a document type lives in the store and how it touches stock."""

    name: str
    label: str
    table: str
    items_table: str
    parent_key: str
    number_field: str
    date_field: str
    reference_type: str | None = None   # stock ledger tag; None = never touches stock
    movement_type: str | None = None
    inventory_default: bool = False
    cache_keys: tuple[str, ...] = ()
    # header columns that may be nulled once when an insert trips their foreign key
    nullable_retry_fields: tuple[str, ...] = ("created_by",)

    @property
    def tracks_inventory(self) -> bool:
        return self.reference_type is not None

    @property
    def reversal_type(self) -> str | None:
        return f"{self.reference_type}{REVERSAL_SUFFIX}" if self.reference_type else None

    @property
    def tax_policy(self) -> TaxPolicy:
        return TaxPolicy(config.DOCUMENT_TAX_POLICY.get(self.name, TaxPolicy.ON_TOP.value))

    def affects_inventory(self, header: dict | None) -> bool:
        if not self.tracks_inventory:
            return False
        value = (header or {}).get("affects_inventory")
        if value is None:
            return self.inventory_default
        return bool(value)


QUOTATION = DocumentKind(
    name="quotation",
    label="Quotation",
    table="quotations",
    items_table="quotation_items",
    parent_key="quotation_id",
    number_field="quotation_number",
    date_field="quotation_date",
    cache_keys=(CACHE_QUOTATIONS,),
)

INVOICE = DocumentKind(
    name="invoice",
    label="Invoice",
    table="invoices",
    items_table="invoice_items",
    parent_key="invoice_id",
    number_field="invoice_number",
    date_field="invoice_date",
    reference_type=REF_INVOICE,
    movement_type=MOVEMENT_OUT,
    inventory_default=True,
    cache_keys=(CACHE_INVOICES, CACHE_CUSTOMER_INVOICES, CACHE_PRODUCTS, CACHE_STOCK_MOVEMENTS),
)

CREDIT_NOTE = DocumentKind(
    name="credit_note",
    label="Credit note",
    table="credit_notes",
    items_table="credit_note_items",
    parent_key="credit_note_id",
    number_field="credit_note_number",
    date_field="credit_note_date",
    reference_type=REF_CREDIT_NOTE,
    movement_type=MOVEMENT_IN,
    inventory_default=False,
    cache_keys=(CACHE_CREDIT_NOTES, CACHE_CUSTOMER_CREDIT_NOTES, CACHE_PRODUCTS, CACHE_STOCK_MOVEMENTS),
)

KINDS = {k.name: k for k in (QUOTATION, INVOICE, CREDIT_NOTE)}


def get_kind(name: str) -> DocumentKind:
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(f"Unknown document kind {name!r}; expected one of {sorted(KINDS)}") from None
