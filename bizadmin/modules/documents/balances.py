"""Outstanding-balance rules shared by invoices, credit notes and payments."""

from __future__ import annotations

from ...database.datastore import DataStore, TenantContext
from ...database.procedures import invoice_status

_EPS = 1e-9


def _f(x) -> float:
    return float(x or 0)


def credited_total(store: DataStore, tenant: TenantContext, invoice_id: str) -> float:
    rows = store.select("credit_note_allocations", {"invoice_id": invoice_id}, tenant=tenant)
    return sum(_f(r["allocated_amount"]) for r in rows)


def invoice_balance(total: float, paid: float, credited: float) -> float:
    return _f(total) - _f(paid) - _f(credited)


def credit_note_status(current: str, balance: float, applied: float) -> str:
    if current == "cancelled":
        return current
    if balance <= _EPS and applied > _EPS:
        return "applied"
    if current == "applied":
        return "sent"
    return current


def invoice_payment_patch(store: DataStore, tenant: TenantContext, invoice: dict, paid_delta: float) -> dict:
    """New paid_amount/balance_due/status for an invoice after a payment of `paid_delta` (negative to reverse)."""
    paid = _f(invoice.get("paid_amount")) + paid_delta
    balance = invoice_balance(invoice.get("total_amount"), paid, credited_total(store, tenant, invoice["id"]))
    patch = {"paid_amount": paid, "balance_due": balance}
    if invoice.get("status") != "cancelled":
        patch["status"] = invoice_status(paid, balance, invoice.get("status"))
    return patch
