"""
Named procedures exposed through DataStore.call().

Each runs inside the caller's single transaction (SQLiteDataStore.call wraps
it), so a procedure is atomic even though the flows around it are not.
Signature: fn(conn, tenant, **args).
"""

from __future__ import annotations

import sqlite3
import uuid

from ..constants import NUMBER_PREFIXES, MOVEMENT_IN, MOVEMENT_OUT
from ..utils.helpers import compact_date
from .datastore import StoreError, StoreErrorKind, TenantContext

_EPS = 1e-9


def invoice_status(paid: float, balance: float, current: str | None = None) -> str:
    """
    'paid' once nothing is owed and something was paid, 'partial' while money
    has come in but a balance remains, otherwise 'draft'. An invoice already
    marked 'sent' or 'overdue' keeps that mark while nothing has been paid.
    """
    if balance <= _EPS and abs(paid) > _EPS:
        return "paid"
    if abs(paid) > _EPS and balance > _EPS:
        return "partial"
    if current in ("sent", "overdue"):
        return current
    return "draft"


def generate_document_number(
    conn: sqlite3.Connection,
    tenant: TenantContext,
    *,
    kind: str,
    date: str | None = None,
) -> str:
    """
    Next number for `kind` in the tenant, e.g. INV-20240309-0001.
    Sequences are per company, prefix and day and never hand out a number twice.
    """
    prefix = NUMBER_PREFIXES.get(kind)
    if prefix is None:
        raise StoreError(StoreErrorKind.REJECTED, f"Unknown document kind {kind!r}")
    day = compact_date(date)
    conn.execute(
        """
        INSERT INTO document_sequences(company_id, prefix, day, last_value)
        VALUES (?, ?, ?, 1)
        ON CONFLICT(company_id, prefix, day) DO UPDATE SET last_value = last_value + 1
        """,
        (tenant.company_id, prefix, day),
    )
    row = conn.execute(
        "SELECT last_value FROM document_sequences WHERE company_id=? AND prefix=? AND day=?",
        (tenant.company_id, prefix, day),
    ).fetchone()
    return f"{prefix}-{day}-{int(row[0]):04d}"


def update_product_stock(
    conn: sqlite3.Connection,
    tenant: TenantContext,
    *,
    product_id: str,
    movement_type: str,
    quantity: float,
) -> float:
    """
    Apply one movement to products.stock_quantity (IN adds, OUT subtracts).
    Returns the new quantity.
    """
    if movement_type not in (MOVEMENT_IN, MOVEMENT_OUT):
        raise StoreError(StoreErrorKind.CHECK_VIOLATION, f"Invalid movement type {movement_type!r}",
                         column="movement_type")
    qty = abs(float(quantity))
    delta = qty if movement_type == MOVEMENT_IN else -qty
    cur = conn.execute(
        """
        UPDATE products
           SET stock_quantity = CAST(stock_quantity AS REAL) + ?,
               updated_at = CURRENT_TIMESTAMP
         WHERE id = ? AND company_id = ?
        """,
        (delta, product_id, tenant.company_id),
    )
    if cur.rowcount == 0:
        raise StoreError(StoreErrorKind.NOT_FOUND, f"Product {product_id!r} not found", collection="products")
    row = conn.execute("SELECT CAST(stock_quantity AS REAL) FROM products WHERE id=?", (product_id,)).fetchone()
    return float(row[0])


def apply_credit_note_to_invoice(
    conn: sqlite3.Connection,
    tenant: TenantContext,
    *,
    credit_note_id: str,
    invoice_id: str,
    amount: float,
    applied_by: str | None = None,
    allocation_date: str | None = None,
) -> dict:
    """
    Allocate part of a credit note's balance against an invoice:
    inserts the allocation, moves the credit note's applied/balance and
    lowers the invoice's balance_due.
    """
    amount = float(amount)
    if amount <= 0:
        raise StoreError(StoreErrorKind.REJECTED, "Amount to apply must be greater than zero")

    cn = conn.execute(
        "SELECT * FROM credit_notes WHERE id=? AND company_id=?", (credit_note_id, tenant.company_id)
    ).fetchone()
    if cn is None:
        raise StoreError(StoreErrorKind.NOT_FOUND, "Credit note not found", collection="credit_notes")
    inv = conn.execute(
        "SELECT * FROM invoices WHERE id=? AND company_id=?", (invoice_id, tenant.company_id)
    ).fetchone()
    if inv is None:
        raise StoreError(StoreErrorKind.NOT_FOUND, "Invoice not found", collection="invoices")

    if cn["customer_id"] != inv["customer_id"]:
        raise StoreError(StoreErrorKind.REJECTED, "Credit note and invoice belong to different customers")
    if cn["status"] == "cancelled":
        raise StoreError(StoreErrorKind.REJECTED, "Cannot apply a cancelled credit note")

    cn_balance = float(cn["balance"] or 0)
    if amount > cn_balance + _EPS:
        raise StoreError(StoreErrorKind.REJECTED,
                         f"Amount {amount:.2f} exceeds credit note balance {cn_balance:.2f}")
    inv_balance = float(inv["balance_due"] or 0)
    if amount > inv_balance + _EPS:
        raise StoreError(StoreErrorKind.REJECTED,
                         f"Amount {amount:.2f} exceeds invoice balance due {inv_balance:.2f}")

    allocation_id = str(uuid.uuid4())
    conn.execute(
        """
        INSERT INTO credit_note_allocations
            (id, company_id, credit_note_id, invoice_id, allocated_amount, allocation_date, created_by)
        VALUES (?, ?, ?, ?, ?, COALESCE(?, CURRENT_DATE), ?)
        """,
        (allocation_id, tenant.company_id, credit_note_id, invoice_id, amount, allocation_date, applied_by),
    )

    new_applied = float(cn["applied_amount"] or 0) + amount
    new_cn_balance = float(cn["total_amount"] or 0) - new_applied
    conn.execute(
        """
        UPDATE credit_notes
           SET applied_amount=?, balance=?, status=?, updated_at=CURRENT_TIMESTAMP
         WHERE id=?
        """,
        (new_applied, new_cn_balance, "applied" if new_cn_balance <= _EPS else cn["status"], credit_note_id),
    )
    new_inv_balance = inv_balance - amount
    inv_status = inv["status"]
    if inv_status != "cancelled":
        inv_status = invoice_status(float(inv["paid_amount"] or 0), new_inv_balance, inv_status)
    conn.execute(
        "UPDATE invoices SET balance_due=?, status=?, updated_at=CURRENT_TIMESTAMP WHERE id=?",
        (new_inv_balance, inv_status, invoice_id),
    )
    return {
        "id": allocation_id,
        "credit_note_id": credit_note_id,
        "invoice_id": invoice_id,
        "allocated_amount": amount,
        "credit_note_balance": new_cn_balance,
        "invoice_balance_due": new_inv_balance,
        "invoice_status": inv_status,
    }


PROCEDURES = {
    "generate_document_number": generate_document_number,
    "update_product_stock": update_product_stock,
    "apply_credit_note_to_invoice": apply_credit_note_to_invoice,
}
