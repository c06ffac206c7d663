from __future__ import annotations

import pytest

from bizadmin.modules.documents import (
    CREDIT_NOTE,
    INVOICE,
    ConflictError,
    DomainError,
    TransactionOrchestrator,
    ValidationError,
    apply_credit_note,
)
from bizadmin.modules.payments import PaymentService


def _credit_note(store, tenant, ids, *, affects_inventory=None, quantity=3):
    header = {"customer_id": ids["customer_id"], "credit_note_date": "2024-03-09", "reason": "Damaged goods"}
    if affects_inventory is not None:
        header["affects_inventory"] = affects_inventory
    items = [{"product_id": ids["prod_A"], "description": "Widget A", "quantity": quantity,
              "unit_price": 116, "tax_percent": 16, "tax_inclusive": True}]
    return TransactionOrchestrator(store, tenant, CREDIT_NOTE).create_with_items(header, items)


def _invoice(store, tenant, ids, amount=702):
    items = [{"description": "Services", "quantity": 1, "unit_price": amount}]
    return TransactionOrchestrator(store, tenant, INVOICE).create_with_items(
        {"customer_id": ids["customer_id"], "invoice_date": "2024-03-09"}, items)


def test_credit_note_extracts_inclusive_tax(store, tenant, ids):
    cn = _credit_note(store, tenant, ids)
    assert cn.number == "CN-20240309-0001"
    assert cn.record["total_amount"] == pytest.approx(348)
    assert cn.record["tax_amount"] == pytest.approx(48)
    assert cn.record["subtotal"] == pytest.approx(348)
    assert cn.record["balance"] == pytest.approx(348)
    assert cn.record["applied_amount"] == 0


def test_credit_note_leaves_stock_alone_by_default(store, tenant, ids, stock):
    cn = _credit_note(store, tenant, ids)
    assert cn.record["affects_inventory"] == 0
    assert store.select("stock_movements", {"reference_id": cn.record["id"]}, tenant=tenant) == []
    assert stock(ids["prod_A"]) == pytest.approx(50)


def test_credit_note_returns_stock_when_flagged(store, tenant, ids, stock):
    cn = _credit_note(store, tenant, ids, affects_inventory=True)
    (move,) = store.select("stock_movements", {"reference_id": cn.record["id"]}, tenant=tenant)
    assert move["movement_type"] == "IN"
    assert move["reference_type"] == "CREDIT_NOTE"
    assert move["quantity"] == 3
    assert stock(ids["prod_A"]) == pytest.approx(53)


def test_delete_appends_reversals_and_keeps_originals(store, tenant, ids, stock):
    cn = _credit_note(store, tenant, ids, affects_inventory=True)
    cn_id = cn.record["id"]
    (original,) = store.select("stock_movements", {"reference_id": cn_id}, tenant=tenant)

    res = TransactionOrchestrator(store, tenant, CREDIT_NOTE).delete_with_cascade(cn_id)
    assert res.warnings == []

    moves = store.select("stock_movements", {"reference_id": cn_id}, tenant=tenant)
    assert len(moves) == 2
    assert store.get("stock_movements", original["id"], tenant=tenant) == original
    (reversal,) = [m for m in moves if m["id"] != original["id"]]
    assert reversal["reference_type"] == "CREDIT_NOTE_REVERSAL"
    assert reversal["movement_type"] == "OUT"
    assert reversal["reverses_movement_id"] == original["id"]
    assert reversal["quantity"] == original["quantity"]
    assert stock(ids["prod_A"]) == pytest.approx(50)
    assert store.get("credit_notes", cn_id, tenant=tenant) is None


def test_apply_credit_note_to_invoice(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    cn = _credit_note(store, tenant, ids)
    seen = []

    allocation = apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], "100", invalidate=seen.append)

    assert allocation.record["allocated_amount"] == pytest.approx(100)
    assert allocation.warnings == []
    assert store.get("invoices", inv.record["id"], tenant=tenant)["balance_due"] == pytest.approx(602)
    cn_row = store.get("credit_notes", cn.record["id"], tenant=tenant)
    assert cn_row["applied_amount"] == pytest.approx(100)
    assert cn_row["balance"] == pytest.approx(248)
    (row,) = store.select("credit_note_allocations", {"credit_note_id": cn.record["id"]}, tenant=tenant)
    assert row["created_by"] == tenant.user_id
    assert "credit_note_allocations" in seen[0]
    assert "invoices" in seen[0]


@pytest.mark.parametrize("amount", ["abc", 0, -10, None])
def test_apply_credit_note_validates_amount(failing_store, tenant, ids, amount):
    with pytest.raises(ValidationError):
        apply_credit_note(failing_store, tenant, "cn", "inv", amount)
    assert failing_store.calls == []


def test_apply_more_than_credit_balance_is_refused(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    cn = _credit_note(store, tenant, ids)
    with pytest.raises(ConflictError):
        apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], 400)
    assert store.get("credit_notes", cn.record["id"], tenant=tenant)["balance"] == pytest.approx(348)
    assert store.get("invoices", inv.record["id"], tenant=tenant)["balance_due"] == pytest.approx(702)


def test_deleting_credit_note_restores_invoice_balance(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    cn = _credit_note(store, tenant, ids)
    apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], 150)
    seen = []

    res = TransactionOrchestrator(store, tenant, CREDIT_NOTE, invalidate=seen.append) \
        .delete_with_cascade(cn.record["id"])

    assert res.effects["affected_documents"] == [inv.record["id"]]
    assert store.get("invoices", inv.record["id"], tenant=tenant)["balance_due"] == pytest.approx(702)
    assert store.select("credit_note_allocations", tenant=tenant) == []
    assert "invoices" in seen[0]


def test_deleting_invoice_restores_credit_note_balance(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    cn = _credit_note(store, tenant, ids)
    apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], 348)
    assert store.get("credit_notes", cn.record["id"], tenant=tenant)["status"] == "applied"

    TransactionOrchestrator(store, tenant, INVOICE).delete_with_cascade(inv.record["id"])

    cn_row = store.get("credit_notes", cn.record["id"], tenant=tenant)
    assert cn_row["applied_amount"] == pytest.approx(0)
    assert cn_row["balance"] == pytest.approx(348)
    assert cn_row["status"] == "sent"


def test_failed_balance_correction_keeps_credit_note(failing_store, tenant, ids):
    inv = _invoice(failing_store, tenant, ids)
    cn = _credit_note(failing_store, tenant, ids, affects_inventory=True)
    apply_credit_note(failing_store, tenant, cn.record["id"], inv.record["id"], 100)
    failing_store.fail_update("invoices")

    with pytest.raises(DomainError):
        TransactionOrchestrator(failing_store, tenant, CREDIT_NOTE).delete_with_cascade(cn.record["id"])

    assert failing_store.get("credit_notes", cn.record["id"], tenant=tenant) is not None
    assert failing_store.get("invoices", inv.record["id"], tenant=tenant)["balance_due"] == pytest.approx(602)
    moves = failing_store.select("stock_movements", {"reference_id": cn.record["id"]}, tenant=tenant)
    net = sum(m["quantity"] if m["movement_type"] == "IN" else -m["quantity"] for m in moves)
    assert net == pytest.approx(3)


def test_update_below_applied_amount_is_refused(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    cn = _credit_note(store, tenant, ids)
    apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], 300)
    items = [{"description": "Smaller refund", "quantity": 1, "unit_price": 100}]
    with pytest.raises(ConflictError):
        TransactionOrchestrator(store, tenant, CREDIT_NOTE).update_with_items(cn.record["id"], {}, items)


def test_credit_settling_a_paid_balance_marks_invoice_paid(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    cn = _credit_note(store, tenant, ids, quantity=4)
    PaymentService(store, tenant).record_payment(inv.record["id"], 302)

    allocation = apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], 400)

    row = store.get("invoices", inv.record["id"], tenant=tenant)
    assert row["balance_due"] == pytest.approx(0)
    assert row["paid_amount"] == pytest.approx(302)
    assert row["status"] == "paid"
    assert allocation.record["invoice_status"] == "paid"


def test_credit_keeps_sent_invoice_sent_until_paid(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    TransactionOrchestrator(store, tenant, INVOICE).set_status(inv.record["id"], "sent")
    cn = _credit_note(store, tenant, ids)

    apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], 100)
    assert store.get("invoices", inv.record["id"], tenant=tenant)["status"] == "sent"

    PaymentService(store, tenant).record_payment(inv.record["id"], 50)
    apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], 50)
    row = store.get("invoices", inv.record["id"], tenant=tenant)
    assert row["balance_due"] == pytest.approx(502)
    assert row["status"] == "partial"


def test_failed_invalidation_after_apply_is_a_warning(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    cn = _credit_note(store, tenant, ids)

    def broken(keys):
        raise RuntimeError("cache down")

    allocation = apply_credit_note(store, tenant, cn.record["id"], inv.record["id"], 100, invalidate=broken)

    assert allocation.degraded
    assert [w.step for w in allocation.warnings] == ["invalidate"]
    assert len(store.select("credit_note_allocations", {"credit_note_id": cn.record["id"]}, tenant=tenant)) == 1
