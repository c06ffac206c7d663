from __future__ import annotations

import json

import pytest

from bizadmin.modules.documents import INVOICE, ConflictError, NotFoundError, TransactionOrchestrator, \
    ValidationError
from bizadmin.modules.payments import PaymentService


def _invoice(store, tenant, ids, amount=1000):
    return TransactionOrchestrator(store, tenant, INVOICE).create_with_items(
        {"customer_id": ids["customer_id"], "invoice_date": "2024-03-09"},
        [{"description": "Services", "quantity": 1, "unit_price": amount}],
    ).record


def test_partial_then_full_payment(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    svc = PaymentService(store, tenant)

    first = svc.record_payment(inv["id"], 400, payment_date="2024-03-10", payment_method="mobile_money")
    assert first.number == "PAY-20240310-0001"
    assert first.record["reference_number"] == first.number
    assert first.record["customer_id"] == ids["customer_id"]
    row = store.get("invoices", inv["id"], tenant=tenant)
    assert row["paid_amount"] == pytest.approx(400)
    assert row["balance_due"] == pytest.approx(600)
    assert row["status"] == "partial"

    svc.record_payment(inv["id"], "600", payment_date="2024-03-10")
    row = store.get("invoices", inv["id"], tenant=tenant)
    assert row["balance_due"] == pytest.approx(0)
    assert row["status"] == "paid"


def test_refund_reopens_invoice(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    svc = PaymentService(store, tenant)
    svc.record_payment(inv["id"], 1000)
    svc.record_payment(inv["id"], -250)
    row = store.get("invoices", inv["id"], tenant=tenant)
    assert row["paid_amount"] == pytest.approx(750)
    assert row["status"] == "partial"


@pytest.mark.parametrize("amount, method", [(0, "cash"), ("x", "cash"), (10, "barter")])
def test_invalid_payment_is_rejected_up_front(failing_store, tenant, ids, amount, method):
    with pytest.raises(ValidationError):
        PaymentService(failing_store, tenant).record_payment("inv", amount, payment_method=method)
    assert failing_store.calls == []


def test_payment_for_other_customer_is_refused(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    with pytest.raises(ConflictError):
        PaymentService(store, tenant).record_payment(inv["id"], 10, customer_id=ids["other_customer_id"])


def test_unknown_invoice(store, tenant):
    with pytest.raises(NotFoundError):
        PaymentService(store, tenant).record_payment("missing", 10)


def test_allocation_failure_is_a_warning(failing_store, tenant, ids):
    inv = _invoice(failing_store, tenant, ids)
    failing_store.fail_insert("payment_allocations")

    res = PaymentService(failing_store, tenant).record_payment(inv["id"], 100)

    assert res.degraded
    assert [w.step for w in res.warnings] == ["allocation", "invoice_balance"]
    assert failing_store.get("payments", res.record["id"], tenant=tenant) is not None
    assert failing_store.get("invoices", inv["id"], tenant=tenant)["balance_due"] == pytest.approx(1000)


def test_payment_insert_failure_leaves_nothing(failing_store, tenant, ids):
    inv = _invoice(failing_store, tenant, ids)
    failing_store.fail_insert("payments")
    with pytest.raises(Exception):
        PaymentService(failing_store, tenant).record_payment(inv["id"], 100)
    assert failing_store.select("payments", tenant=tenant) == []


def test_delete_payment_restores_invoice_and_audits(store, tenant, ids):
    inv = _invoice(store, tenant, ids)
    svc = PaymentService(store, tenant)
    pay = svc.record_payment(inv["id"], 1000)
    seen = []

    res = PaymentService(store, tenant, invalidate=seen.append).delete_payment(pay.record["id"])

    assert res.effects == {"invoices_updated": 1}
    assert store.get("payments", pay.record["id"], tenant=tenant) is None
    assert store.select("payment_allocations", {"payment_id": pay.record["id"]}, tenant=tenant) == []
    row = store.get("invoices", inv["id"], tenant=tenant)
    assert row["paid_amount"] == pytest.approx(0)
    assert row["balance_due"] == pytest.approx(1000)
    assert row["status"] == "draft"
    (log,) = store.select("audit_logs", {"entity_type": "payment"}, tenant=tenant)
    assert json.loads(log["details"])["number"] == pay.number
    assert seen == [["payments", "invoices", "customer_invoices"]]


def test_delete_payment_failure_rolls_back_balances(failing_store, tenant, ids):
    inv = _invoice(failing_store, tenant, ids)
    pay = PaymentService(failing_store, tenant).record_payment(inv["id"], 300)
    failing_store.fail_delete("payments")

    with pytest.raises(Exception):
        PaymentService(failing_store, tenant).delete_payment(pay.record["id"])

    row = failing_store.get("invoices", inv["id"], tenant=tenant)
    assert row["paid_amount"] == pytest.approx(300)
    assert row["balance_due"] == pytest.approx(700)
    assert row["status"] == "partial"


def test_balance_accounts_for_credit_notes(store, tenant, ids):
    from bizadmin.modules.documents import CREDIT_NOTE, apply_credit_note

    inv = _invoice(store, tenant, ids)
    cn = TransactionOrchestrator(store, tenant, CREDIT_NOTE).create_with_items(
        {"customer_id": ids["customer_id"]}, [{"description": "Refund", "quantity": 1, "unit_price": 200}])
    apply_credit_note(store, tenant, cn.record["id"], inv["id"], 200)

    PaymentService(store, tenant).record_payment(inv["id"], 800)
    row = store.get("invoices", inv["id"], tenant=tenant)
    assert row["balance_due"] == pytest.approx(0)
    assert row["status"] == "paid"
