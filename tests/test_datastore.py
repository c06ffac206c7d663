from __future__ import annotations

import pytest

from bizadmin.database.datastore import SQLiteDataStore, StoreError, StoreErrorKind, TenantContext
from bizadmin.modules.documents import (
    ConflictError,
    DependencyMissingError,
    NotFoundError,
    classify_store_error,
)


def test_insert_stamps_tenant_and_returns_row(store, tenant):
    row = store.insert("customers", {"name": "Gamma", "customer_code": "G1"}, tenant=tenant)
    assert row["company_id"] == tenant.company_id
    assert row["id"]


def test_select_is_scoped_to_tenant(conn, store, tenant):
    conn.execute("INSERT INTO companies(id, name) VALUES ('other-co', 'Other')")
    conn.commit()
    other = TenantContext(company_id="other-co")
    store.insert("customers", {"name": "Mine", "customer_code": "M1"}, tenant=tenant)
    store.insert("customers", {"name": "Theirs", "customer_code": "T1"}, tenant=other)
    assert [r["name"] for r in store.select("customers", tenant=tenant)] == ["Mine"]
    assert [r["name"] for r in store.select("customers", tenant=other)] == ["Theirs"]


def test_where_list_means_in_and_none_means_null(store, tenant):
    a = store.insert("customers", {"name": "A", "customer_code": "A1", "email": None}, tenant=tenant)
    b = store.insert("customers", {"name": "B", "customer_code": "B1", "email": "b@x.test"}, tenant=tenant)
    assert {r["id"] for r in store.select("customers", {"id": [a["id"], b["id"]]}, tenant=tenant)} == {a["id"], b["id"]}
    assert [r["id"] for r in store.select("customers", {"email": None}, tenant=tenant)] == [a["id"]]
    assert store.select("customers", {"id": []}, tenant=tenant) == []


def test_unique_violation(store, tenant):
    store.insert("customers", {"name": "A", "customer_code": "DUP"}, tenant=tenant)
    with pytest.raises(StoreError) as exc:
        store.insert("customers", {"name": "B", "customer_code": "DUP"}, tenant=tenant)
    assert exc.value.kind is StoreErrorKind.UNIQUE_VIOLATION
    assert exc.value.code == "23505"
    assert isinstance(classify_store_error(exc.value, "create customer"), ConflictError)


def test_foreign_key_violation_names_the_column(store, tenant, ids):
    with pytest.raises(StoreError) as exc:
        store.insert("invoices", {
            "customer_id": ids["customer_id"],
            "invoice_number": "INV-X",
            "created_by": "no-such-user",
        }, tenant=tenant)
    assert exc.value.kind is StoreErrorKind.FOREIGN_KEY_VIOLATION
    assert exc.value.column == "created_by"


def test_check_violation(store, tenant, ids):
    with pytest.raises(StoreError) as exc:
        store.insert("payments", {"customer_id": ids["customer_id"], "payment_number": "P", "amount": 0},
                     tenant=tenant)
    assert exc.value.kind is StoreErrorKind.CHECK_VIOLATION


def test_unknown_collection_and_column(store, tenant):
    with pytest.raises(StoreError) as exc:
        store.select("no_such_table", tenant=tenant)
    assert exc.value.kind is StoreErrorKind.UNDEFINED_TABLE
    assert isinstance(classify_store_error(exc.value, "load"), DependencyMissingError)

    with pytest.raises(StoreError) as exc:
        store.insert("customers", {"name": "A", "nickname": "x"}, tenant=tenant)
    assert exc.value.kind is StoreErrorKind.UNDEFINED_COLUMN
    assert exc.value.column == "nickname"


def test_unknown_procedure(store, tenant):
    with pytest.raises(StoreError) as exc:
        store.call("no_such_function", {}, tenant=tenant)
    assert exc.value.kind is StoreErrorKind.UNDEFINED_FUNCTION
    err = classify_store_error(exc.value, "create invoice")
    assert isinstance(err, DependencyMissingError)
    assert err.message.startswith("Setup required")


def test_update_missing_row_is_not_found(store, tenant):
    with pytest.raises(StoreError) as exc:
        store.update("customers", "missing", {"name": "x"}, tenant=tenant)
    assert exc.value.kind is StoreErrorKind.NOT_FOUND
    assert isinstance(classify_store_error(exc.value, "update customer"), NotFoundError)


def test_delete_requires_filter(store, tenant):
    with pytest.raises(ValueError):
        store.delete("customers", {}, tenant=tenant)


def test_bulk_insert_is_all_or_nothing(store, tenant):
    rows = [
        {"name": "One", "customer_code": "C-1"},
        {"name": "Two", "customer_code": "C-1"},
    ]
    with pytest.raises(StoreError):
        store.insert("customers", rows, tenant=tenant)
    assert store.select("customers", {"customer_code": "C-1"}, tenant=tenant) == []


def test_stock_ledger_refuses_update_and_delete(store, tenant, ids):
    m = store.insert("stock_movements", {
        "product_id": ids["prod_A"], "movement_type": "IN", "reference_type": "ADJUSTMENT", "quantity": 1,
    }, tenant=tenant)
    with pytest.raises(StoreError) as exc:
        store.update("stock_movements", m["id"], {"quantity": 2}, tenant=tenant)
    assert exc.value.kind is StoreErrorKind.REJECTED
    with pytest.raises(StoreError):
        store.delete("stock_movements", {"id": m["id"]}, tenant=tenant)
    assert store.get("stock_movements", m["id"], tenant=tenant)["quantity"] == 1


def test_custom_procedures_can_be_registered(conn, tenant):
    s = SQLiteDataStore(conn, procedures={})
    s.register("echo", lambda c, t, **args: {"company": t.company_id, **args})
    assert s.call("echo", {"x": 1}, tenant=tenant) == {"company": tenant.company_id, "x": 1}


# ---------------------------------------------------------------------
# tenant isolation
# ---------------------------------------------------------------------
def _other_tenant(conn):
    conn.execute("INSERT INTO companies(id, name) VALUES ('other-co', 'Other')")
    conn.commit()
    return TenantContext(company_id="other-co")


def _invoice_with_item(store, tenant, ids):
    inv = store.insert("invoices", {
        "customer_id": ids["customer_id"], "invoice_number": "INV-1", "total_amount": 10, "balance_due": 10,
    }, tenant=tenant)
    store.insert("invoice_items", {
        "invoice_id": inv["id"], "description": "Bolt", "quantity": 1, "unit_price": 10, "line_total": 10,
    }, tenant=tenant)
    return inv


def test_foreign_company_id_in_filter_is_rejected(conn, store, tenant, ids):
    other = _other_tenant(conn)
    _invoice_with_item(store, tenant, ids)

    with pytest.raises(StoreError) as exc:
        store.select("invoices", {"company_id": tenant.company_id}, tenant=other)
    assert exc.value.kind is StoreErrorKind.REJECTED
    with pytest.raises(StoreError):
        store.delete("invoices", {"company_id": tenant.company_id}, tenant=other)
    assert [r["invoice_number"] for r in store.select("invoices", tenant=tenant)] == ["INV-1"]


def test_foreign_company_id_in_row_is_rejected(conn, store, tenant):
    other = _other_tenant(conn)
    with pytest.raises(StoreError) as exc:
        store.insert("customers", {"name": "Sneaky", "company_id": tenant.company_id}, tenant=other)
    assert exc.value.kind is StoreErrorKind.REJECTED

    mine = store.insert("customers", {"name": "Mine", "customer_code": "M1"}, tenant=tenant)
    with pytest.raises(StoreError):
        store.update("customers", mine["id"], {"company_id": "other-co"}, tenant=tenant)
    assert store.get("customers", mine["id"], tenant=tenant)["company_id"] == tenant.company_id


def test_child_rows_are_scoped_through_their_parent(conn, store, tenant, ids):
    other = _other_tenant(conn)
    inv = _invoice_with_item(store, tenant, ids)

    assert store.select("invoice_items", {"invoice_id": inv["id"]}, tenant=other) == []
    assert store.delete("invoice_items", {"invoice_id": inv["id"]}, tenant=other) == 0
    with pytest.raises(StoreError) as exc:
        store.insert("invoice_items", {
            "invoice_id": inv["id"], "description": "Injected", "quantity": 1, "unit_price": 1, "line_total": 1,
        }, tenant=other)
    assert exc.value.kind is StoreErrorKind.REJECTED

    rows = store.select("invoice_items", {"invoice_id": inv["id"]}, tenant=tenant)
    assert [r["description"] for r in rows] == ["Bolt"]
    with pytest.raises(StoreError) as exc:
        store.update("invoice_items", rows[0]["id"], {"quantity": 5}, tenant=other)
    assert exc.value.kind is StoreErrorKind.NOT_FOUND


def test_schema_can_be_reapplied(conn):
    from bizadmin.database.schema import apply_schema

    apply_schema(conn)
    apply_schema(conn)
    cols = [r[1] for r in conn.execute("PRAGMA table_info(stock_movements)").fetchall()]
    assert cols.count("reverses_movement_id") == 1
