from __future__ import annotations

import pytest

from bizadmin.database.repositories import (
    CustomersDomainError,
    CustomersRepo,
    ProductsDomainError,
    ProductsRepo,
    StockMovementsRepo,
)
from bizadmin.modules.documents import INVOICE, TransactionOrchestrator


# ---------------------------------------------------------------------
# customers
# ---------------------------------------------------------------------
def test_customer_codes_are_generated_in_sequence(conn, tenant):
    repo = CustomersRepo(conn)
    a = repo.create(tenant.company_id, "  Acme Traders ", email="ap@acme.test")
    b = repo.create(tenant.company_id, "Beta Stores")
    assert repo.get(a).customer_code == "CUST0001"
    assert repo.get(a).name == "Acme Traders"
    assert repo.get(b).customer_code == "CUST0002"


def test_customer_code_is_unique_per_company(conn, tenant):
    repo = CustomersRepo(conn)
    repo.create(tenant.company_id, "Acme", customer_code="C-1")
    with pytest.raises(CustomersDomainError, match="C-1"):
        repo.create(tenant.company_id, "Acme again", customer_code="C-1")


def test_generated_code_skips_hand_entered_codes(conn, tenant):
    repo = CustomersRepo(conn)
    repo.create(tenant.company_id, "Acme", customer_code="CUST0002")
    repo.create(tenant.company_id, "Legacy", customer_code="OLD-7")
    a = repo.create(tenant.company_id, "Beta Stores")
    b = repo.create(tenant.company_id, "Gamma")
    assert repo.get(a).customer_code == "CUST0003"
    assert repo.get(b).customer_code == "CUST0004"


def test_customer_name_required(conn, tenant):
    with pytest.raises(CustomersDomainError):
        CustomersRepo(conn).create(tenant.company_id, "   ")


def test_customer_search_update_and_deactivate(conn, tenant):
    repo = CustomersRepo(conn)
    a = repo.create(tenant.company_id, "Acme Traders", phone="0700 111")
    repo.create(tenant.company_id, "Beta Stores")

    assert [c.id for c in repo.search(tenant.company_id, "acme")] == [a]
    assert [c.id for c in repo.search(tenant.company_id, "0700")] == [a]

    repo.update(a, "Acme Ltd", email="x@acme.test")
    assert repo.get(a).name == "Acme Ltd"
    assert repo.get(a).email == "x@acme.test"

    repo.deactivate(a)
    assert a not in [c.id for c in repo.list_customers(tenant.company_id)]
    assert a in [c.id for c in repo.list_customers(tenant.company_id, active_only=False)]
    assert repo.search(tenant.company_id, "acme") == []


# ---------------------------------------------------------------------
# products
# ---------------------------------------------------------------------
def test_product_validation(conn, tenant):
    repo = ProductsRepo(conn)
    with pytest.raises(ProductsDomainError):
        repo.create(tenant.company_id, "")
    with pytest.raises(ProductsDomainError):
        repo.create(tenant.company_id, "Bolt", unit_price=-1)
    with pytest.raises(ProductsDomainError):
        repo.stock_quantity("no-such-product")


def test_low_stock_and_deactivate(conn, tenant, ids):
    repo = ProductsRepo(conn)
    low = repo.create(tenant.company_id, "Nut", stock_quantity=3, min_stock_level=10)

    assert [p.id for p in repo.low_stock(tenant.company_id)] == [low]

    repo.deactivate(low)
    assert repo.low_stock(tenant.company_id) == []
    assert low not in [p.id for p in repo.list_products(tenant.company_id)]
    assert repo.get(low).stock_quantity == 3


# ---------------------------------------------------------------------
# stock ledger
# ---------------------------------------------------------------------
def _sell(store, tenant, ids):
    items = [
        {"product_id": ids["prod_A"], "description": "Widget A", "quantity": 2, "unit_price": 100},
        {"product_id": ids["prod_B"], "description": "Widget B", "quantity": 10, "unit_price": 50},
    ]
    header = {"customer_id": ids["customer_id"], "invoice_date": "2024-03-09"}
    return TransactionOrchestrator(store, tenant, INVOICE).create_with_items(header, items).record["id"]


def test_movements_for_a_document_and_their_reversals(conn, store, tenant, ids):
    repo = StockMovementsRepo(conn)
    invoice_id = _sell(store, tenant, ids)

    rows = repo.for_reference(invoice_id)
    assert sorted((r["movement_type"], r["quantity"]) for r in rows) == [("OUT", 2.0), ("OUT", 10.0)]

    TransactionOrchestrator(store, tenant, INVOICE).delete_with_cascade(invoice_id)

    reversals = repo.for_reference(invoice_id, "INVOICE_REVERSAL")
    assert len(reversals) == 2
    assert {r["movement_type"] for r in reversals} == {"IN"}
    assert {r["reverses_movement_id"] for r in reversals} == {r["id"] for r in rows}
    assert len(repo.for_reference(invoice_id)) == 4


def test_find_movements_filters(conn, store, tenant, ids):
    repo = StockMovementsRepo(conn)
    _sell(store, tenant, ids)

    a_rows = repo.find_movements(tenant.company_id, product_id=ids["prod_A"])
    assert [(r["product"], r["quantity"]) for r in a_rows] == [("Widget A", 2.0)]
    assert len(repo.find_movements(tenant.company_id, limit=7)) == 2
    assert repo.find_movements(tenant.company_id, date_to="2000-01-01") == []
    assert repo.find_movements("other-company") == []


def test_ledger_balance_tracks_net_movements(conn, store, tenant, ids):
    repo = StockMovementsRepo(conn)
    invoice_id = _sell(store, tenant, ids)

    bal = repo.ledger_balance(ids["prod_A"])
    assert bal["stock_quantity"] == pytest.approx(48)
    assert bal["ledger_quantity"] == pytest.approx(-2)

    TransactionOrchestrator(store, tenant, INVOICE).delete_with_cascade(invoice_id)
    bal = repo.ledger_balance(ids["prod_A"])
    assert bal["stock_quantity"] == pytest.approx(50)
    assert bal["ledger_quantity"] == pytest.approx(0)

    assert repo.ledger_balance("no-such-product") is None
