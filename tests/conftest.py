# bizadmin/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets a fresh in-memory SQLite database (schema + seed)
# - Access goes through SQLiteDataStore with an explicit TenantContext
# - pytest-qt owns the Qt application; a QCoreApplication is enough
#   because controllers only use QtCore signals
# - FailingStore wraps the real store to inject failures per call
# ---------------------------------------------------------------------

from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import sqlite3  # noqa: E402
from typing import Callable, Optional  # noqa: E402

import pytest  # noqa: E402
from PySide6 import QtCore  # noqa: E402

from bizadmin.database import get_connection  # noqa: E402
from bizadmin.database.datastore import SQLiteDataStore, StoreError, StoreErrorKind, TenantContext  # noqa: E402
from bizadmin.database.repositories.customers_repo import CustomersRepo  # noqa: E402
from bizadmin.database.repositories.products_repo import ProductsRepo  # noqa: E402
from bizadmin.modules.signals import AppSignals  # noqa: E402


# ---------- Qt: let pytest-qt own the app ----------
@pytest.fixture(scope="session")
def qapp_cls():
    return QtCore.QCoreApplication


# ---------- Per-test database ----------
@pytest.fixture()
def conn():
    con = get_connection(":memory:")
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def tenant(conn: sqlite3.Connection) -> TenantContext:
    row = conn.execute("SELECT id, company_id, email FROM users ORDER BY created_at LIMIT 1").fetchone()
    return TenantContext(company_id=row["company_id"], user_id=row["id"], user_email=row["email"])


@pytest.fixture()
def store(conn: sqlite3.Connection) -> SQLiteDataStore:
    return SQLiteDataStore(conn)


# ---------- Handy lookups ----------
@pytest.fixture()
def ids(conn: sqlite3.Connection, tenant: TenantContext) -> dict:
    """A customer and three stocked products in the tenant's company."""
    customers = CustomersRepo(conn)
    products = ProductsRepo(conn)
    return {
        "customer_id": customers.create(tenant.company_id, "Acme Traders", email="ap@acme.test"),
        "other_customer_id": customers.create(tenant.company_id, "Beta Stores"),
        "prod_A": products.create(tenant.company_id, "Widget A", unit_price=100, stock_quantity=50),
        "prod_B": products.create(tenant.company_id, "Widget B", unit_price=50, stock_quantity=20),
        "prod_C": products.create(tenant.company_id, "Widget C", unit_price=10, stock_quantity=5),
    }


@pytest.fixture()
def stock(conn: sqlite3.Connection) -> Callable[[str], float]:
    products = ProductsRepo(conn)
    return products.stock_quantity


# ---------- Fault injection ----------
class FailingStore(SQLiteDataStore):
    """
    SQLiteDataStore that raises on chosen calls.

        store.fail_insert("invoice_items")
        store.fail_call("update_product_stock", when=lambda args: args["product_id"] == pid)
    """

    def __init__(self, conn, procedures=None):
        super().__init__(conn, procedures)
        self._fail: dict[tuple[str, str], tuple[Optional[Callable], StoreError]] = {}
        self.calls: list[tuple[str, dict]] = []

    def _arm(self, op, name, when, error):
        self._fail[(op, name)] = (when, error or StoreError(StoreErrorKind.UNKNOWN, f"injected {op} failure on {name}"))

    def fail_insert(self, collection, when=None, error=None):
        self._arm("insert", collection, when, error)

    def fail_update(self, collection, when=None, error=None):
        self._arm("update", collection, when, error)

    def fail_delete(self, collection, when=None, error=None):
        self._arm("delete", collection, when, error)

    def fail_call(self, procedure, when=None, error=None):
        self._arm("call", procedure, when, error)

    def _maybe_fail(self, op, name, payload):
        armed = self._fail.get((op, name))
        if armed is None:
            return
        when, error = armed
        if when is None or when(payload):
            raise error

    def insert(self, collection, row, *, tenant):
        self._maybe_fail("insert", collection, row)
        return super().insert(collection, row, tenant=tenant)

    def update(self, collection, id, patch, *, tenant):
        self._maybe_fail("update", collection, {"id": id, **patch})
        return super().update(collection, id, patch, tenant=tenant)

    def delete(self, collection, where, *, tenant):
        self._maybe_fail("delete", collection, where)
        return super().delete(collection, where, tenant=tenant)

    def call(self, procedure, args=None, *, tenant):
        self.calls.append((procedure, dict(args or {})))
        self._maybe_fail("call", procedure, args or {})
        return super().call(procedure, args, tenant=tenant)


@pytest.fixture()
def failing_store(conn: sqlite3.Connection) -> FailingStore:
    return FailingStore(conn)


@pytest.fixture()
def signals(qapp) -> AppSignals:
    return AppSignals()
