# bizadmin/database/repositories/products_repo.py
from dataclasses import dataclass
import sqlite3
import uuid


class DomainError(Exception):
    """Domain-level error the controller/UI can surface (toast/snackbar)."""
    pass


@dataclass
class Product:
    id: str | None
    company_id: str
    name: str
    product_code: str | None
    unit_of_measure: str
    unit_price: float
    cost_price: float
    stock_quantity: float
    min_stock_level: float


_COLS = (
    "id, company_id, name, product_code, unit_of_measure, "
    "CAST(unit_price AS REAL) AS unit_price, CAST(cost_price AS REAL) AS cost_price, "
    "CAST(stock_quantity AS REAL) AS stock_quantity, CAST(min_stock_level AS REAL) AS min_stock_level"
)


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ---------------------------- Products ----------------------------

    def list_products(self, company_id: str) -> list[Product]:
        rows = self.conn.execute(
            f"SELECT {_COLS} FROM products WHERE company_id=? AND is_active=1 ORDER BY name",
            (company_id,),
        ).fetchall()
        return [Product(**r) for r in rows]

    def get(self, product_id: str) -> Product | None:
        r = self.conn.execute(f"SELECT {_COLS} FROM products WHERE id=?", (product_id,)).fetchone()
        return Product(**r) if r else None

    def create(
        self,
        company_id: str,
        name: str,
        *,
        unit_price: float = 0.0,
        cost_price: float = 0.0,
        stock_quantity: float = 0.0,
        min_stock_level: float = 0.0,
        product_code: str | None = None,
        unit_of_measure: str = "pcs",
    ) -> str:
        if not name or not name.strip():
            raise DomainError("Product name cannot be empty.")
        if float(unit_price) < 0 or float(cost_price) < 0:
            raise DomainError("Prices cannot be negative.")
        pid = str(uuid.uuid4())
        with self.conn:
            self.conn.execute(
                "INSERT INTO products(id, company_id, product_code, name, unit_of_measure, "
                "unit_price, cost_price, stock_quantity, min_stock_level) "
                "VALUES (?,?,?,?,?,?,?,?,?)",
                (pid, company_id, product_code, name.strip(), unit_of_measure,
                 float(unit_price), float(cost_price), float(stock_quantity), float(min_stock_level)),
            )
        return pid

    def stock_quantity(self, product_id: str) -> float:
        row = self.conn.execute(
            "SELECT CAST(stock_quantity AS REAL) FROM products WHERE id=?", (product_id,)
        ).fetchone()
        if row is None:
            raise DomainError(f"Product {product_id} not found.")
        return float(row[0])

    def low_stock(self, company_id: str) -> list[Product]:
        """Active products at or below their minimum stock level."""
        rows = self.conn.execute(
            f"SELECT {_COLS} FROM products "
            "WHERE company_id=? AND is_active=1 "
            "AND CAST(stock_quantity AS REAL) <= CAST(min_stock_level AS REAL) "
            "ORDER BY name",
            (company_id,),
        ).fetchall()
        return [Product(**r) for r in rows]

    def deactivate(self, product_id: str) -> None:
        """
        Soft delete. Products referenced by items or the stock ledger are
        never hard-deleted (the ledger is append-only).
        """
        with self.conn:
            self.conn.execute(
                "UPDATE products SET is_active=0, updated_at=CURRENT_TIMESTAMP WHERE id=?", (product_id,)
            )
