from __future__ import annotations
from dataclasses import dataclass
import sqlite3
import uuid


# Domain-level error the controller can surface directly (e.g., toast/snackbar)
class DomainError(Exception):
    pass


@dataclass
class Customer:
    id: str | None
    company_id: str
    name: str
    email: str | None
    phone: str | None
    customer_code: str | None
    address: str | None


_COLS = "id, company_id, name, email, phone, customer_code, address"


class CustomersRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        return s.strip()

    @staticmethod
    def _ensure_non_empty(value: str | None, field_label: str) -> None:
        if value is None or value.strip() == "":
            raise DomainError(f"{field_label} cannot be empty.")

    def _next_code(self, company_id: str) -> str:
        """One past the highest CUSTnnnn code in the company, hand-entered ones included."""
        row = self.conn.execute(
            "SELECT MAX(CAST(SUBSTR(customer_code, 5) AS INTEGER)) FROM customers "
            "WHERE company_id=? AND customer_code GLOB 'CUST[0-9]*'",
            (company_id,),
        ).fetchone()
        return f"CUST{int(row[0] or 0) + 1:04d}"

    # ---- Queries ----------------------------------------------------------

    def list_customers(self, company_id: str, active_only: bool = True) -> list[Customer]:
        """
        Customers of one company, newest first. By default only active rows.
        """
        sql = f"SELECT {_COLS} FROM customers WHERE company_id = ?"
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY created_at DESC, name"
        rows = self.conn.execute(sql, (company_id,)).fetchall()
        return [Customer(**r) for r in rows]

    def search(self, company_id: str, term: str, active_only: bool = True) -> list[Customer]:
        """
        LIKE search over code/name/email/phone within one company.
        """
        pattern = f"%{term.strip()}%"
        sql = (
            f"SELECT {_COLS} FROM customers "
            "WHERE company_id = ? AND ("
            "  customer_code LIKE ? OR name LIKE ? OR email LIKE ? OR phone LIKE ?"
            ")"
        )
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY name"
        rows = self.conn.execute(sql, (company_id, pattern, pattern, pattern, pattern)).fetchall()
        return [Customer(**r) for r in rows]

    def get(self, customer_id: str) -> Customer | None:
        r = self.conn.execute(
            f"SELECT {_COLS} FROM customers WHERE id=?", (customer_id,)
        ).fetchone()
        return Customer(**r) if r else None

    # ---- Mutations --------------------------------------------------------

    def create(
        self,
        company_id: str,
        name: str,
        *,
        email: str | None = None,
        phone: str | None = None,
        address: str | None = None,
        customer_code: str | None = None,
    ) -> str:
        self._ensure_non_empty(name, "Name")
        cid = str(uuid.uuid4())
        code = self._normalize_text(customer_code) or self._next_code(company_id)
        try:
            with self.conn:
                self.conn.execute(
                    "INSERT INTO customers(id, company_id, customer_code, name, email, phone, address) "
                    "VALUES (?,?,?,?,?,?,?)",
                    (
                        cid,
                        company_id,
                        code,
                        self._normalize_text(name),
                        self._normalize_text(email),
                        self._normalize_text(phone),
                        self._normalize_text(address),
                    ),
                )
        except sqlite3.IntegrityError as e:
            if "unique" in str(e).lower():
                raise DomainError(f"Customer code {code} is already in use.") from e
            raise
        return cid

    def update(self, customer_id: str, name: str, *, email: str | None = None,
               phone: str | None = None, address: str | None = None) -> None:
        self._ensure_non_empty(name, "Name")
        with self.conn:
            self.conn.execute(
                "UPDATE customers SET name=?, email=?, phone=?, address=?, updated_at=CURRENT_TIMESTAMP "
                "WHERE id=?",
                (
                    self._normalize_text(name),
                    self._normalize_text(email),
                    self._normalize_text(phone),
                    self._normalize_text(address),
                    customer_id,
                ),
            )

    def deactivate(self, customer_id: str) -> None:
        """Soft delete; customers referenced by documents cannot be removed outright."""
        with self.conn:
            self.conn.execute(
                "UPDATE customers SET is_active=0, updated_at=CURRENT_TIMESTAMP WHERE id=?", (customer_id,)
            )
