"""
Read-side queries over the stock ledger (stock_movements).

Writes go through the document flows (modules.documents.stock); the ledger
is append-only and the schema refuses UPDATE/DELETE on it.

Conventions:
- All list-returning methods yield `list[dict]` (sqlite3.Row -> dict).
- Quantities are cast to float in Python.
"""

from __future__ import annotations

import sqlite3
from typing import Optional, List, Dict


class StockMovementsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ------------------------------------------------------------------
    # Movements tied to one document
    # ------------------------------------------------------------------
    def for_reference(self, reference_id: str, reference_type: Optional[str] = None) -> List[Dict]:
        """
        All movements for a document id, oldest first. With `reference_type`
        only that tag is returned (e.g. 'CREDIT_NOTE' or 'CREDIT_NOTE_REVERSAL').
        """
        sql = """
            SELECT id, product_id, movement_type, reference_type, reference_id,
                   reverses_movement_id, CAST(quantity AS REAL) AS quantity,
                   cost_per_unit, notes, created_at
            FROM stock_movements
            WHERE reference_id = ?
        """
        params: list = [reference_id]
        if reference_type:
            sql += " AND reference_type = ?"
            params.append(reference_type)
        sql += " ORDER BY created_at, rowid"
        return [self._row_to_dict(r) for r in self.conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Filtered listing
    # ------------------------------------------------------------------
    def find_movements(
        self,
        company_id: str,
        *,
        date_from: Optional[str] = None,   # inclusive 'YYYY-MM-DD'
        date_to: Optional[str] = None,     # inclusive 'YYYY-MM-DD'
        product_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict]:
        """
        Movements of one company by optional date range and/or product, newest first.
        """
        lim = self._normalize_limit(limit)

        where: List[str] = ["m.company_id = ?"]
        params: List = [company_id]
        if date_from:
            where.append("DATE(m.created_at) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(m.created_at) <= DATE(?)")
            params.append(date_to)
        if product_id is not None:
            where.append("m.product_id = ?")
            params.append(product_id)

        sql = """
            SELECT
                m.id                        AS id,
                m.created_at                AS created_at,
                m.movement_type             AS movement_type,
                m.reference_type            AS reference_type,
                m.reference_id              AS reference_id,
                p.name                      AS product,
                CAST(m.quantity AS REAL)    AS quantity,
                COALESCE(m.notes, '')       AS notes
            FROM stock_movements m
            LEFT JOIN products p ON p.id = m.product_id
        """
        sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY m.created_at DESC, m.rowid DESC LIMIT ?"
        params.append(lim)
        return [self._row_to_dict(r) for r in self.conn.execute(sql, tuple(params)).fetchall()]

    # ------------------------------------------------------------------
    # Ledger vs. stored quantity
    # ------------------------------------------------------------------
    def ledger_balance(self, product_id: str) -> Dict | None:
        """
        {product_id, product_name, stock_quantity, ledger_quantity} from
        v_stock_ledger_balance, or None if the product does not exist.
        ledger_quantity is the net of all IN/OUT rows; it only matches
        stock_quantity when the opening stock was itself recorded as a movement.
        """
        row = self.conn.execute(
            "SELECT product_id, product_name, stock_quantity, ledger_quantity "
            "FROM v_stock_ledger_balance WHERE product_id = ?",
            (product_id,),
        ).fetchone()
        return self._row_to_dict(row) if row else None

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_dict(r: sqlite3.Row | dict) -> Dict:
        return dict(r)

    @staticmethod
    def _normalize_limit(limit: int) -> int:
        """
        Guard the limit to a safe set (50/100/500). Default to 100 if unrecognized.
        """
        try:
            v = int(limit)
        except (TypeError, ValueError):
            return 100
        return v if v in (50, 100, 500) else 100
