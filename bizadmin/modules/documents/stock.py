"""
Stock side effects of documents.

Everything here is best-effort: failures are reported through the `warn`
callback (SagaContext.warn) and never raised, so the primary document stays
committed. Per-product quantity updates run one after another and a failure
on one product does not stop the rest.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Iterable

from ...constants import MOVEMENT_IN, MOVEMENT_OUT
from ...database.datastore import DataStore, StoreError, StoreErrorKind, TenantContext
from .kinds import DocumentKind

_log = logging.getLogger(__name__)

Warn = Callable[..., object]

MOVEMENTS = "stock_movements"


def opposite(movement_type: str) -> str:
    return MOVEMENT_OUT if movement_type == MOVEMENT_IN else MOVEMENT_IN


class StockLedger:
    def __init__(self, store: DataStore, tenant: TenantContext):
        self.store = store
        self.tenant = tenant

    # ---- building rows --------------------------------------------------

    def movements_for(self, kind: DocumentKind, items: Iterable[dict], reference_id: str, label: str) -> list[dict]:
        """One movement per item that has a product and a positive quantity."""
        rows = []
        for it in items:
            qty = float(it.get("quantity") or 0)
            if not it.get("product_id") or qty <= 0:
                continue
            rows.append({
                "id": str(uuid.uuid4()),
                "product_id": it["product_id"],
                "movement_type": kind.movement_type,
                "reference_type": kind.reference_type,
                "reference_id": reference_id,
                "quantity": qty,
                "cost_per_unit": it.get("unit_price"),
                "notes": f"{label} - {it.get('description') or ''}".rstrip(" -"),
            })
        return rows

    # ---- writing --------------------------------------------------------

    def post(self, rows: list[dict], warn: Warn, step: str = "stock") -> list[dict]:
        """
        Insert movement rows, then adjust each product's stock quantity.
        Returns the rows that made it into the ledger ([] if the insert failed).
        """
        if not rows:
            return []
        try:
            self.store.insert(MOVEMENTS, rows, tenant=self.tenant)
        except StoreError as e:
            if e.kind is StoreErrorKind.UNDEFINED_TABLE:
                warn(step, "Stock movements table is missing; inventory was not updated", e)
            else:
                warn(step, "Stock movements could not be recorded; inventory was not updated", e)
            return []
        self.adjust_quantities(rows, warn, step)
        return rows

    def adjust_quantities(self, rows: list[dict], warn: Warn, step: str = "stock") -> int:
        """Call update_product_stock once per row. Returns how many succeeded."""
        ok = 0
        for m in rows:
            try:
                self.store.call(
                    "update_product_stock",
                    {
                        "product_id": m["product_id"],
                        "movement_type": m["movement_type"],
                        "quantity": abs(float(m["quantity"])),
                    },
                    tenant=self.tenant,
                )
                ok += 1
            except Exception as e:
                warn(step, f"Stock quantity for product {m['product_id']} was not updated", e)
        if ok < len(rows):
            _log.warning("%d out of %d stock updates failed", len(rows) - ok, len(rows))
        return ok

    # ---- reversal -------------------------------------------------------

    def outstanding(self, kind: DocumentKind, reference_id: str) -> list[dict]:
        """Movements of `kind` for the document that have not been reversed yet."""
        originals = self.store.select(
            MOVEMENTS,
            {"reference_type": kind.reference_type, "reference_id": reference_id},
            tenant=self.tenant,
            order_by="created_at",
        )
        if not originals:
            return []
        reversed_ids = {
            r["reverses_movement_id"]
            for r in self.store.select(
                MOVEMENTS,
                {"reverses_movement_id": [m["id"] for m in originals]},
                tenant=self.tenant,
            )
        }
        return [m for m in originals if m["id"] not in reversed_ids]

    def reverse(self, kind: DocumentKind, reference_id: str, label: str, warn: Warn,
                step: str = "reverse_stock") -> list[dict]:
        """
        Cancel the document's outstanding movements by appending opposite
        rows tagged '<TYPE>_REVERSAL'. Originals are left untouched.
        Returns the reversal rows written.
        """
        try:
            open_rows = self.outstanding(kind, reference_id)
        except StoreError as e:
            if e.kind is StoreErrorKind.UNDEFINED_TABLE:
                warn(step, "Stock movements table is missing; nothing to reverse", e)
            else:
                warn(step, "Existing stock movements could not be read; they were not reversed", e)
            return []
        rows = [
            {
                "id": str(uuid.uuid4()),
                "product_id": m["product_id"],
                "movement_type": opposite(m["movement_type"]),
                "reference_type": kind.reversal_type,
                "reference_id": reference_id,
                "reverses_movement_id": m["id"],
                "quantity": float(m["quantity"]),
                "cost_per_unit": m.get("cost_per_unit"),
                "notes": f"Reversal of {label}: {m.get('notes') or ''}".rstrip(": "),
            }
            for m in open_rows
        ]
        return self.post(rows, warn, step)

    def repost(self, kind: DocumentKind, reversals: list[dict], reference_id: str, label: str,
               warn: Warn, step: str = "reverse_stock") -> list[dict]:
        """
        Undo reversals (used when the operation that reversed them failed):
        append fresh movements equal to the ones that were reversed.
        """
        rows = [
            {
                "id": str(uuid.uuid4()),
                "product_id": r["product_id"],
                "movement_type": opposite(r["movement_type"]),
                "reference_type": kind.reference_type,
                "reference_id": reference_id,
                "quantity": float(r["quantity"]),
                "cost_per_unit": r.get("cost_per_unit"),
                "notes": f"{label} - restored",
            }
            for r in reversals
        ]
        return self.post(rows, warn, step)
