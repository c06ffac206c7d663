"""
Multi-step document writes against a DataStore that cannot group calls
into one transaction.

Each public operation builds a Saga:

    create:  number -> header -> items -> stock (best effort)
    update:  reverse stock (best effort) -> header -> clear items -> items -> stock (best effort)
    delete:  reverse stock (best effort) -> balances -> header -> audit (best effort)

A failing atomic step undoes the completed ones in reverse order and the
caller gets the original error, classified into the DomainError family.
Best-effort failures end up in OperationResult.warnings.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from ...constants import CACHE_CREDIT_NOTES, CACHE_CUSTOMER_CREDIT_NOTES, CACHE_INVOICES, \
    CACHE_CUSTOMER_INVOICES, CACHE_CREDIT_NOTE_ALLOCATIONS
from ...database.datastore import DataStore, StoreError, StoreErrorKind, TenantContext
from ...utils.validators import line_item_problems
from ..pricing import DocumentTotals, aggregate, amounts_for
from .audit import AuditLogger
from .balances import credited_total, credit_note_status, invoice_balance, invoice_status
from .errors import ConflictError, NotFoundError, SideEffectWarning, ValidationError, as_domain_error
from .kinds import CREDIT_NOTE, INVOICE, DocumentKind
from .saga import Saga, SagaContext
from .stock import StockLedger

_log = logging.getLogger(__name__)

Invalidate = Callable[[list], None]

_ITEM_FIELDS = ("product_id", "description", "quantity", "unit_price",
                "discount_percent", "tax_percent", "tax_inclusive")
_PROTECTED = ("id", "company_id", "created_at", "created_by")


class Stage(str, Enum):
    IDLE = "idle"
    NUMBER_GENERATED = "number_generated"
    HEADER_INSERTED = "header_inserted"
    ITEMS_INSERTED = "items_inserted"
    SIDE_EFFECTS_APPLIED = "side_effects_applied"
    COMMITTED = "committed"


@dataclass
class OperationResult:
    kind: DocumentKind
    record: dict
    items: list[dict] = field(default_factory=list)
    warnings: list[SideEffectWarning] = field(default_factory=list)
    effects: dict = field(default_factory=dict)

    @property
    def number(self) -> str | None:
        return self.record.get(self.kind.number_field)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


def invalidate_safely(invalidate: Optional[Invalidate], keys: Iterable[str],
                      warnings: list[SideEffectWarning]) -> None:
    """Signal cache keys after a commit; a failure here is recorded, never raised."""
    if invalidate is None:
        return
    keys = list(dict.fromkeys(keys))
    try:
        invalidate(keys)
    except Exception as e:
        warnings.append(SideEffectWarning("invalidate", "Views could not be refreshed", cause=e))
        _log.warning("cache invalidation failed for %s: %s", keys, e)


def item_payload(item) -> dict:
    """LineItem or plain dict -> dict with just the stored input fields."""
    if hasattr(item, "to_payload"):
        item = item.to_payload()
    return {k: item[k] for k in _ITEM_FIELDS if k in item}


class TransactionOrchestrator:
    def __init__(
        self,
        store: DataStore,
        tenant: TenantContext,
        kind: DocumentKind,
        *,
        invalidate: Optional[Invalidate] = None,
    ):
        self.store = store
        self.tenant = tenant
        self.kind = kind
        self.invalidate = invalidate
        self.ledger = StockLedger(store, tenant)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _action(self, verb: str) -> str:
        return f"{verb} {self.kind.label.lower()}"

    def _stage(self, ctx: SagaContext, stage: Stage) -> None:
        ctx["stage"] = stage
        _log.debug("%s -> %s", self.kind.name, stage.value)

    def validate(self, header: dict, items: list[dict], *, require_customer: bool = True) -> None:
        """Pre-flight checks; raises ValidationError before any store call."""
        problems: list[str] = []
        if require_customer and not header.get("customer_id"):
            problems.append("Please select a customer.")
        if not items:
            problems.append("Add at least one line item.")
        for idx, it in enumerate(items):
            problems.extend(line_item_problems(it, idx))
        if problems:
            msg = problems[0] if len(problems) == 1 else "Please fix the highlighted problems before saving."
            raise ValidationError(msg, problems)

    def price_items(self, items: list[dict]) -> tuple[list[dict], DocumentTotals]:
        policy = self.kind.tax_policy
        rows = []
        for idx, it in enumerate(items):
            a = amounts_for(it, policy)
            rows.append({
                "id": str(uuid.uuid4()),
                "product_id": it.get("product_id") or None,
                "description": it.get("description") or "",
                "quantity": float(it["quantity"]),
                "unit_price": float(it.get("unit_price") or 0),
                "discount_percent": float(it.get("discount_percent") or 0),
                "tax_percent": float(it.get("tax_percent") or 0),
                "tax_inclusive": bool(it.get("tax_inclusive", False)),
                "tax_amount": a.tax_amount,
                "line_total": a.line_total,
                "sort_order": idx,
            })
        return rows, aggregate(items, policy)

    def _load(self, id: str, action: str) -> dict:
        try:
            row = self.store.get(self.kind.table, id, tenant=self.tenant)
        except StoreError as e:
            raise as_domain_error(e, action) from e
        if row is None:
            raise NotFoundError(f"{self.kind.label} not found")
        return row

    def _items_of(self, id: str) -> list[dict]:
        return self.store.select(self.kind.items_table, {self.kind.parent_key: id},
                                 tenant=self.tenant, order_by="sort_order")

    def _insert_header(self, row: dict) -> dict:
        try:
            return self.store.insert(self.kind.table, row, tenant=self.tenant)
        except StoreError as e:
            col = e.column
            if (e.kind is StoreErrorKind.FOREIGN_KEY_VIOLATION
                    and col in self.kind.nullable_retry_fields and row.get(col) is not None):
                _log.warning("%s insert: %s=%r rejected by foreign key, retrying without it",
                             self.kind.name, col, row[col])
                return self.store.insert(self.kind.table, {**row, col: None}, tenant=self.tenant)
            raise

    def _balance_fields(self, record: dict, total: float) -> dict:
        if self.kind is INVOICE:
            paid = float(record.get("paid_amount") or 0)
            credited = credited_total(self.store, self.tenant, record["id"]) if record.get("id") else 0.0
            balance = invoice_balance(total, paid, credited)
            out = {"balance_due": balance}
            if record.get("status") != "cancelled":
                out["status"] = invoice_status(paid, balance, record.get("status"))
            return out
        if self.kind is CREDIT_NOTE:
            applied = float(record.get("applied_amount") or 0)
            balance = total - applied
            return {"balance": balance,
                    "status": credit_note_status(record.get("status") or "draft", balance, applied)}
        return {}

    def _finish(self, keys: Iterable[str], result: OperationResult) -> OperationResult:
        invalidate_safely(self.invalidate, keys, result.warnings)
        if result.warnings:
            _log.warning("%s %s saved with %d warning(s)", self.kind.label, result.number, len(result.warnings))
        return result

    @staticmethod
    def _reraise(exc: Exception, action: str):
        err = as_domain_error(exc, action)
        if err is exc:
            raise err
        raise err from exc

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create_with_items(self, header: dict, items: Iterable) -> OperationResult:
        kind = self.kind
        action = self._action("create")
        header = dict(header)
        payloads = [item_payload(i) for i in items]
        self.validate(header, payloads)
        priced, totals = self.price_items(payloads)

        row = {k: v for k, v in header.items() if k not in ("id", "company_id")}
        row["id"] = str(uuid.uuid4())
        row.update(totals.as_header())
        row.setdefault("status", "draft")
        if self.tenant.user_id:
            row.setdefault("created_by", self.tenant.user_id)
        if kind.tracks_inventory:
            row["affects_inventory"] = kind.affects_inventory(header)
        if kind is INVOICE:
            row.setdefault("paid_amount", 0)
        if kind is CREDIT_NOTE:
            row.setdefault("applied_amount", 0)
        row.update(self._balance_fields({**row, "id": None}, totals.total_amount))

        def number(ctx):
            n = row.get(kind.number_field)
            if not n:
                n = self.store.call("generate_document_number",
                                    {"kind": kind.name, "date": row.get(kind.date_field)},
                                    tenant=self.tenant)
            row[kind.number_field] = n
            self._stage(ctx, Stage.NUMBER_GENERATED)
            return n

        def insert_header(ctx):
            rec = self._insert_header(row)
            self._stage(ctx, Stage.HEADER_INSERTED)
            return rec

        def delete_header(ctx):
            self.store.delete(kind.table, {"id": ctx["header"]["id"]}, tenant=self.tenant)

        def insert_items(ctx):
            rows = [{**r, kind.parent_key: ctx["header"]["id"]} for r in priced]
            self.store.insert(kind.items_table, rows, tenant=self.tenant)
            self._stage(ctx, Stage.ITEMS_INSERTED)
            return rows

        def post_stock(ctx):
            rec = ctx["header"]
            if not kind.affects_inventory(rec):
                return []
            label = f"{kind.label} {rec[kind.number_field]}"
            rows = self.ledger.movements_for(kind, ctx["items"], rec["id"], label)
            posted = self.ledger.post(rows, ctx.warn, "stock")
            self._stage(ctx, Stage.SIDE_EFFECTS_APPLIED)
            return posted

        saga = (Saga(action)
                .step("number", number)
                .step("header", insert_header, delete_header)
                .step("items", insert_items)
                .step("stock", post_stock, best_effort=True,
                      warning="Stock levels could not be updated"))
        ctx = SagaContext(stage=Stage.IDLE)
        try:
            saga.run(ctx)
        except Exception as exc:
            self._reraise(exc, action)
        self._stage(ctx, Stage.COMMITTED)

        rec = ctx["header"]
        _log.info("%s %s created (%d items)", kind.label, rec[kind.number_field], len(priced))
        result = OperationResult(kind, rec, ctx["items"], list(ctx.warnings),
                                 {"stock_movements_posted": len(ctx.get("stock") or [])})
        return self._finish(kind.cache_keys, result)

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    def update_with_items(self, id: str, header_patch: dict, items: Iterable) -> OperationResult:
        kind = self.kind
        action = self._action("update")
        patch = {k: v for k, v in dict(header_patch).items() if k not in _PROTECTED}
        payloads = [item_payload(i) for i in items]

        self.validate(patch, payloads, require_customer="customer_id" in patch)
        existing = self._load(id, action)
        priced, totals = self.price_items(payloads)
        merged = {**existing, **patch}
        inventory_before = kind.affects_inventory(existing)
        if kind.tracks_inventory:
            patch["affects_inventory"] = kind.affects_inventory(merged)
        patch.update(totals.as_header())
        try:
            old_items = self._items_of(id)
            patch.update(self._balance_fields(merged, totals.total_amount))
        except StoreError as e:
            raise as_domain_error(e, action) from e
        if kind is CREDIT_NOTE and patch["balance"] < -1e-9:
            raise ConflictError("The new total is lower than the amount already applied to invoices.")
        if kind is INVOICE and patch["balance_due"] < -1e-9:
            raise ConflictError("The new total is lower than the amount already paid or credited.")
        restore = {k: existing[k] for k in patch if k in existing}
        label = f"{kind.label} {existing[kind.number_field]}"

        def reverse_stock(ctx):
            if not inventory_before:
                return []
            return self.ledger.reverse(kind, id, label, ctx.warn, "reverse_stock")

        def repost_stock(ctx):
            self.ledger.repost(kind, ctx.get("reverse_stock") or [], id, label, ctx.warn, "reverse_stock")

        def update_header(ctx):
            rec = self.store.update(kind.table, id, patch, tenant=self.tenant)
            self._stage(ctx, Stage.HEADER_INSERTED)
            return rec

        def restore_header(ctx):
            self.store.update(kind.table, id, restore, tenant=self.tenant)

        def clear_items(ctx):
            return self.store.delete(kind.items_table, {kind.parent_key: id}, tenant=self.tenant)

        def restore_items(ctx):
            if old_items:
                self.store.insert(kind.items_table, old_items, tenant=self.tenant)

        def insert_items(ctx):
            rows = [{**r, kind.parent_key: id} for r in priced]
            self.store.insert(kind.items_table, rows, tenant=self.tenant)
            self._stage(ctx, Stage.ITEMS_INSERTED)
            return rows

        def post_stock(ctx):
            rec = ctx["header"]
            if not kind.affects_inventory(rec):
                return []
            rows = self.ledger.movements_for(kind, ctx["items"], id, label)
            posted = self.ledger.post(rows, ctx.warn, "stock")
            self._stage(ctx, Stage.SIDE_EFFECTS_APPLIED)
            return posted

        saga = (Saga(action)
                .step("reverse_stock", reverse_stock, repost_stock, best_effort=True,
                      warning="Previous stock movements could not be reversed")
                .step("header", update_header, restore_header)
                .step("clear_items", clear_items, restore_items)
                .step("items", insert_items)
                .step("stock", post_stock, best_effort=True,
                      warning="Stock levels could not be updated"))
        ctx = SagaContext(stage=Stage.IDLE)
        try:
            saga.run(ctx)
        except Exception as exc:
            self._reraise(exc, action)
        self._stage(ctx, Stage.COMMITTED)

        _log.info("%s %s updated (%d items)", kind.label, existing[kind.number_field], len(priced))
        result = OperationResult(kind, ctx["header"], ctx["items"], list(ctx.warnings), {
            "stock_movements_reversed": len(ctx.get("reverse_stock") or []),
            "stock_movements_posted": len(ctx.get("stock") or []),
        })
        return self._finish(kind.cache_keys, result)

    # ------------------------------------------------------------------
    # delete
    # ------------------------------------------------------------------

    def _balance_corrections(self, allocations: list[dict]) -> list[tuple[str, str, dict, dict]]:
        """
        (collection, id, new values, old values) for each downstream document
        whose balance depends on the one being deleted.
        """
        out = []
        if self.kind is CREDIT_NOTE:
            by_invoice: dict[str, float] = {}
            for a in allocations:
                by_invoice[a["invoice_id"]] = by_invoice.get(a["invoice_id"], 0.0) + float(a["allocated_amount"])
            for inv_id, amount in by_invoice.items():
                inv = self.store.get("invoices", inv_id, tenant=self.tenant)
                if inv is None:
                    continue
                paid = float(inv["paid_amount"] or 0)
                balance = float(inv["balance_due"] or 0) + amount
                new = {"balance_due": balance}
                if inv["status"] != "cancelled":
                    new["status"] = invoice_status(paid, balance, inv["status"])
                out.append(("invoices", inv_id, new, {k: inv[k] for k in new}))
        elif self.kind is INVOICE:
            by_cn: dict[str, float] = {}
            for a in allocations:
                by_cn[a["credit_note_id"]] = by_cn.get(a["credit_note_id"], 0.0) + float(a["allocated_amount"])
            for cn_id, amount in by_cn.items():
                cn = self.store.get("credit_notes", cn_id, tenant=self.tenant)
                if cn is None:
                    continue
                applied = float(cn["applied_amount"] or 0) - amount
                balance = float(cn["balance"] or 0) + amount
                new = {"applied_amount": applied, "balance": balance,
                       "status": credit_note_status(cn["status"], balance, applied)}
                out.append(("credit_notes", cn_id, new, {k: cn[k] for k in new}))
        return out

    def _allocations_of(self, id: str) -> list[dict]:
        if self.kind is CREDIT_NOTE:
            where = {"credit_note_id": id}
        elif self.kind is INVOICE:
            where = {"invoice_id": id}
        else:
            return []
        try:
            return self.store.select("credit_note_allocations", where, tenant=self.tenant)
        except StoreError as e:
            if e.kind is StoreErrorKind.UNDEFINED_TABLE:
                return []
            raise

    def delete_with_cascade(self, id: str) -> OperationResult:
        kind = self.kind
        action = self._action("delete")
        existing = self._load(id, action)
        try:
            items = self._items_of(id)
            allocations = self._allocations_of(id)
            if kind is INVOICE and self.store.select("payment_allocations", {"invoice_id": id},
                                                     tenant=self.tenant, limit=1):
                raise ConflictError("This invoice has payments recorded against it. Delete the payments first.")
            corrections = self._balance_corrections(allocations)
        except StoreError as e:
            raise as_domain_error(e, action) from e

        inventory = kind.affects_inventory(existing)
        number = existing[kind.number_field]
        label = f"{kind.label} {number}"

        def reverse_stock(ctx):
            if not inventory:
                return []
            return self.ledger.reverse(kind, id, label, ctx.warn, "reverse_stock")

        def repost_stock(ctx):
            self.ledger.repost(kind, ctx.get("reverse_stock") or [], id, label, ctx.warn, "reverse_stock")

        def apply_corrections(ctx):
            done = []
            try:
                for collection, doc_id, new, _old in corrections:
                    self.store.update(collection, doc_id, new, tenant=self.tenant)
                    done.append((collection, doc_id))
            except Exception:
                ctx["balances"] = done
                try:
                    undo_corrections(ctx)
                except Exception as undo:
                    ctx.warn("balances", "could not undo balance corrections", undo)
                raise
            return done

        def undo_corrections(ctx):
            done = set(ctx.get("balances") or [])
            for collection, doc_id, _new, old in reversed(corrections):
                if (collection, doc_id) in done:
                    self.store.update(collection, doc_id, old, tenant=self.tenant)

        def delete_header(ctx):
            n = self.store.delete(kind.table, {"id": id}, tenant=self.tenant)
            if n == 0:
                raise NotFoundError(f"{kind.label} not found")
            return n

        def audit(ctx):
            return AuditLogger(self.store, self.tenant).record("DELETE", kind.name, id, {
                "number": number,
                "customer_id": existing.get("customer_id"),
                "total_amount": existing.get("total_amount"),
                "items_count": len(items),
                "allocations_count": len(allocations),
                "affected_documents": [doc_id for _c, doc_id, _n, _o in corrections],
                "inventory_affected": inventory,
                "stock_movements_reversed": len(ctx.get("reverse_stock") or []),
            })

        saga = (Saga(action)
                .step("reverse_stock", reverse_stock, repost_stock, best_effort=True,
                      warning="Stock movements could not be reversed")
                .step("balances", apply_corrections, undo_corrections)
                .step("header", delete_header)
                .step("audit", audit, best_effort=True, warning="Audit log entry could not be written"))
        ctx = SagaContext(stage=Stage.IDLE)
        try:
            saga.run(ctx)
        except Exception as exc:
            self._reraise(exc, action)

        _log.info("%s %s deleted", kind.label, number)
        result = OperationResult(kind, existing, items, list(ctx.warnings), {
            "stock_movements_reversed": len(ctx.get("reverse_stock") or []),
            "affected_documents": [doc_id for _c, doc_id, _n, _o in corrections],
        })
        keys = list(kind.cache_keys)
        if corrections:
            keys += [CACHE_CREDIT_NOTE_ALLOCATIONS]
            keys += [CACHE_INVOICES, CACHE_CUSTOMER_INVOICES] if kind is CREDIT_NOTE \
                else [CACHE_CREDIT_NOTES, CACHE_CUSTOMER_CREDIT_NOTES]
        return self._finish(keys, result)

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def set_status(self, id: str, status: str) -> OperationResult:
        action = self._action("update status of")
        self._load(id, action)
        try:
            rec = self.store.update(self.kind.table, id, {"status": status}, tenant=self.tenant)
        except StoreError as e:
            raise as_domain_error(e, action) from e
        return self._finish(self.kind.cache_keys, OperationResult(self.kind, rec))
