"""
Customer payments against invoices.

record_payment:  number -> payment -> allocation (best effort) -> invoice balance (best effort)
delete_payment:  invoice balances -> payment (allocations cascade) -> audit (best effort)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from ...constants import CACHE_CUSTOMER_INVOICES, CACHE_INVOICES, CACHE_PAYMENTS
from ...database.datastore import DataStore, StoreError, StoreErrorKind, TenantContext
from ...utils.validators import try_parse_float
from ..documents.audit import AuditLogger
from ..documents.balances import invoice_payment_patch
from ..documents.errors import ConflictError, NotFoundError, SideEffectWarning, ValidationError, \
    as_domain_error
from ..documents.orchestrator import Invalidate, invalidate_safely
from ..documents.saga import Saga, SagaContext

_log = logging.getLogger(__name__)

INVALIDATES = [CACHE_PAYMENTS, CACHE_INVOICES, CACHE_CUSTOMER_INVOICES]


@dataclass
class PaymentResult:
    record: dict
    warnings: list[SideEffectWarning] = field(default_factory=list)
    effects: dict = field(default_factory=dict)

    @property
    def number(self) -> str | None:
        return self.record.get("payment_number")

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


class PaymentService:
    """
    Rules:
      - amount may be negative (a refund) but never zero
      - method must be one of METHODS
      - the invoice must belong to the paying customer and not be cancelled
    """

    METHODS: set[str] = {"cash", "bank_transfer", "mobile_money", "cheque", "card", "other"}

    def __init__(self, store: DataStore, tenant: TenantContext, *, invalidate: Optional[Invalidate] = None):
        self.store = store
        self.tenant = tenant
        self.invalidate = invalidate

    def _validate(self, invoice_id, amount, method) -> float:
        problems = []
        if not invoice_id:
            problems.append("Please select an invoice.")
        ok, value = try_parse_float(amount)
        if not ok:
            problems.append("Amount must be a number.")
        elif value == 0:
            problems.append("Amount cannot be zero.")
        if method not in self.METHODS:
            problems.append(f"Unsupported payment method: {method}")
        if problems:
            raise ValidationError(problems[0], problems)
        return value

    def _invalidate(self, result: PaymentResult) -> None:
        invalidate_safely(self.invalidate, INVALIDATES, result.warnings)

    # ------------------------------------------------------------------

    def record_payment(
        self,
        invoice_id: str,
        amount,
        *,
        customer_id: str | None = None,
        payment_method: str = "cash",
        payment_date: str | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> PaymentResult:
        action = "record payment"
        value = self._validate(invoice_id, amount, payment_method)
        try:
            invoice = self.store.get("invoices", invoice_id, tenant=self.tenant)
        except StoreError as e:
            raise as_domain_error(e, action) from e
        if invoice is None:
            raise NotFoundError("Invoice not found")
        if invoice["status"] == "cancelled":
            raise ConflictError(f"Invoice {invoice['invoice_number']} is cancelled.")
        if customer_id and customer_id != invoice["customer_id"]:
            raise ConflictError("The invoice belongs to a different customer.")

        row = {
            "id": str(uuid.uuid4()),
            "customer_id": invoice["customer_id"],
            "amount": value,
            "payment_method": payment_method,
            "reference_number": reference_number,
            "notes": notes,
            "created_by": self.tenant.user_id,
        }
        if payment_date:
            row["payment_date"] = payment_date

        def number(ctx):
            n = self.store.call("generate_document_number", {"kind": "payment", "date": payment_date},
                                tenant=self.tenant)
            row["payment_number"] = n
            row["reference_number"] = row["reference_number"] or n
            return n

        def insert_payment(ctx):
            return self.store.insert("payments", row, tenant=self.tenant)

        def delete_payment(ctx):
            self.store.delete("payments", {"id": row["id"]}, tenant=self.tenant)

        def allocate(ctx):
            try:
                return self.store.insert("payment_allocations", {
                    "payment_id": row["id"],
                    "invoice_id": invoice_id,
                    "amount_allocated": value,
                }, tenant=self.tenant)
            except StoreError as e:
                if e.kind is StoreErrorKind.UNDEFINED_TABLE:
                    ctx.warn("allocation", "Payment recorded, but the payment_allocations table is missing", e)
                    return None
                raise

        def update_invoice(ctx):
            if not ctx.get("allocation"):
                ctx.warn("invoice_balance", "Invoice balance was not updated because the payment is not allocated")
                return None
            current = self.store.require("invoices", invoice_id, tenant=self.tenant)
            patch = invoice_payment_patch(self.store, self.tenant, current, value)
            return self.store.update("invoices", invoice_id, patch, tenant=self.tenant)

        saga = (Saga(action)
                .step("number", number)
                .step("payment", insert_payment, delete_payment)
                .step("allocation", allocate, best_effort=True,
                      warning="Payment recorded, but it could not be allocated to the invoice")
                .step("invoice_balance", update_invoice, best_effort=True,
                      warning="Payment recorded, but the invoice balance could not be updated"))
        ctx = SagaContext()
        try:
            saga.run(ctx)
        except Exception as exc:
            err = as_domain_error(exc, action)
            if err is exc:
                raise
            raise err from exc

        _log.info("Payment %s of %.2f recorded against invoice %s",
                  row["payment_number"], value, invoice["invoice_number"])
        result = PaymentResult(ctx["payment"], list(ctx.warnings), {
            "invoice_id": invoice_id,
            "invoice": ctx.get("invoice_balance"),
        })
        self._invalidate(result)
        return result

    # ------------------------------------------------------------------

    def delete_payment(self, payment_id: str) -> PaymentResult:
        action = "delete payment"
        try:
            payment = self.store.get("payments", payment_id, tenant=self.tenant)
            if payment is None:
                raise NotFoundError("Payment not found")
            allocations = self.store.select("payment_allocations", {"payment_id": payment_id}, tenant=self.tenant)
        except StoreError as e:
            raise as_domain_error(e, action) from e

        def reverse_balances(ctx):
            done = []
            ctx["balances"] = done
            for a in allocations:
                inv = self.store.get("invoices", a["invoice_id"], tenant=self.tenant)
                if inv is None:
                    continue
                patch = invoice_payment_patch(self.store, self.tenant, inv, -float(a["amount_allocated"]))
                self.store.update("invoices", inv["id"], patch, tenant=self.tenant)
                done.append((inv["id"], {k: inv[k] for k in patch}))
            return done

        def restore_balances(ctx):
            for inv_id, old in reversed(ctx.get("balances") or []):
                self.store.update("invoices", inv_id, old, tenant=self.tenant)

        def delete_row(ctx):
            return self.store.delete("payments", {"id": payment_id}, tenant=self.tenant)

        def audit(ctx):
            return AuditLogger(self.store, self.tenant).record("DELETE", "payment", payment_id, {
                "number": payment["payment_number"],
                "customer_id": payment["customer_id"],
                "amount": payment["amount"],
                "invoices_updated": [inv_id for inv_id, _ in ctx.get("balances") or []],
            })

        saga = (Saga(action)
                .step("balances", reverse_balances, restore_balances)
                .step("payment", delete_row)
                .step("audit", audit, best_effort=True, warning="Audit log entry could not be written"))
        ctx = SagaContext()
        try:
            saga.run(ctx)
        except Exception as exc:
            # a failure midway through the balance loop leaves no completed step to undo
            if ctx.get("balances") and "balances" not in ctx.completed:
                try:
                    restore_balances(ctx)
                except Exception as undo:
                    ctx.warn("balances", "could not undo invoice balance changes", undo)
            err = as_domain_error(exc, action)
            if err is exc:
                raise
            raise err from exc

        _log.info("Payment %s deleted (%d invoice(s) updated)", payment["payment_number"], len(ctx["balances"]))
        result = PaymentResult(payment, list(ctx.warnings), {"invoices_updated": len(ctx["balances"])})
        self._invalidate(result)
        return result
