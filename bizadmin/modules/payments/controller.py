from ...utils.helpers import fmt_money
from ..base_module import BaseModule
from .service import PaymentService


class PaymentsController(BaseModule):
    TITLE = "Payments"

    def service(self) -> PaymentService:
        return PaymentService(self.store, self.tenant, invalidate=self.signals.invalidate)

    def record(self, invoice_id: str, amount, **kwargs):
        return self._run(
            "record payment",
            lambda: self.service().record_payment(invoice_id, amount, **kwargs),
            lambda r: f"Payment {r.number} of {fmt_money(r.record['amount'])} recorded successfully",
        )

    def delete(self, payment_id: str):
        return self._run(
            "delete payment",
            lambda: self.service().delete_payment(payment_id),
            lambda r: f"Payment {r.number} deleted",
        )

    def list_payments(self, customer_id: str | None = None) -> list[dict]:
        where = {"customer_id": customer_id} if customer_id else None
        return self.store.select("payments", where, tenant=self.tenant, order_by="payment_date DESC")
