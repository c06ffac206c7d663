from ..documents.controller import DocumentController
from ..documents.kinds import INVOICE


class InvoicesController(DocumentController):
    KIND = INVOICE

    def list_invoices(self, customer_id: str | None = None) -> list[dict]:
        where = {"customer_id": customer_id} if customer_id else None
        return self.store.select(INVOICE.table, where, tenant=self.tenant, order_by="invoice_date DESC")

    def stock_movements(self, invoice_id: str) -> list[dict]:
        """Ledger rows (including reversals) posted for one invoice."""
        return self.store.select("stock_movements", {"reference_id": invoice_id},
                                 tenant=self.tenant, order_by="created_at")
