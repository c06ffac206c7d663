from ...utils.helpers import fmt_money
from ..documents.allocations import apply_credit_note
from ..documents.controller import DocumentController
from ..documents.kinds import CREDIT_NOTE


class CreditNotesController(DocumentController):
    KIND = CREDIT_NOTE

    def apply_to_invoice(self, credit_note_id: str, invoice_id: str, amount, allocation_date: str | None = None):
        return self._run(
            "apply credit note",
            lambda: apply_credit_note(self.store, self.tenant, credit_note_id, invoice_id, amount,
                                      allocation_date=allocation_date, invalidate=self.signals.invalidate),
            lambda a: f"Applied {fmt_money(a.record['allocated_amount'])} to the invoice; "
                      f"remaining credit {fmt_money(a.record['credit_note_balance'])}",
        )

    def allocations(self, credit_note_id: str) -> list[dict]:
        return self.store.select("credit_note_allocations", {"credit_note_id": credit_note_id},
                                 tenant=self.tenant, order_by="allocation_date")
