from ..documents.controller import DocumentController
from ..documents.conversion import convert_quotation_to_invoice
from ..documents.kinds import QUOTATION


class QuotationsController(DocumentController):
    KIND = QUOTATION

    def convert_to_invoice(self, quotation_id: str, overrides: dict | None = None):
        return self._run(
            "convert quotation",
            lambda: convert_quotation_to_invoice(self.store, self.tenant, quotation_id,
                                                 overrides=overrides, invalidate=self.signals.invalidate),
            lambda r: f"Quotation {r.effects['quotation_number']} converted to invoice {r.number}",
        )
