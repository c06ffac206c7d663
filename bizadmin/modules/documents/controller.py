from typing import Iterable, Optional

from ... import config
from ..base_module import BaseModule
from ..pricing import DocumentDraft, apply_edit, new_draft
from .kinds import DocumentKind
from .orchestrator import OperationResult, TransactionOrchestrator


class DocumentController(BaseModule):
    """Create/update/delete for one document kind, plus draft editing for its form."""

    KIND: DocumentKind

    def get_title(self) -> str:
        return f"{self.KIND.label}s"

    def orchestrator(self) -> TransactionOrchestrator:
        return TransactionOrchestrator(self.store, self.tenant, self.KIND, invalidate=self.signals.invalidate)

    # ---- drafts (form state) ----

    def new_draft(self, items: Iterable[dict] = ()) -> DocumentDraft:
        return new_draft(self.KIND.tax_policy, config.DEFAULT_TAX_PERCENT, items)

    def load_draft(self, id: str) -> DocumentDraft:
        rows = self.store.select(self.KIND.items_table, {self.KIND.parent_key: id},
                                 tenant=self.tenant, order_by="sort_order")
        return self.new_draft(rows)

    def edit(self, draft: DocumentDraft, action) -> DocumentDraft:
        return apply_edit(draft, action)

    # ---- persistence ----

    def create(self, header: dict, items) -> Optional[OperationResult]:
        label = self.KIND.label
        return self._run(
            f"create {label.lower()}",
            lambda: self.orchestrator().create_with_items(header, self._items(items)),
            lambda r: f"{label} {r.number} created successfully",
        )

    def update(self, id: str, header: dict, items) -> Optional[OperationResult]:
        label = self.KIND.label
        return self._run(
            f"update {label.lower()}",
            lambda: self.orchestrator().update_with_items(id, header, self._items(items)),
            lambda r: f"{label} {r.number} updated successfully",
        )

    def delete(self, id: str) -> Optional[OperationResult]:
        label = self.KIND.label
        return self._run(
            f"delete {label.lower()}",
            lambda: self.orchestrator().delete_with_cascade(id),
            lambda r: f"{label} {r.number} deleted",
        )

    def set_status(self, id: str, status: str) -> Optional[OperationResult]:
        label = self.KIND.label
        return self._run(
            f"update {label.lower()} status",
            lambda: self.orchestrator().set_status(id, status),
            lambda r: f"{label} {r.number} marked as {status}",
        )

    @staticmethod
    def _items(items):
        if isinstance(items, DocumentDraft):
            return list(items.items)
        return list(items)
