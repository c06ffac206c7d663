from __future__ import annotations

import logging
from typing import Optional

from ...constants import CACHE_QUOTATIONS
from ...database.datastore import DataStore, StoreError, TenantContext
from .errors import ConflictError, NotFoundError, SideEffectWarning, as_domain_error
from .kinds import INVOICE, QUOTATION
from .orchestrator import Invalidate, OperationResult, TransactionOrchestrator, invalidate_safely, item_payload

_log = logging.getLogger(__name__)

# quotation header fields carried onto the invoice
_CARRIED = ("customer_id", "notes", "terms_and_conditions")


def convert_quotation_to_invoice(
    store: DataStore,
    tenant: TenantContext,
    quotation_id: str,
    *,
    overrides: Optional[dict] = None,
    invalidate: Optional[Invalidate] = None,
) -> OperationResult:
    """
    Create an invoice from a quotation's items and mark the quotation as
    converted. The invoice is re-priced with the invoice tax policy.
    Marking the quotation is best-effort: the invoice stays either way.
    """
    action = "convert quotation"
    try:
        quotation = store.get(QUOTATION.table, quotation_id, tenant=tenant)
        if quotation is None:
            raise NotFoundError("Quotation not found")
        if quotation["status"] == "converted":
            raise ConflictError(f"Quotation {quotation['quotation_number']} has already been converted.")
        items = store.select(QUOTATION.items_table, {QUOTATION.parent_key: quotation_id},
                             tenant=tenant, order_by="sort_order")
    except StoreError as e:
        raise as_domain_error(e, action) from e

    header = {k: quotation[k] for k in _CARRIED if quotation.get(k) is not None}
    header["quotation_id"] = quotation_id
    header.update(overrides or {})

    result = TransactionOrchestrator(store, tenant, INVOICE) \
        .create_with_items(header, [item_payload(i) for i in items])

    try:
        store.update(QUOTATION.table, quotation_id, {"status": "converted"}, tenant=tenant)
    except StoreError as e:
        result.warnings.append(SideEffectWarning(
            "quotation_status", "Invoice created but the quotation could not be marked as converted", cause=e))
        _log.warning("quotation %s not marked converted: %s", quotation_id, e)
    invalidate_safely(invalidate, list(INVOICE.cache_keys) + [CACHE_QUOTATIONS], result.warnings)

    _log.info("Quotation %s converted to invoice %s", quotation["quotation_number"], result.number)
    result.effects["quotation_number"] = quotation["quotation_number"]
    return result
