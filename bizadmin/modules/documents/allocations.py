from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ...constants import CACHE_CREDIT_NOTE_ALLOCATIONS, CACHE_CREDIT_NOTES, CACHE_CUSTOMER_CREDIT_NOTES, \
    CACHE_CUSTOMER_INVOICES, CACHE_INVOICES
from ...database.datastore import DataStore, StoreError, TenantContext
from ...utils.validators import try_parse_float
from .errors import SideEffectWarning, ValidationError, as_domain_error
from .orchestrator import Invalidate, invalidate_safely

_log = logging.getLogger(__name__)

INVALIDATES = [CACHE_CREDIT_NOTES, CACHE_CUSTOMER_CREDIT_NOTES, CACHE_CREDIT_NOTE_ALLOCATIONS,
               CACHE_INVOICES, CACHE_CUSTOMER_INVOICES]


@dataclass
class AllocationResult:
    record: dict
    warnings: list[SideEffectWarning] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


def apply_credit_note(
    store: DataStore,
    tenant: TenantContext,
    credit_note_id: str,
    invoice_id: str,
    amount,
    *,
    allocation_date: str | None = None,
    invalidate: Optional[Invalidate] = None,
) -> AllocationResult:
    """
    Allocate `amount` of a credit note against an invoice. All balance
    bookkeeping happens inside the apply_credit_note_to_invoice procedure,
    so this either fully applies or changes nothing.
    """
    ok, value = try_parse_float(amount)
    problems = []
    if not credit_note_id:
        problems.append("Please select a credit note.")
    if not invoice_id:
        problems.append("Please select an invoice.")
    if not ok or value <= 0:
        problems.append("Amount to apply must be greater than zero.")
    if problems:
        raise ValidationError(problems[0], problems)

    try:
        allocation = store.call(
            "apply_credit_note_to_invoice",
            {
                "credit_note_id": credit_note_id,
                "invoice_id": invoice_id,
                "amount": value,
                "applied_by": tenant.user_id,
                "allocation_date": allocation_date,
            },
            tenant=tenant,
        )
    except StoreError as e:
        raise as_domain_error(e, "apply credit note") from e

    _log.info("Applied %.2f of credit note %s to invoice %s", value, credit_note_id, invoice_id)
    result = AllocationResult(allocation)
    invalidate_safely(invalidate, INVALIDATES, result.warnings)
    return result
