from .errors import (
    DomainError,
    ValidationError,
    NotFoundError,
    ConflictError,
    DependencyMissingError,
    SideEffectWarning,
    classify_store_error,
    as_domain_error,
)
from .saga import Saga, SagaContext, SagaStep
from .kinds import DocumentKind, QUOTATION, INVOICE, CREDIT_NOTE, KINDS, get_kind
from .stock import StockLedger
from .audit import AuditLogger
from .orchestrator import OperationResult, Stage, TransactionOrchestrator, invalidate_safely, item_payload
from .conversion import convert_quotation_to_invoice
from .allocations import AllocationResult, apply_credit_note

__all__ = [
    "DomainError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "DependencyMissingError",
    "SideEffectWarning",
    "classify_store_error",
    "as_domain_error",
    "Saga",
    "SagaContext",
    "SagaStep",
    "DocumentKind",
    "QUOTATION",
    "INVOICE",
    "CREDIT_NOTE",
    "KINDS",
    "get_kind",
    "StockLedger",
    "AuditLogger",
    "OperationResult",
    "Stage",
    "TransactionOrchestrator",
    "item_payload",
    "invalidate_safely",
    "convert_quotation_to_invoice",
    "AllocationResult",
    "apply_credit_note",
]
