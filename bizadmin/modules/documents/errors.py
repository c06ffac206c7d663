from __future__ import annotations

from ...database.datastore import StoreError, StoreErrorKind


class DomainError(Exception):
    """Error the controller can surface directly as a notification."""

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(DomainError):
    """Input rejected before any store call (e.g. no customer selected)."""

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = list(problems or [message])


class NotFoundError(DomainError):
    pass


class ConflictError(DomainError):
    """The store refused the write (duplicate number, broken reference, rule)."""


class DependencyMissingError(DomainError):
    """A table or procedure the flow needs is not installed in the store."""

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(f"Setup required: {message}. Please run the database setup and try again.",
                         cause=cause)
        self.missing = message


class SideEffectWarning(DomainError):
    """
    A best-effort step (stock, audit, allocation) failed after the primary
    record was committed. Collected on the result, never raised by the flows.
    """

    def __init__(self, step: str, message: str, *, cause: BaseException | None = None):
        super().__init__(message, cause=cause)
        self.step = step


def classify_store_error(err: StoreError, action: str) -> DomainError:
    """
    Map a StoreError onto the domain taxonomy. `action` reads like
    "create invoice" and prefixes the message.
    """
    kind = err.kind
    if kind in (StoreErrorKind.UNDEFINED_TABLE, StoreErrorKind.UNDEFINED_FUNCTION,
                StoreErrorKind.UNDEFINED_COLUMN):
        return DependencyMissingError(err.message, cause=err)
    if kind is StoreErrorKind.NOT_FOUND:
        return NotFoundError(f"Could not {action}: {err.message}", cause=err)
    if kind is StoreErrorKind.UNIQUE_VIOLATION:
        return ConflictError(f"Could not {action}: a record with the same {err.column or 'key'} already exists",
                             cause=err)
    if kind in (StoreErrorKind.FOREIGN_KEY_VIOLATION, StoreErrorKind.CHECK_VIOLATION,
                StoreErrorKind.NOT_NULL_VIOLATION, StoreErrorKind.REJECTED):
        return ConflictError(f"Could not {action}: {err.message}", cause=err)
    return DomainError(f"Could not {action}: {err.message}", cause=err)


def as_domain_error(exc: BaseException, action: str) -> DomainError:
    """Domain errors pass through; store errors are classified; anything else is wrapped."""
    if isinstance(exc, DomainError):
        return exc
    if isinstance(exc, StoreError):
        return classify_store_error(exc, action)
    return DomainError(f"Could not {action}: {exc}", cause=exc)
