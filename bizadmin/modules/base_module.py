import logging
from typing import Callable, Optional, TypeVar

from PySide6.QtCore import QObject

from ..database.datastore import DataStore, TenantContext
from ..utils.loggers import log_failure
from .documents.errors import DomainError
from .signals import AppSignals, ERROR, SUCCESS, WARNING

_log = logging.getLogger(__name__)

R = TypeVar("R")


class BaseModule(QObject):
    TITLE = ""

    def __init__(self, store: DataStore, tenant: TenantContext,
                 signals: Optional[AppSignals] = None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.store = store
        self.tenant = tenant
        self.signals = signals if signals is not None else AppSignals(self)

    def get_title(self) -> str:
        return self.TITLE

    def _run(self, what: str, op: Callable[[], R], describe: Callable[[R], str]) -> Optional[R]:
        """
        Run one user operation and emit exactly one notification for it.
        Returns the operation's result, or None when it failed.
        """
        try:
            result = op()
        except DomainError as e:
            log_failure(_log, what, e, level=logging.WARNING)
            self.signals.notify.emit(ERROR, e.message)
            return None
        except Exception as e:
            log_failure(_log, what, e)
            self.signals.notify.emit(ERROR, f"Could not {what}: {e}")
            return None

        message = describe(result)
        warnings = getattr(result, "warnings", None) or []
        if warnings:
            details = "; ".join(w.message for w in warnings)
            self.signals.notify.emit(WARNING, f"{message}, but some follow-up steps failed: {details}")
        else:
            self.signals.notify.emit(SUCCESS, message)
        return result
