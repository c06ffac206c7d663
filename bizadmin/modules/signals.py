from PySide6.QtCore import QObject, Signal

SUCCESS = "success"
WARNING = "warning"
ERROR = "error"


class AppSignals(QObject):
    """
    App-wide notification bus.

    notify(level, message): one terminal notification per user operation
    invalidated(keys): cached views named by `keys` must be reloaded
    """

    notify = Signal(str, str)
    invalidated = Signal(list)

    def invalidate(self, keys) -> None:
        self.invalidated.emit(list(keys))
