"""
Ordered (action, compensation) steps run against a store without
multi-statement transactions.

    saga = Saga("create invoice")
    saga.step("header", insert_header, compensate=delete_header)
    saga.step("items", insert_items)
    saga.step("stock", post_stock, best_effort=True)
    ctx = saga.run()

If a regular step raises, every completed step's compensation runs in
reverse order and the original exception propagates. A best-effort step's
failure is recorded as a SideEffectWarning on the context and the saga
carries on; it never triggers compensation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ...utils.loggers import log_failure
from .errors import SideEffectWarning

_log = logging.getLogger(__name__)


class SagaContext(dict):
    """Step results by step name, plus warnings collected along the way."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.warnings: list[SideEffectWarning] = []
        self.completed: list[str] = []

    def warn(self, step: str, message: str, cause: BaseException | None = None) -> SideEffectWarning:
        w = SideEffectWarning(step, message, cause=cause)
        self.warnings.append(w)
        if cause is not None:
            log_failure(_log, f"{step} ({message})", cause, level=logging.WARNING)
        else:
            _log.warning("%s: %s", step, message)
        return w


@dataclass
class SagaStep:
    name: str
    action: Callable[[SagaContext], Any]
    compensate: Optional[Callable[[SagaContext], None]] = None
    best_effort: bool = False
    warning: str | None = None


class Saga:
    def __init__(self, name: str):
        self.name = name
        self.steps: list[SagaStep] = []

    def step(
        self,
        name: str,
        action: Callable[[SagaContext], Any],
        compensate: Optional[Callable[[SagaContext], None]] = None,
        *,
        best_effort: bool = False,
        warning: str | None = None,
    ) -> "Saga":
        self.steps.append(SagaStep(name, action, compensate, best_effort, warning))
        return self

    def run(self, ctx: SagaContext | None = None) -> SagaContext:
        ctx = ctx if ctx is not None else SagaContext()
        done: list[SagaStep] = []
        for step in self.steps:
            try:
                ctx[step.name] = step.action(ctx)
            except Exception as exc:
                if step.best_effort:
                    ctx.warn(step.name, step.warning or f"{step.name} could not be completed", exc)
                    continue
                log_failure(_log, f"{self.name}: step '{step.name}'", exc)
                self._compensate(done, ctx)
                raise
            done.append(step)
            ctx.completed.append(step.name)
            _log.debug("%s: step '%s' done", self.name, step.name)
        return ctx

    def _compensate(self, done: list[SagaStep], ctx: SagaContext) -> None:
        for step in reversed(done):
            if step.compensate is None:
                continue
            try:
                step.compensate(ctx)
                _log.info("%s: compensated step '%s'", self.name, step.name)
            except Exception as exc:
                # keep unwinding; the original failure is what the caller sees
                ctx.warn(step.name, f"could not undo '{step.name}'", exc)
