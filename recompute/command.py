# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Interactive command base.

Handles:
- Registration of engines, gizmo drags and other disposables
- Waiting for outstanding updates before confirming
- All-or-nothing commit across sibling engines
- Abort (ESC) through the registrar
"""

from __future__ import annotations

from typing import List, Tuple

from recompute.cancellable import CancellableRegistor, ResourceState
from recompute.engine import RecomputeEngine, StagedResult
from recompute.errors import InvalidStateError, NoOpError

from recompute.logger import get_logger
log = get_logger("Command")


class InteractiveCommand(CancellableRegistor):
    """
    One user-facing interactive operation.

    Engines are registered like any other resource, so ESC reaches them
    through :meth:`abort` together with gizmos and helpers.  ENTER goes
    through :meth:`confirm`, which commits every engine and only swaps
    the results in once all of them succeeded.
    """

    def __init__(self) -> None:
        super().__init__()
        self._engines: List[RecomputeEngine] = []

    @property
    def engines(self) -> Tuple[RecomputeEngine, ...]:
        return tuple(self._engines)

    def add_engine(self, engine: RecomputeEngine) -> RecomputeEngine:
        """Register *engine* and return it."""
        self.register(engine)
        if engine not in self._engines:
            self._engines.append(engine)
        return engine

    async def settle(self) -> None:
        """
        Wait until no engine has an ``update()`` outstanding.

        Raises:
            ResynchronizationError: an engine failed to resynchronize,
                whether or not its ``update()`` futures were awaited.
        """
        for engine in self._engines:
            if engine.state is not ResourceState.PENDING:
                continue
            await engine.settle()
            if engine.fatal_error is not None:
                raise engine.fatal_error

    async def confirm(self) -> List[StagedResult]:
        """
        Commit every engine, then show all results and finish.

        Engines whose parameters are a no-op are skipped.  If any commit
        fails, the results staged so far are cancelled and the error is
        re-raised; engines stay active so the user can adjust and retry.

        Raises:
            ResynchronizationError: an engine lost sync; nothing is
                committed and the command can only be aborted.
            InvalidStateError: the command was already cancelled or finished.
        """
        if self.registor_state is not ResourceState.PENDING:
            raise InvalidStateError(
                f"confirm() called after the command was {self.registor_state.name.lower()}"
            )

        await self.settle()

        staged: List[StagedResult] = []
        try:
            for engine in self._engines:
                try:
                    staged.extend(await engine.commit())
                except NoOpError:
                    log.debug("%s: nothing to commit", type(engine).__name__)
        except Exception as exc:
            log.info("Commit failed, discarding %d staged result(s): %s", len(staged), exc)
            for result in staged:
                result.cancel()
            raise

        for result in staged:
            result.show()
        self.finish()
        return staged

    def abort(self) -> None:
        """Cancel every registered resource.  Never raises."""
        self.cancel()
