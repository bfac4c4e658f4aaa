# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

engine.py — The update / commit / cancel protocol
--------------------------------------------------
Turns a burst of parameter edits (a gizmo drag, a typed number) into a
serialized, coalesced stream of backend recomputations, with rollback
on failure and cooperative cancellation.

Key Concepts:
    1. At most one backend call per engine is ever in flight.
    2. ``update()`` while busy does not queue: any number of requests
       collapse into ONE trailing call that reads the parameters as they
       are when the in-flight call completes.
    3. A failed interactive call is never surfaced.  Tracked parameters
       are restored to the last known-good snapshot and one silent
       resync call re-applies them.  If that call fails too the engine
       gives up with :class:`ResynchronizationError`.
    4. ``cancel()`` is synchronous: the pre-interaction baseline is
       restored immediately, outstanding ``update()`` awaitables resolve,
       and any late backend response is discarded by generation tag.

Scheduling state machine::

    IDLE ──update()──▶ RUNNING ──update()──▶ RUNNING_WITH_PENDING
     ▲                   │  ▲                        │
     │      success,     │  └──trailing dispatch─────┘ (success)
     └──── no pending ───┘
                         │ failure (from either running phase)
                         ▼
                     REVERTING ──resync ok──▶ IDLE / RUNNING (if pending)

Usage::

    class FilletEngine(RecomputeEngine):
        tracked_keys = ("radius",)

        def __init__(self, backend, edges, **kw):
            super().__init__(**kw)
            self.backend = backend
            self.edges = edges
            self.radius = 0.0

        async def do_update(self):
            return await self.backend.preview(self.edges, self.radius)

        async def do_commit(self):
            return await self.backend.fillet(self.edges, self.radius)

        def do_cancel(self):
            self.backend.clear_preview()

    engine = command.add_engine(FilletEngine(backend, edges))
    engine.radius = 2.5
    engine.update()            # fire and forget while dragging
    ...
    results = await engine.commit()
"""

from __future__ import annotations

import asyncio
import copy
import threading
from enum import Enum, auto
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple

from PySide6.QtCore import QObject, Signal

from recompute.cancellable import ResourceState
from recompute.errors import InvalidStateError, ResynchronizationError
from recompute.settings import get_setting

from recompute.logger import get_logger
log = get_logger("Engine")


class EnginePhase(Enum):
    """Scheduling phase of a :class:`RecomputeEngine`."""
    IDLE                 = auto()
    RUNNING              = auto()
    RUNNING_WITH_PENDING = auto()
    REVERTING            = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# STAGED RESULT
# ═══════════════════════════════════════════════════════════════════════════════

class StagedResult:
    """
    A committed backend result whose visual swap is deferred.

    ``show()`` puts the result on screen, ``cancel()`` throws it away.
    Exactly one of them takes effect, which lets a command show the
    results of all its engines only once every engine committed.
    ``finish()`` is ``show()`` so staged results can be registered on a
    :class:`~recompute.cancellable.CancellableRegistor`.
    """

    __slots__ = ("underlying", "_show", "_cancel", "_state")

    def __init__(
        self,
        underlying: Any,
        show: Optional[Callable[[], None]] = None,
        cancel: Optional[Callable[[], None]] = None,
    ) -> None:
        self.underlying = underlying
        self._show = show
        self._cancel = cancel
        self._state = ResourceState.PENDING

    @property
    def state(self) -> ResourceState:
        return self._state

    def show(self) -> None:
        if self._state is not ResourceState.PENDING:
            return
        self._state = ResourceState.FINISHED
        if self._show is not None:
            self._show()

    def cancel(self) -> None:
        if self._state is not ResourceState.PENDING:
            return
        self._state = ResourceState.CANCELLED
        if self._cancel is not None:
            self._cancel()

    finish = show

    def __repr__(self) -> str:
        return f"<StagedResult {self._state.name} {self.underlying!r}>"


# ═══════════════════════════════════════════════════════════════════════════════
# RECOMPUTE ENGINE
# ═══════════════════════════════════════════════════════════════════════════════

class RecomputeEngine(QObject):
    """
    Base class for one parametric operation driven by a command.

    Subclasses declare :attr:`tracked_keys` (attribute names that are
    snapshotted and rolled back) and implement :meth:`do_update`,
    :meth:`do_commit` and :meth:`do_cancel`.  The owning command mutates
    the parameter attributes directly and calls :meth:`update` after
    every edit.

    ``update()`` and ``commit()`` must be called from the thread running
    the asyncio loop.  Backend work may run elsewhere (see
    :class:`~recompute.threaded.ThreadedBackend`); scheduling state is
    guarded by an engine-scoped lock regardless.

    Signals:
        update_started(int)  — backend call number about to be awaited
        update_finished()    — an interactive call succeeded
        update_failed(str)   — an interactive or resync call failed
        reverted(dict)       — tracked values restored after a failure
        committed(int)       — commit produced N staged results
        cancelled()          — baseline restored, engine closed
    """

    update_started  = Signal(int)
    update_finished = Signal()
    update_failed   = Signal(str)
    reverted        = Signal(object)
    committed       = Signal(int)
    cancelled       = Signal()

    tracked_keys: ClassVar[Tuple[str, ...]] = ()

    def __init__(self, scene: Any = None, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.scene = scene

        self._lock = threading.RLock()
        self._phase: EnginePhase = EnginePhase.IDLE
        self._pending: bool = False
        self._last_good: Optional[Dict[str, Any]] = None
        self._call_count: int = 0
        self._generation: int = 0
        self._waiters: List[asyncio.Future] = []
        self._task: Optional[asyncio.Task] = None
        self._committing: bool = False
        self._fatal: Optional[ResynchronizationError] = None
        self._state: ResourceState = ResourceState.PENDING

    # ──────────────────────────────────────────────────────────────
    # BACKEND HOOKS  (override in subclass)
    # ──────────────────────────────────────────────────────────────

    async def do_update(self) -> Any:
        """One interactive-quality recomputation from current parameters."""
        raise NotImplementedError

    async def do_commit(self) -> Any:
        """
        One authoritative recomputation.

        Returns a result or a list of results.  Plain objects are wrapped
        into :class:`StagedResult` with no-op show / cancel.
        """
        raise NotImplementedError

    def do_cancel(self) -> None:
        """Synchronously restore the pre-interaction baseline."""
        raise NotImplementedError

    def validate(self) -> None:
        """Raise :class:`~recompute.errors.NoOpError` if there is nothing to commit."""

    # ──────────────────────────────────────────────────────────────
    # INTROSPECTION
    # ──────────────────────────────────────────────────────────────

    @property
    def phase(self) -> EnginePhase:
        if self._phase is EnginePhase.RUNNING and self._pending:
            return EnginePhase.RUNNING_WITH_PENDING
        return self._phase

    @property
    def call_count(self) -> int:
        return self._call_count

    @property
    def state(self) -> ResourceState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._phase is not EnginePhase.IDLE

    @property
    def parameters(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in self.tracked_keys}

    @property
    def fatal_error(self) -> Optional[ResynchronizationError]:
        """The failed resync that left this engine unusable, if any."""
        return self._fatal

    @property
    def last_good(self) -> Optional[Dict[str, Any]]:
        if self._last_good is None:
            return None
        return dict(self._last_good)

    # ──────────────────────────────────────────────────────────────
    # UPDATE
    # ──────────────────────────────────────────────────────────────

    def update(self) -> asyncio.Future:
        """
        Request a recomputation from the current parameters.

        Not a coroutine: the phase transition (and, when idle, the
        dispatch) happens at call time.  The returned future resolves
        once the engine is idle again, i.e. after the call dispatched
        now or the one trailing call this request was coalesced into.
        It never carries an ordinary backend failure; it only fails
        with :class:`ResynchronizationError`.

        Raises:
            InvalidStateError: the engine was cancelled, finished or is
                committing, a tracked key is not defined, or an earlier
                resync failed (chained from :attr:`fatal_error`).
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            self._ensure_active("update")
            if self._committing:
                raise InvalidStateError("update() called while commit() is in progress")

            waiter = loop.create_future()
            self._waiters.append(waiter)

            if self._phase is EnginePhase.IDLE:
                missing = [k for k in self.tracked_keys if not hasattr(self, k)]
                if missing:
                    self._waiters.remove(waiter)
                    raise InvalidStateError(
                        f"{type(self).__name__} does not define tracked keys {missing}"
                    )
                self._phase = EnginePhase.RUNNING
                self._pending = False
                self._count_call()
                # Eager start: do_update() reads the parameters before update() returns
                task = asyncio.Task(self._drive(self._generation), loop=loop, eager_start=True)
                if not task.done():
                    self._task = task
            elif not self._pending:
                log.debug("%s: busy, coalescing into trailing call", type(self).__name__)
                self._pending = True

        return waiter

    async def settle(self) -> None:
        """Wait until no ``update()`` is outstanding."""
        while self._waiters:
            await asyncio.gather(*list(self._waiters))

    async def _drive(self, generation: int) -> None:
        """Run one busy streak: first call, trailing calls, reverts."""
        failure: Optional[BaseException] = None
        interrupted = False
        try:
            while True:
                try:
                    dispatched = await self._call_backend()
                except Exception as exc:
                    if self._is_stale(generation):
                        return
                    await self._revert_and_resync(generation, exc)
                    if self._is_stale(generation):
                        return
                else:
                    if self._is_stale(generation):
                        return
                    with self._lock:
                        self._last_good = dispatched
                    self.update_finished.emit()

                with self._lock:
                    if not self._pending:
                        break
                    self._pending = False
                    self._phase = EnginePhase.RUNNING
                    self._count_call()
        except asyncio.CancelledError:
            interrupted = True
            raise
        except Exception as exc:
            failure = exc
        finally:
            self._end_streak(generation, failure, interrupted)

    def _end_streak(
        self,
        generation: int,
        failure: Optional[BaseException],
        interrupted: bool,
    ) -> None:
        with self._lock:
            if self._is_stale(generation):
                return
            self._phase = EnginePhase.IDLE
            self._pending = False
            self._task = None
            waiters, self._waiters = self._waiters, []

        for waiter in waiters:
            if waiter.done():
                continue
            if interrupted:
                waiter.cancel()
            elif failure is not None:
                waiter.set_exception(failure)
                # Also kept as fatal_error; unawaited futures must not log
                waiter.exception()
            else:
                waiter.set_result(None)

    async def _call_backend(self) -> Dict[str, Any]:
        """Await one ``do_update()``; return the parameters it was dispatched with."""
        dispatched = self._snapshot()
        self.update_started.emit(self._call_count)
        if self.scene is not None and get_setting("batch_visual_updates", True):
            with self.scene.batch():
                await self.do_update()
        else:
            await self.do_update()
        return dispatched

    async def _revert_and_resync(self, generation: int, error: Exception) -> None:
        name = type(self).__name__
        if get_setting("log_update_failures", True):
            log.info("%s: backend call #%d failed: %s", name, self._call_count, error)
        self.update_failed.emit(str(error))

        with self._lock:
            self._phase = EnginePhase.REVERTING
            # Pending edits are overwritten by the revert; the resync covers them
            self._pending = False
            restored = self._restore_last_good()
            self._count_call()

        if restored:
            log.debug("%s: reverted %s", name, restored)
            self.reverted.emit(restored)

        try:
            dispatched = await self._call_backend()
        except Exception as exc:
            if self._is_stale(generation):
                return
            log.error("%s: resync after revert failed: %s", name, exc)
            self.update_failed.emit(str(exc))
            fatal = ResynchronizationError(
                f"{name}: could not resynchronize to the last good parameters",
                original_error=error,
            )
            with self._lock:
                self._fatal = fatal
            raise fatal from exc

        if self._is_stale(generation):
            return
        with self._lock:
            self._last_good = dispatched
            self._phase = EnginePhase.RUNNING

    # ──────────────────────────────────────────────────────────────
    # COMMIT
    # ──────────────────────────────────────────────────────────────

    async def commit(self) -> List[StagedResult]:
        """
        Run the authoritative backend computation.

        Call only when no ``update()`` is outstanding (await
        :meth:`settle` first).  Backend errors propagate and leave the
        engine active with its interactive state intact, so the user can
        adjust and retry.  Success does not close the engine either: the
        owning command finishes it once every sibling engine committed.

        Raises:
            InvalidStateError: an update is outstanding, a commit is
                already running, the engine is closed, or an earlier resync
                failed.
            NoOpError: :meth:`validate` found nothing to do.
        """
        with self._lock:
            self._ensure_active("commit")
            if self._phase is not EnginePhase.IDLE:
                raise InvalidStateError("commit() called while an update() is outstanding")
            if self._committing:
                raise InvalidStateError("commit() is already in progress")
            self.validate()
            self._committing = True
            generation = self._generation

        try:
            raw = await self.do_commit()
        finally:
            self._committing = False

        staged = self._stage(raw)
        if self._is_stale(generation):
            for result in staged:
                result.cancel()
            raise InvalidStateError(f"{type(self).__name__} was closed during commit()")

        self.committed.emit(len(staged))
        return staged

    @staticmethod
    def _stage(raw: Any) -> List[StagedResult]:
        if raw is None:
            return []
        items = raw if isinstance(raw, (list, tuple)) else [raw]
        return [r if isinstance(r, StagedResult) else StagedResult(r) for r in items]

    # ──────────────────────────────────────────────────────────────
    # CANCEL / FINISH
    # ──────────────────────────────────────────────────────────────

    def cancel(self) -> None:
        """
        Restore the pre-interaction baseline.  Synchronous, idempotent,
        never raises; safe before any ``update()`` and while a backend
        call is in flight (its response is discarded).
        """
        if not self._close(ResourceState.CANCELLED):
            return
        try:
            self.do_cancel()
        except Exception as exc:
            log.warning("%s: do_cancel() failed: %s", type(self).__name__, exc)
        self.cancelled.emit()

    def finish(self) -> None:
        """End the interactive session, keeping the current visual state."""
        self._close(ResourceState.FINISHED)

    def _close(self, state: ResourceState) -> bool:
        with self._lock:
            if self._state is not ResourceState.PENDING:
                return False
            self._state = state
            self._generation += 1
            self._phase = EnginePhase.IDLE
            self._pending = False
            task, self._task = self._task, None
            waiters, self._waiters = self._waiters, []

        # The backend computation itself may keep running; only its
        # continuation is dropped
        if task is not None and not task.done():
            task.cancel()
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        return True

    # ──────────────────────────────────────────────────────────────
    # INTERNAL HELPERS
    # ──────────────────────────────────────────────────────────────

    def _ensure_active(self, operation: str) -> None:
        if self._state is not ResourceState.PENDING:
            raise InvalidStateError(
                f"{operation}() called after the engine was {self._state.name.lower()}"
            )
        if self._fatal is not None:
            raise InvalidStateError(
                f"{operation}() called after resynchronization failed"
            ) from self._fatal

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    def _count_call(self) -> None:
        self._call_count += 1

    def _snapshot(self) -> Dict[str, Any]:
        return {key: copy.deepcopy(getattr(self, key)) for key in self.tracked_keys}

    def _restore_last_good(self) -> Dict[str, Any]:
        if self._last_good is None:
            return {}
        for key, value in self._last_good.items():
            setattr(self, key, copy.deepcopy(value))
        return dict(self._last_good)

    def __repr__(self) -> str:
        return (f"<{type(self).__name__} {self._state.name} {self.phase.name} "
                f"calls={self._call_count}>")
