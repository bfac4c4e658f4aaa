# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

threaded.py — Backend calls on QThreadPool
-------------------------------------------
Lets an engine's ``do_update()`` / ``do_commit()`` await a blocking
backend function that runs on a Qt thread pool.

Key Concepts:
    1. Only ``compute_fn`` runs off-thread.  Inputs are snapshotted on
       the calling (event-loop) thread BEFORE dispatch, so the worker
       never reads live engine parameters.
    2. Results come back through ``loop.call_soon_threadsafe``; the
       engine only ever sees them on the event-loop thread, one at a
       time, where its own lock serializes them with reverts.
    3. Cooperative cancellation via :class:`CancellationToken` — a long
       ``compute_fn`` may accept a ``token`` keyword and poll it.  A
       cancelled run settles its future with ``CancelledError``.

Usage::

    class BooleanEngine(RecomputeEngine):
        tracked_keys = ("operation",)

        def __init__(self, kernel, **kw):
            super().__init__(**kw)
            self.operation = "union"
            self._preview = ThreadedBackend(kernel.preview_boolean)

        async def do_update(self):
            return await self._preview.submit({"operation": self.operation})

        def do_cancel(self):
            self._preview.cancel()
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import threading
from typing import Any, Callable, Dict, Optional

from PySide6.QtCore import QRunnable, QThreadPool

from recompute.settings import get_setting

from recompute.logger import get_logger
log = get_logger("ThreadedBackend")


# ═══════════════════════════════════════════════════════════════════════════════
# CANCELLATION TOKEN
# ═══════════════════════════════════════════════════════════════════════════════

class CancellationToken:
    """
    Thread-safe cooperative cancellation flag.

    Each submission gets a fresh token; cancelling the backend cancels
    the token of the live submission only.
    """

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Signal cancellation.  Thread-safe."""
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        """Clear the flag for reuse (prefer creating a new token instead)."""
        self._event.clear()

    def __bool__(self) -> bool:
        """``if token:`` → True means *cancelled*."""
        return self._event.is_set()


# ═══════════════════════════════════════════════════════════════════════════════
# COMPUTE WORKER  (QRunnable, executes on QThreadPool)
# ═══════════════════════════════════════════════════════════════════════════════

def _settle(future: asyncio.Future, result: Any = None,
            error: Optional[BaseException] = None, cancelled: bool = False) -> None:
    # Runs on the loop thread; the awaiting task may have been cancelled meanwhile
    if future.done():
        return
    if cancelled:
        future.cancel()
    elif error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class ComputeWorker(QRunnable):
    """
    Runs ``compute_fn(inputs)`` on a pool thread and settles an asyncio
    future on the loop that created it.

    The token is checked before starting and after ``compute_fn``
    returns; a cancelled run never delivers a result.
    """

    def __init__(
        self,
        compute_fn: Callable[..., Any],
        inputs: Dict[str, Any],
        cancel_token: CancellationToken,
        future: asyncio.Future,
        loop: asyncio.AbstractEventLoop,
        pass_token: bool = False,
    ) -> None:
        super().__init__()
        self.setAutoDelete(True)

        self._compute_fn   = compute_fn
        self._inputs       = inputs
        self._cancel_token = cancel_token
        self._future       = future
        self._loop         = loop
        self._pass_token   = pass_token

    def run(self) -> None:  # noqa: D102
        if self._cancel_token.is_cancelled():
            self._deliver(cancelled=True)
            return

        try:
            if self._pass_token:
                result = self._compute_fn(self._inputs, token=self._cancel_token)
            else:
                result = self._compute_fn(self._inputs)
        except Exception as exc:
            if self._cancel_token.is_cancelled():
                self._deliver(cancelled=True)
            else:
                self._deliver(error=exc)
            return

        if self._cancel_token.is_cancelled():
            self._deliver(cancelled=True)
        else:
            self._deliver(result=result)

    def _deliver(self, result: Any = None, error: Optional[BaseException] = None,
                 cancelled: bool = False) -> None:
        try:
            self._loop.call_soon_threadsafe(_settle, self._future, result, error, cancelled)
        except RuntimeError:
            # Loop already closed; nobody is waiting any more
            log.debug("Dropped worker result: event loop is closed")


# ═══════════════════════════════════════════════════════════════════════════════
# THREADED BACKEND
# ═══════════════════════════════════════════════════════════════════════════════

def _accepts_token(fn: Callable[..., Any]) -> bool:
    try:
        return "token" in inspect.signature(fn).parameters
    except (TypeError, ValueError):
        return False


class ThreadedBackend:
    """
    Awaitable facade over a blocking backend function.

    ``submit()`` deep-copies the inputs, dispatches a
    :class:`ComputeWorker` and returns a future settled on the calling
    loop.  Submitting again cancels the token of the previous run; the
    engine's coalescing normally guarantees there is none.
    """

    def __init__(
        self,
        compute_fn: Callable[..., Any],
        pool: Optional[QThreadPool] = None,
    ) -> None:
        self._compute_fn = compute_fn
        self._pass_token = _accepts_token(compute_fn)
        self._cancel_token = CancellationToken()
        self._submitted = 0

        if pool is None:
            pool = QThreadPool()
            max_threads = get_setting("max_worker_threads", 0)
            if max_threads > 0:
                pool.setMaxThreadCount(max_threads)
        self._thread_pool = pool

    @property
    def submitted(self) -> int:
        return self._submitted

    @property
    def thread_pool(self) -> QThreadPool:
        return self._thread_pool

    def is_cancelled(self) -> bool:
        return self._cancel_token.is_cancelled()

    def submit(self, inputs: Dict[str, Any]) -> asyncio.Future:
        """
        Run ``compute_fn`` on the pool with a snapshot of *inputs*.

        Must be called from the thread running the event loop.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        self._cancel_token.cancel()
        self._cancel_token = CancellationToken()

        worker = ComputeWorker(
            compute_fn=self._compute_fn,
            inputs=copy.deepcopy(inputs),
            cancel_token=self._cancel_token,
            future=future,
            loop=loop,
            pass_token=self._pass_token,
        )
        self._submitted += 1
        self._thread_pool.start(worker)
        return future

    def cancel(self) -> None:
        """Request cooperative cancellation of the live run."""
        self._cancel_token.cancel()

    def wait_for_done(self, msecs: Optional[int] = None) -> bool:
        if msecs is None:
            msecs = get_setting("wait_for_done_ms", 100)
        return self._thread_pool.waitForDone(msecs)

    def shutdown(self) -> None:
        """Cancel the live run and give the pool a moment to drain."""
        self.cancel()
        self.wait_for_done()
