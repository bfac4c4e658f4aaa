# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

cancellable.py — Cancellable / Finishable Resources
----------------------------------------------------
Promise-like handles that can be cancelled or "finished" earlier than
they would normally terminate.  A drag from point A to point B resolves
when the user releases the mouse, but ESC cancels it and ENTER finishes
it on the spot.

Every such resource is registered on a :class:`CancellableRegistor`
(usually the command that owns it) so that one ESC or ENTER reaches all
the gizmos, engines and disposables of an interactive operation at once.

Architecture:
    Cancellable / Finishable     — structural protocols (two methods)
    ResourceRegistration         — optional base with resource(reg) helper
    ├── CancellableDisposable    — wraps a dispose callable
    └── CancellablePromise[T]    — awaitable driven by an executor
    CancellableRegistor          — ordered list of registered resources

Usage::

    def executor(resolve, reject):
        gizmo.on_release(lambda: resolve(gizmo.value))
        def cancel():
            gizmo.restore()
            reject(Cancel())
        def finish():
            resolve(gizmo.value)
        return cancel, finish

    drag = CancellablePromise(executor).resource(command)
    value = await drag          # ESC → raises Cancel, ENTER → value
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import (
    Any, Callable, Generic, List, Optional, Protocol, Tuple, TypeVar,
    runtime_checkable,
)

from recompute.logger import get_logger
log = get_logger("Cancellable")

T = TypeVar("T")
R = TypeVar("R", bound="ResourceRegistration")


# ═══════════════════════════════════════════════════════════════════════════════
# STATE & PROTOCOLS
# ═══════════════════════════════════════════════════════════════════════════════

class ResourceState(Enum):
    """Lifecycle of a cancellable resource.  Both terminal states are final."""
    PENDING   = auto()
    CANCELLED = auto()
    FINISHED  = auto()


@runtime_checkable
class Cancellable(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class Finishable(Protocol):
    def finish(self) -> None: ...


@runtime_checkable
class CancellableResource(Cancellable, Finishable, Protocol):
    """Anything a :class:`CancellableRegistor` accepts."""


class Cancel(Exception):
    """Rejection reason for an operation cancelled from outside (ESC)."""


class Finish(Exception):
    """Rejection reason for an operation finished early with no value (ENTER)."""


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRATION BASE
# ═══════════════════════════════════════════════════════════════════════════════

class ResourceRegistration(ABC):
    """
    Base for resources that want the ``resource(reg)`` shorthand.

    Registration is structural: a registrar accepts any object with
    ``cancel()`` and ``finish()``.  Subclassing only adds the helper.
    """

    @abstractmethod
    def cancel(self) -> None: ...

    @abstractmethod
    def finish(self) -> None: ...

    def resource(self: R, registor: "CancellableRegistor") -> R:
        """Register on *registor* and return ``self``."""
        registor.register(self)
        return self


class CancellableDisposable(ResourceRegistration):
    """
    Adapts a dispose callable (signal disconnect, helper removal, ...)
    to the cancel/finish protocol.  Cancelling and finishing both
    dispose, exactly once.
    """

    def __init__(self, dispose: Callable[[], Any]) -> None:
        self._dispose = dispose
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def cancel(self) -> None:
        self._dispose_once()

    def finish(self) -> None:
        self._dispose_once()

    def _dispose_once(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._dispose()


# ═══════════════════════════════════════════════════════════════════════════════
# CANCELLABLE PROMISE
# ═══════════════════════════════════════════════════════════════════════════════

Resolve = Callable[[Any], None]
Reject = Callable[[BaseException], None]
Executor = Callable[[Resolve, Reject], Tuple[Callable[[], None], Callable[[], None]]]


def _noop() -> None:
    pass


class CancellablePromise(ResourceRegistration, Generic[T]):
    """
    Awaitable wrapping an asynchronous computation whose executor also
    supplies the cancel / finish side effects.

    The executor runs synchronously inside the constructor, receives
    ``resolve`` and ``reject`` and returns ``(cancel_cb, finish_cb)``.
    Which outcome the promise eventually settles with is decided by
    the executor; :meth:`cancel` and :meth:`finish` only drive it.

    ``state`` and the settled result are independent: cancelling does
    not settle the promise by itself, it runs the executor's cancel
    callback synchronously (which usually restores prior state and
    rejects with :class:`Cancel`).

    Must be created while an event loop is running, or with an
    explicit *loop*.
    """

    def __init__(
        self,
        executor: Executor,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()
        self._state = ResourceState.PENDING

        on_cancel, on_finish = executor(self._resolve, self._reject)
        self._on_cancel: Callable[[], None] = on_cancel
        self._on_finish: Callable[[], None] = on_finish

    @classmethod
    def resolved(
        cls,
        value: Any = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> "CancellablePromise[Any]":
        """An already-resolved promise whose cancel / finish do nothing."""
        def executor(resolve: Resolve, reject: Reject):
            resolve(value)
            return _noop, _noop
        return cls(executor, loop=loop)

    # ── Settlement (handed to the executor) ──────────────────────
    def _resolve(self, value: Any = None) -> None:
        if not self._future.done():
            self._future.set_result(value)

    def _reject(self, reason: BaseException) -> None:
        if not self._future.done():
            self._future.set_exception(reason)

    # ── Public API ────────────────────────────────────────────────
    @property
    def state(self) -> ResourceState:
        return self._state

    @property
    def future(self) -> asyncio.Future:
        return self._future

    def done(self) -> bool:
        """Whether the wrapped computation has settled."""
        return self._future.done()

    def result(self) -> T:
        """Settled value; raises like :meth:`asyncio.Future.result`."""
        return self._future.result()

    def add_done_callback(self, fn: Callable[[asyncio.Future], Any]) -> None:
        self._future.add_done_callback(fn)

    def cancel(self) -> None:
        """
        Run the executor's cancel callback once.  Never raises; a
        failing callback is logged and the promise is still CANCELLED.
        """
        if self._state is not ResourceState.PENDING:
            return
        self._state = ResourceState.CANCELLED
        try:
            self._on_cancel()
        except Exception as exc:
            log.warning("cancel callback of %r failed: %s", self, exc)

    def finish(self) -> None:
        """Run the executor's finish callback once."""
        if self._state is not ResourceState.PENDING:
            return
        self._state = ResourceState.FINISHED
        self._on_finish()

    def __await__(self):
        return self._future.__await__()

    def __repr__(self) -> str:
        settled = "settled" if self._future.done() else "unsettled"
        return f"<CancellablePromise {self._state.name} {settled}>"


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRAR
# ═══════════════════════════════════════════════════════════════════════════════

class CancellableRegistor:
    """
    An ordered collection of cancellable resources.

    Commands derive from this: their engines, gizmos and disposables are
    registered as they are created, and one :meth:`cancel` (ESC) or
    :meth:`finish` (ENTER) reaches all of them in registration order.

    A failing resource never blocks the ones registered after it.  Both
    operations are idempotent at the registrar level.  A resource
    registered after the registrar reached a terminal state is
    cancelled or finished immediately.
    """

    def __init__(self) -> None:
        self._resources: List[CancellableResource] = []
        self._registor_state = ResourceState.PENDING

    @property
    def resources(self) -> Tuple[CancellableResource, ...]:
        return tuple(self._resources)

    @property
    def registor_state(self) -> ResourceState:
        return self._registor_state

    def register(self, resource: Any) -> Any:
        """
        Append *resource* and return it, so call sites can register and
        keep a handle in one expression.  Registering twice is a no-op.

        Raises:
            TypeError: *resource* lacks ``cancel()`` or ``finish()``.
        """
        if not isinstance(resource, CancellableResource):
            raise TypeError(
                f"{type(resource).__name__} must provide cancel() and finish()"
            )
        if any(r is resource for r in self._resources):
            return resource
        self._resources.append(resource)

        if self._registor_state is ResourceState.CANCELLED:
            self._cancel_one(resource)
        elif self._registor_state is ResourceState.FINISHED:
            resource.finish()
        return resource

    def cancel(self) -> None:
        """Cancel every resource in registration order.  Never raises."""
        if self._registor_state is not ResourceState.PENDING:
            return
        self._registor_state = ResourceState.CANCELLED
        for resource in list(self._resources):
            self._cancel_one(resource)

    def finish(self) -> None:
        """
        Finish every resource in registration order.

        Every resource is finished even when an earlier one raises; the
        first error is re-raised once the pass is complete.
        """
        if self._registor_state is not ResourceState.PENDING:
            return
        self._registor_state = ResourceState.FINISHED
        first_error: Optional[Exception] = None
        for resource in list(self._resources):
            try:
                resource.finish()
            except Exception as exc:
                log.warning("finish() failed for %r: %s", resource, exc)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    @staticmethod
    def _cancel_one(resource: CancellableResource) -> None:
        try:
            resource.cancel()
        except Exception as exc:
            log.warning("cancel() failed for %r: %s", resource, exc)
