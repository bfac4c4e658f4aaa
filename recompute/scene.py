# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

scene.py — Scene / Visual Collaborator
---------------------------------------
Engines never render.  They need three things from the scene layer:

    lookup(handle)   — the backend model behind a visual handle
    batch()          — a scope that defers redraw until its mutations end
    invalidate()     — request a redraw

``SceneLike`` is the structural interface; ``VisualScene`` is a small
Qt implementation used by the bundled engines and by tests.  Editors
with their own scene graph only need to satisfy ``SceneLike``.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterator, Protocol, runtime_checkable

import numpy as np
from PySide6.QtCore import QObject, Signal

from recompute.logger import get_logger
log = get_logger("Scene")


@runtime_checkable
class SceneLike(Protocol):
    def lookup(self, handle: Any) -> Any: ...
    def batch(self): ...
    def invalidate(self) -> None: ...


def _zeros() -> np.ndarray:
    return np.zeros(3)


def _ones() -> np.ndarray:
    return np.ones(3)


@dataclass(eq=False)
class SceneItem:
    """
    Visual stand-in for a backend model.

    Holds only the interactive transform an engine applies while the
    user drags; the model itself is untouched until commit.
    """
    name: str
    position: np.ndarray = field(default_factory=_zeros)
    scale: np.ndarray = field(default_factory=_ones)
    # Rotation vector: axis * angle (radians)
    rotation: np.ndarray = field(default_factory=_zeros)

    def reset(self) -> None:
        """Back to the identity transform."""
        self.position = _zeros()
        self.scale = _ones()
        self.rotation = _zeros()

    @property
    def is_identity(self) -> bool:
        return (not self.position.any()
                and np.array_equal(self.scale, _ones())
                and not self.rotation.any())


class VisualScene(QObject):
    """
    Handle → model registry with a nestable batched-mutation scope.

    Signals:
        invalidated() — emitted once per redraw request, or once per
                        outermost ``batch()`` that requested any.
    """

    invalidated = Signal()

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._models: Dict[Hashable, Any] = {}
        self._batch_depth = 0
        self._pending_invalidate = False

    # ── Registry ──────────────────────────────────────────────────
    def add(self, handle: Hashable, model: Any) -> None:
        self._models[handle] = model

    def remove(self, handle: Hashable) -> None:
        self._models.pop(handle, None)

    def lookup(self, handle: Hashable) -> Any:
        """
        Backend model for *handle*.

        Raises:
            KeyError: *handle* was never added (or was removed).
        """
        try:
            return self._models[handle]
        except KeyError:
            raise KeyError(f"No model registered for handle {handle!r}") from None

    def __contains__(self, handle: Hashable) -> bool:
        return handle in self._models

    def __len__(self) -> int:
        return len(self._models)

    # ── Invalidation ──────────────────────────────────────────────
    @property
    def in_batch(self) -> bool:
        return self._batch_depth > 0

    def invalidate(self) -> None:
        if self._batch_depth:
            self._pending_invalidate = True
            return
        self.invalidated.emit()

    @contextmanager
    def batch(self) -> Iterator["VisualScene"]:
        """
        Defer ``invalidated`` until the outermost batch exits.

        Nested batches (two engines of one command updating at once)
        share a single emission.
        """
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending_invalidate:
                self._pending_invalidate = False
                log.debug("Batch closed, emitting invalidated")
                self.invalidated.emit()
