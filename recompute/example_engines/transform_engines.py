# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

transform_engines.py
--------------------
Move / scale / rotate engines over scene items.

While the user drags, ``do_update`` only rewrites the interactive
transform of each :class:`~recompute.scene.SceneItem` (cheap, visual).
On commit the backend bakes the transform into new models; showing a
staged result swaps the new model in and resets the item.

Example::

    scene = VisualScene()
    scene.add(item, solid)
    move = command.add_engine(MoveEngine(scene, [item], commit_fn=kernel.move))

    move.move = np.array([10.0, 0.0, 0.0])
    move.update()
    ...
    await command.confirm()
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple

import numpy as np
from PySide6.QtCore import QObject

from recompute.engine import RecomputeEngine, StagedResult
from recompute.errors import InvalidStateError, NoOpError, ValidationError
from recompute.scene import SceneItem

from recompute.logger import get_logger
log = get_logger("TransformEngines")

# Manhattan length below which a move is treated as no move at all
MOVE_EPSILON: float = 1e-5

CommitFn = Callable[[List[Any], Dict[str, Any]], Any]


def rotate_about_axis(v: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    """Rodrigues rotation of *v* around the unit vector of *axis*."""
    k = axis / np.linalg.norm(axis)
    cos, sin = np.cos(angle), np.sin(angle)
    return v * cos + np.cross(k, v) * sin + k * np.dot(k, v) * (1.0 - cos)


class TransformEngine(RecomputeEngine):
    """
    Shared plumbing: handle → model lookup, visual reset on cancel, and
    commit through a backend callable.

    *commit_fn(models, params)* returns one new model per input model,
    or an awaitable of that list.  Besides ``SceneLike`` the scene must
    support ``add(handle, model)`` so shown results can replace models.
    """

    def __init__(
        self,
        scene: Any,
        items: Sequence[SceneItem],
        commit_fn: Optional[CommitFn] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(scene=scene, parent=parent)
        self.items: List[SceneItem] = list(items)
        self.models: List[Any] = [scene.lookup(item) for item in self.items]
        self.pivot: np.ndarray = np.zeros(3)
        self._commit_fn = commit_fn

    # ── Subclass hook ─────────────────────────────────────────────
    def apply_to(self, item: SceneItem) -> None:
        raise NotImplementedError

    # ── Protocol ──────────────────────────────────────────────────
    async def do_update(self) -> List[StagedResult]:
        for item in self.items:
            self.apply_to(item)
        self.scene.invalidate()
        return [StagedResult(item) for item in self.items]

    async def do_commit(self) -> List[StagedResult]:
        if self._commit_fn is None:
            raise InvalidStateError(f"{type(self).__name__} was created without a commit_fn")

        params = dict(self.parameters, pivot=self.pivot.copy())
        new_models = self._commit_fn(list(self.models), params)
        if inspect.isawaitable(new_models):
            new_models = await new_models

        if len(new_models) != len(self.items):
            raise ValueError(
                f"commit_fn returned {len(new_models)} model(s) for {len(self.items)} item(s)"
            )
        return [
            StagedResult(model, show=self._swapper(item, model))
            for item, model in zip(self.items, new_models)
        ]

    def do_cancel(self) -> None:
        for item in self.items:
            item.reset()
        self.scene.invalidate()

    def _swapper(self, item: SceneItem, model: Any) -> Callable[[], None]:
        def show() -> None:
            self.scene.add(item, model)
            item.reset()
            log.debug("Swapped committed model in for %s", item.name)
            self.scene.invalidate()
        return show


class MoveEngine(TransformEngine):
    tracked_keys: ClassVar[Tuple[str, ...]] = ("move",)

    def __init__(self, scene, items, commit_fn=None, parent=None):
        super().__init__(scene, items, commit_fn=commit_fn, parent=parent)
        self.move: np.ndarray = np.zeros(3)

    def validate(self) -> None:
        if np.abs(self.move).sum() < MOVE_EPSILON:
            raise NoOpError("move distance is zero")

    def apply_to(self, item: SceneItem) -> None:
        item.position = np.array(self.move, dtype=float)


class ScaleEngine(TransformEngine):
    """Scales about ``pivot``; identity scale is a no-op."""

    tracked_keys: ClassVar[Tuple[str, ...]] = ("scale", "pivot")

    def __init__(self, scene, items, commit_fn=None, parent=None):
        super().__init__(scene, items, commit_fn=commit_fn, parent=parent)
        self.scale: np.ndarray = np.ones(3)

    def validate(self) -> None:
        if np.array_equal(self.scale, np.ones(3)):
            raise NoOpError("scale is identity")

    def apply_to(self, item: SceneItem) -> None:
        scale = np.array(self.scale, dtype=float)
        item.scale = scale
        # Origin scaled about the pivot
        item.position = self.pivot * (1.0 - scale)


class RotateEngine(TransformEngine):
    tracked_keys: ClassVar[Tuple[str, ...]] = ("axis", "angle", "pivot")

    def __init__(self, scene, items, commit_fn=None, parent=None):
        super().__init__(scene, items, commit_fn=commit_fn, parent=parent)
        self.axis: np.ndarray = np.array([0.0, 0.0, 1.0])
        self.angle: float = 0.0

    def validate(self) -> None:
        if self.angle == 0:
            raise NoOpError("rotation angle is zero")
        self._check_axis()

    def apply_to(self, item: SceneItem) -> None:
        if self.angle == 0:
            item.reset()
            return
        self._check_axis()
        item.position = rotate_about_axis(-self.pivot, self.axis, self.angle) + self.pivot
        item.rotation = self.axis / np.linalg.norm(self.axis) * self.angle

    def _check_axis(self) -> None:
        if np.linalg.norm(self.axis) == 0:
            raise ValidationError("rotation axis has zero length")
