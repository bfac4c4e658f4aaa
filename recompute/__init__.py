# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Public API.

    RecomputeEngine      — update / commit / cancel protocol
    CancellablePromise   — awaitable with cancel() / finish()
    CancellableRegistor  — cancels / finishes a group of resources
    InteractiveCommand   — registrar that commits its engines all-or-nothing
"""

from recompute.__about__ import __version__
from recompute.cancellable import (
    Cancel,
    Cancellable,
    CancellableDisposable,
    CancellablePromise,
    CancellableRegistor,
    CancellableResource,
    Finish,
    Finishable,
    ResourceRegistration,
    ResourceState,
)
from recompute.command import InteractiveCommand
from recompute.engine import EnginePhase, RecomputeEngine, StagedResult
from recompute.errors import (
    InvalidStateError,
    NoOpError,
    RecomputeError,
    ResynchronizationError,
    ValidationError,
)
from recompute.scene import SceneItem, SceneLike, VisualScene
from recompute.settings import EngineSettings, SettingsManager, get_settings
from recompute.threaded import CancellationToken, ThreadedBackend
from recompute.logger import get_logger, setup_logging

__all__ = [
    "__version__",
    "Cancel",
    "Cancellable",
    "CancellableDisposable",
    "CancellablePromise",
    "CancellableRegistor",
    "CancellableResource",
    "CancellationToken",
    "EnginePhase",
    "EngineSettings",
    "Finish",
    "Finishable",
    "InteractiveCommand",
    "InvalidStateError",
    "NoOpError",
    "RecomputeEngine",
    "RecomputeError",
    "ResourceRegistration",
    "ResourceState",
    "ResynchronizationError",
    "SceneItem",
    "SceneLike",
    "SettingsManager",
    "StagedResult",
    "ThreadedBackend",
    "ValidationError",
    "VisualScene",
    "get_logger",
    "get_settings",
    "setup_logging",
]
