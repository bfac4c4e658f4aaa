# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Bundled engines, discovered lazily.

Every public :class:`~recompute.engine.RecomputeEngine` subclass defined
in a module of this package is registered by class name on first
attribute access::

    from recompute.example_engines import MoveEngine
    get_engine_registry()  # {"MoveEngine": ..., "RotateEngine": ..., ...}
"""

import importlib
import pkgutil
from pathlib import Path
from threading import Lock
from typing import Dict, List, Type

from recompute.engine import RecomputeEngine

from recompute.logger import get_logger
log = get_logger("ExampleEngines")

# ---------------------------------------------------------------------------
# Global State
# ---------------------------------------------------------------------------

_ENGINE_REGISTRY: Dict[str, Type[RecomputeEngine]] = {}
_IS_INITIALIZED: bool = False
_DISCOVERY_LOCK = Lock()


# ---------------------------------------------------------------------------
# Internal Discovery Logic
# ---------------------------------------------------------------------------

def _is_engine_class(obj, module_name: str) -> bool:
    return (
        isinstance(obj, type)
        and issubclass(obj, RecomputeEngine)
        and obj.__module__ == module_name
    )


def _discover_engines() -> None:
    """Import every module of this package and register its engine classes.

    Idempotent and thread-safe; modules are imported in name order so the
    registry is deterministic.
    """
    global _IS_INITIALIZED

    if _IS_INITIALIZED:
        return

    with _DISCOVERY_LOCK:
        if _IS_INITIALIZED:
            return

        package_path = [str(Path(__file__).parent)]
        discovered = sorted(pkgutil.iter_modules(package_path), key=lambda t: t[1])

        for _finder, mod_name, is_pkg in discovered:
            if is_pkg:
                continue
            try:
                module = importlib.import_module(f".{mod_name}", package=__name__)
            except ImportError as exc:
                log.warning("Failed to import engine module '%s': %s", mod_name, exc)
                continue

            for name, obj in vars(module).items():
                if not name.startswith("_") and _is_engine_class(obj, module.__name__):
                    _ENGINE_REGISTRY[name] = obj

        _IS_INITIALIZED = True


# ---------------------------------------------------------------------------
# Lazy Loading (PEP 562)
# ---------------------------------------------------------------------------

def __getattr__(name: str):
    if not _IS_INITIALIZED:
        _discover_engines()

    if name in _ENGINE_REGISTRY:
        return _ENGINE_REGISTRY[name]

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> List[str]:
    if not _IS_INITIALIZED:
        _discover_engines()
    return sorted(set(globals()) | set(_ENGINE_REGISTRY))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_engine_registry() -> Dict[str, Type[RecomputeEngine]]:
    """Mapping of engine class name → class for every bundled engine."""
    if not _IS_INITIALIZED:
        _discover_engines()
    return dict(_ENGINE_REGISTRY)
