# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Engine settings with change notification.

Storage: one ``EngineSettings`` dataclass holding raw Python values.
Access:  ``SettingsManager.instance()`` or the module helpers.
Changes: ``settings_changed(dict)`` is emitted with the changed keys;
         inside ``batch_update()`` all changes are emitted once on exit.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Set

from PySide6.QtCore import QObject, Signal

from recompute.logger import get_logger
log = get_logger("Settings")


# ============================================================================
# SCHEMA
# ============================================================================

@dataclass
class EngineSettings:
    """Tunables shared by all engines and threaded backends."""
    # Run every interactive do_update() inside the scene's batch scope
    batch_visual_updates: bool = True
    # Log recovered do_update() failures at INFO
    log_update_failures: bool = True
    # QThreadPool.setMaxThreadCount for ThreadedBackend pools; 0 keeps Qt's default
    max_worker_threads: int = 0
    # Grace period for workers to exit on ThreadedBackend.shutdown()
    wait_for_done_ms: int = 100


def _settings_to_dict(settings: EngineSettings) -> Dict[str, Any]:
    return {f.name: getattr(settings, f.name) for f in fields(settings)}


# ============================================================================
# SETTINGS MANAGER
# ============================================================================

class SettingsManager(QObject):
    """Process-wide settings singleton."""

    settings_changed = Signal(dict)

    _instance: Optional["SettingsManager"] = None

    @classmethod
    def instance(cls) -> "SettingsManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        if cls._instance is not None:
            cls._instance.deleteLater()
        cls._instance = None

    def __init__(self):
        super().__init__()
        if SettingsManager._instance is not None:
            raise RuntimeError("Use SettingsManager.instance() to get the singleton.")

        self._settings = EngineSettings()
        self._suppress_signals = False
        self._pending_changes: Dict[str, Any] = {}

    # ==========================================================================
    # BATCH UPDATES
    # ==========================================================================

    @contextmanager
    def batch_update(self):
        self._suppress_signals = True
        self._pending_changes = {}
        try:
            yield
        finally:
            self._suppress_signals = False
            changes, self._pending_changes = self._pending_changes, {}
            if changes:
                self.settings_changed.emit(changes)

    # ==========================================================================
    # ACCESS
    # ==========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self._settings, key, default)

    def get_all(self) -> Dict[str, Any]:
        return _settings_to_dict(self._settings)

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # ==========================================================================
    # UPDATES
    # ==========================================================================

    def update(self, strict: bool = False, **kwargs) -> Set[str]:
        """
        Update settings values and return the names that changed.

        Unknown keys are logged and skipped, or raise ``ValueError`` when
        *strict* is set.
        """
        unknown = [k for k in kwargs if not hasattr(self._settings, k)]
        if unknown:
            msg = f"Unknown settings keys: {unknown}"
            if strict:
                raise ValueError(msg)
            log.warning(msg)

        changed = set()
        for key, value in kwargs.items():
            if key in unknown:
                continue
            if getattr(self._settings, key) != value:
                setattr(self._settings, key, value)
                changed.add(key)

        if changed:
            changes = {k: kwargs[k] for k in changed}
            if self._suppress_signals:
                self._pending_changes.update(changes)
            else:
                self.settings_changed.emit(changes)

        return changed

    def reset(self) -> None:
        """Restore every setting to its default."""
        self.update(**_settings_to_dict(EngineSettings()))

    # ==========================================================================
    # SERIALIZATION  (JSON)
    # ==========================================================================

    def save_to_file(self, filepath: str, indent: int = 2) -> bool:
        try:
            with open(filepath, "w", encoding="utf-8") as fh:
                json.dump(self.get_all(), fh, indent=indent)
            log.info("Saved settings to: %s", filepath)
            return True
        except OSError as e:
            log.error("Failed to save settings to %s: %s", filepath, e)
            return False

    def load_from_file(self, filepath: str) -> bool:
        try:
            with open(filepath, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            log.error("Failed to load settings from %s: %s", filepath, e)
            return False

        if not isinstance(data, dict):
            log.error("Settings file %s does not contain an object", filepath)
            return False

        with self.batch_update():
            self.update(**data)
        return True


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def get_settings() -> SettingsManager:
    return SettingsManager.instance()

def get_setting(key: str, default: Any = None) -> Any:
    return SettingsManager.instance().get(key, default)

def update_settings(**kwargs) -> Set[str]:
    return SettingsManager.instance().update(**kwargs)
