# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

logger.py — Component Loggers for the Recompute Engine
-------------------------------------------------------
Per-component loggers backed by the standard ``logging`` library, plus a
callback handler so an editor can mirror engine diagnostics into a
status bar or console dock.

Quick Start::

    from recompute.logger import get_logger
    log = get_logger("Engine")

    log.info("Backend call #%d failed: %s", n, exc)
    log.debug("Reverted %s", restored)

All loggers are children of the root ``"Recompute"`` logger, so one
handler attached at the root controls all output.

Level usage:
    DEBUG    — Scheduling detail (dispatch, coalesce, snapshot, revert)
    INFO     — Recovered failures (an interactive backend call rejected)
    WARNING  — Isolated failures (a registered resource raised on cancel)
    ERROR    — Unrecoverable (resynchronization after a revert failed)
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, List, Callable

# ==============================================================================
# ROOT LOGGER NAME
# ==============================================================================

ROOT_LOGGER_NAME = "Recompute"

# ==============================================================================
# FORMATTER
# ==============================================================================

class EngineFormatter(logging.Formatter):
    """
    ``[Component] LEVEL message`` formatter, with an optional timestamp
    prefix for file output.

    Console output::

        [Engine] INFO  MoveEngine: backend call #3 failed: zero-length edge
        [Registor] WARN  cancel() failed for <Gizmo>: ...

    File output::

        2026-10-18 14:30:05 [Engine] INFO  MoveEngine: backend call #3 failed
    """

    CONSOLE_FMT = "[%(component)s] %(levelname)-5s %(message)s"
    FILE_FMT    = "%(asctime)s [%(component)s] %(levelname)-5s %(message)s"

    def __init__(self, use_timestamp: bool = False) -> None:
        fmt = self.FILE_FMT if use_timestamp else self.CONSOLE_FMT
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "component"):
            # "Recompute.Engine" → "Engine"
            record.component = record.name.rsplit(".", 1)[-1]
        return super().format(record)


# ==============================================================================
# CALLBACK BRIDGE
# ==============================================================================

_callback_handler: Optional[logging.Handler] = None


class _CallbackHandler(logging.Handler):
    """
    Forwards formatted records to plain callables.

    Callbacks receive ``(level: str, component: str, message: str)`` and
    are typically connected to a Qt slot by the editor.  A failing
    callback never stops delivery to the others.
    """

    def __init__(self) -> None:
        super().__init__()
        self._callbacks: List[Callable[[str, str, str], None]] = []

    def add_callback(self, fn: Callable[[str, str, str], None]) -> None:
        if fn not in self._callbacks:
            self._callbacks.append(fn)

    def remove_callback(self, fn: Callable[[str, str, str], None]) -> None:
        if fn in self._callbacks:
            self._callbacks.remove(fn)

    @property
    def has_callbacks(self) -> bool:
        return bool(self._callbacks)

    def emit(self, record: logging.LogRecord) -> None:
        if not self._callbacks:
            return
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        component = getattr(record, "component", record.name.rsplit(".", 1)[-1])
        for cb in list(self._callbacks):
            try:
                cb(record.levelname, component, msg)
            except Exception:
                self.handleError(record)


# ==============================================================================
# PUBLIC API
# ==============================================================================

def get_logger(component: str) -> logging.Logger:
    """
    Get the logger for one engine component.

    Args:
        component: Short identifier (``"Engine"``, ``"Registor"``,
                   ``"ThreadedBackend"``).  Appears in output as
                   ``[Engine]``.

    Returns:
        A child of the root ``Recompute`` logger.
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


def setup_logging(
    level: int = logging.INFO,
    stream=None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root ``Recompute`` logger.

    Call once at editor startup.  Repeated calls only adjust the level;
    handlers are never duplicated.

    Args:
        level:    Minimum log level.
        stream:   Console stream (default ``sys.stderr``).
        log_file: Optional path for an additional timestamped file log.

    Returns:
        The root ``Recompute`` logger.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in root.handlers):
        console = logging.StreamHandler(stream or sys.stderr)
        console.setLevel(level)
        console.setFormatter(EngineFormatter(use_timestamp=False))
        root.addHandler(console)

        if log_file:
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(EngineFormatter(use_timestamp=True))
            root.addHandler(fh)

    return root


def set_log_level(level: int) -> None:
    """Change the level of the root logger and all of its handlers."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    for handler in root.handlers:
        handler.setLevel(level)


def add_log_callback(fn: Callable[[str, str, str], None]) -> None:
    """
    Mirror every engine log record to ``fn(level, component, message)``.

    Args:
        fn: Callable invoked for each record reaching the root logger.
    """
    global _callback_handler
    if _callback_handler is None:
        _callback_handler = _CallbackHandler()
        _callback_handler.setFormatter(EngineFormatter(use_timestamp=False))
        logging.getLogger(ROOT_LOGGER_NAME).addHandler(_callback_handler)
    _callback_handler.add_callback(fn)


def remove_log_callback(fn: Callable[[str, str, str], None]) -> None:
    """Stop mirroring records to a callback added with :func:`add_log_callback`."""
    global _callback_handler
    if _callback_handler is None:
        return
    _callback_handler.remove_callback(fn)
    if not _callback_handler.has_callbacks:
        logging.getLogger(ROOT_LOGGER_NAME).removeHandler(_callback_handler)
        _callback_handler = None
