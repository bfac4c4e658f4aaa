# -*- coding: utf-8 -*-
"""
Recompute: coalesced, cancellable parametric recomputation
for PySide6 interactive editors.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

errors.py — Error taxonomy shared by engines, registrars and commands.

    RecomputeError
    ├── NoOpError               — nothing to do (zero move, identity scale)
    ├── ValidationError         — backend rejected the parameter combination
    ├── InvalidStateError       — protocol misuse, fatal to the operation
    └── ResynchronizationError  — resync after a revert failed, fatal
"""

from __future__ import annotations


class RecomputeError(Exception):
    """Base class for every error raised by the recompute package."""


class NoOpError(RecomputeError):
    """
    The parameters describe an operation with no effect.

    Raised synchronously, before any backend call is dispatched.  Callers
    treat it as "nothing to do" rather than as a failure.
    """


class ValidationError(RecomputeError):
    """
    The backend rejected an otherwise well-formed parameter combination.

    Recovered locally when raised from ``do_update`` (revert + resync);
    propagated to the caller when raised from ``do_commit``.
    """


class InvalidStateError(RecomputeError):
    """Protocol misuse, e.g. ``commit()`` while an ``update()`` is outstanding."""


class ResynchronizationError(RecomputeError):
    """
    The silent resync call issued after a revert failed.

    The engine can no longer certify any state as consistent.  The resync
    call's own error is ``__cause__``; the failure that triggered the
    revert is kept in ``original_error``.
    """

    def __init__(self, message: str, original_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.original_error = original_error
