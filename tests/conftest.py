"""Pytest configuration and shared fixtures."""
import asyncio

import pytest
from PySide6.QtCore import QCoreApplication

from recompute.settings import SettingsManager


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    """One QCoreApplication for the whole session (QThreadPool, signals)."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture(autouse=True)
def fresh_settings():
    """Every test starts from default engine settings."""
    SettingsManager.reset_instance()
    yield SettingsManager.instance()
    SettingsManager.reset_instance()


@pytest.fixture
def run():
    """Drive a coroutine to completion on a fresh event loop."""
    def _run(coro):
        return asyncio.run(coro)
    return _run
