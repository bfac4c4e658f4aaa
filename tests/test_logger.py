"""Tests for the component logger and its callback bridge."""
import io
import logging

import pytest

from recompute.logger import (
    ROOT_LOGGER_NAME,
    EngineFormatter,
    add_log_callback,
    get_logger,
    remove_log_callback,
    set_log_level,
    setup_logging,
)


@pytest.fixture
def root_logger():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_get_logger_is_child_of_root():
    log = get_logger("Engine")
    assert log.name == f"{ROOT_LOGGER_NAME}.Engine"


def test_formatter_adds_component():
    record = logging.LogRecord(
        f"{ROOT_LOGGER_NAME}.Engine", logging.INFO, __file__, 1, "call #%d failed", (3,), None
    )
    assert EngineFormatter().format(record) == "[Engine] INFO  call #3 failed"


def test_setup_logging_is_idempotent(root_logger):
    stream = io.StringIO()
    setup_logging(logging.DEBUG, stream=stream)
    setup_logging(logging.DEBUG, stream=stream)

    get_logger("Engine").debug("dispatch")

    assert stream.getvalue().count("[Engine] DEBUG dispatch") == 1


def test_setup_logging_writes_file(root_logger, tmp_path):
    log_file = tmp_path / "engine.log"
    setup_logging(logging.INFO, stream=io.StringIO(), log_file=str(log_file))

    get_logger("Registor").warning("cancel() failed")
    for handler in root_logger.handlers:
        handler.flush()

    assert "[Registor] WARNING cancel() failed" in log_file.read_text(encoding="utf-8")


def test_set_log_level(root_logger):
    stream = io.StringIO()
    setup_logging(logging.DEBUG, stream=stream)
    set_log_level(logging.ERROR)

    get_logger("Engine").info("hidden")
    get_logger("Engine").error("shown")

    assert "hidden" not in stream.getvalue()
    assert "shown" in stream.getvalue()


def test_callbacks(root_logger):
    root_logger.setLevel(logging.DEBUG)
    received = []

    def callback(level, component, message):
        received.append((level, component, message))

    add_log_callback(callback)
    try:
        get_logger("ThreadedBackend").info("worker done")
    finally:
        remove_log_callback(callback)
    get_logger("ThreadedBackend").info("after removal")

    assert received == [("INFO", "ThreadedBackend", "[ThreadedBackend] INFO  worker done")]


def test_failing_callback_does_not_block_others(root_logger, monkeypatch):
    root_logger.setLevel(logging.DEBUG)
    monkeypatch.setattr(logging, "raiseExceptions", False)
    received = []

    def broken(level, component, message):
        raise RuntimeError("slot deleted")

    def working(level, component, message):
        received.append(message)

    add_log_callback(broken)
    add_log_callback(working)
    try:
        get_logger("Engine").warning("still delivered")
    finally:
        remove_log_callback(broken)
        remove_log_callback(working)

    assert len(received) == 1
