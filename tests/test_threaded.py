"""Tests for ThreadedBackend / ComputeWorker on a QThreadPool."""
import asyncio
import threading
import time

import pytest

from recompute.engine import RecomputeEngine
from recompute.settings import update_settings
from recompute.threaded import CancellationToken, ThreadedBackend


TIMEOUT = 5.0


class TestCancellationToken:
    def test_flag(self):
        token = CancellationToken()
        assert not token
        assert not token.is_cancelled()

        token.cancel()
        assert token
        assert token.is_cancelled()

        token.reset()
        assert not token.is_cancelled()


class TestThreadedBackend:
    def test_result_comes_back_on_loop(self, run):
        async def scenario():
            main_thread = threading.get_ident()
            seen_threads = []

            def compute(inputs):
                seen_threads.append(threading.get_ident())
                return inputs["a"] + inputs["b"]

            backend = ThreadedBackend(compute)
            result = await asyncio.wait_for(backend.submit({"a": 2, "b": 3}), TIMEOUT)

            assert result == 5
            assert seen_threads and seen_threads[0] != main_thread
            assert backend.submitted == 1

        run(scenario())

    def test_error_is_raised_to_awaiter(self, run):
        async def scenario():
            def compute(inputs):
                raise ValueError("degenerate face")

            backend = ThreadedBackend(compute)
            with pytest.raises(ValueError, match="degenerate face"):
                await asyncio.wait_for(backend.submit({}), TIMEOUT)

        run(scenario())

    def test_inputs_are_snapshotted(self, run):
        async def scenario():
            release = threading.Event()

            def compute(inputs):
                release.wait(TIMEOUT)
                return list(inputs["points"])

            backend = ThreadedBackend(compute)
            points = [1, 2]
            future = backend.submit({"points": points})
            points.append(3)
            release.set()

            assert await asyncio.wait_for(future, TIMEOUT) == [1, 2]

        run(scenario())

    def test_cancel_settles_with_cancelled_error(self, run):
        async def scenario():
            started = threading.Event()

            def compute(inputs, token):
                started.set()
                while not token.is_cancelled():
                    time.sleep(0.01)
                return "too late"

            backend = ThreadedBackend(compute)
            future = backend.submit({})
            assert await asyncio.get_running_loop().run_in_executor(None, started.wait, TIMEOUT)

            backend.cancel()
            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(future, TIMEOUT)
            assert backend.is_cancelled()

        run(scenario())

    def test_resubmit_cancels_previous_run(self, run):
        async def scenario():
            release = threading.Event()

            def compute(inputs, token):
                release.wait(TIMEOUT)
                return inputs["n"]

            backend = ThreadedBackend(compute)
            first = backend.submit({"n": 1})
            second = backend.submit({"n": 2})
            release.set()

            assert await asyncio.wait_for(second, TIMEOUT) == 2
            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(first, TIMEOUT)
            assert backend.submitted == 2

        run(scenario())

    def test_max_worker_threads_setting(self):
        update_settings(max_worker_threads=2)
        backend = ThreadedBackend(lambda inputs: None)
        assert backend.thread_pool.maxThreadCount() == 2

    def test_shutdown(self, run):
        async def scenario():
            backend = ThreadedBackend(lambda inputs: "done")
            assert await asyncio.wait_for(backend.submit({}), TIMEOUT) == "done"
            backend.shutdown()
            assert backend.is_cancelled()
            assert backend.wait_for_done(1000)

        run(scenario())


class BooleanEngine(RecomputeEngine):
    tracked_keys = ("operation",)

    def __init__(self, compute, **kwargs):
        super().__init__(**kwargs)
        self.operation = "union"
        self.backend = ThreadedBackend(compute)
        self.results = []

    async def do_update(self):
        result = await self.backend.submit({"operation": self.operation})
        self.results.append(result)
        return result

    async def do_commit(self):
        return await self.backend.submit({"operation": self.operation, "final": True})

    def do_cancel(self):
        self.backend.cancel()


def test_engine_coalesces_threaded_calls(run):
    async def scenario():
        release = threading.Event()

        def compute(inputs):
            release.wait(TIMEOUT)
            return inputs["operation"]

        engine = BooleanEngine(compute)
        first = engine.update()
        for op in ("difference", "intersection", "union", "difference"):
            engine.operation = op
            engine.update()
        release.set()

        await asyncio.wait_for(first, TIMEOUT)

        assert engine.backend.submitted == 2
        assert engine.results == ["union", "difference"]
        assert engine.last_good == {"operation": "difference"}

    run(scenario())


def test_engine_reverts_after_threaded_failure(run):
    async def scenario():
        def compute(inputs):
            if inputs["operation"] == "invalid":
                raise ValueError("no such boolean")
            return inputs["operation"]

        engine = BooleanEngine(compute)
        await asyncio.wait_for(engine.update(), TIMEOUT)

        engine.operation = "invalid"
        await asyncio.wait_for(engine.update(), TIMEOUT)

        assert engine.operation == "union"
        assert engine.results == ["union", "union"]
        assert engine.call_count == 3

    run(scenario())
