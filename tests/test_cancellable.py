"""Tests for CancellablePromise, CancellableDisposable and CancellableRegistor."""
import asyncio

import pytest

from recompute.cancellable import (
    Cancel,
    CancellableDisposable,
    CancellablePromise,
    CancellableRegistor,
    CancellableResource,
    ResourceState,
)


class Recorder:
    """Plain object satisfying the resource protocol structurally."""

    def __init__(self, log, name, fail_on=()):
        self.log = log
        self.name = name
        self.fail_on = fail_on

    def cancel(self):
        self.log.append(f"{self.name}.cancel")
        if "cancel" in self.fail_on:
            raise RuntimeError(f"{self.name} cancel failed")

    def finish(self):
        self.log.append(f"{self.name}.finish")
        if "finish" in self.fail_on:
            raise RuntimeError(f"{self.name} finish failed")


def drag_executor(calls):
    """Executor modelled on a gizmo drag: ESC rejects, ENTER resolves."""
    def executor(resolve, reject):
        def cancel():
            calls.append("cancel")
            reject(Cancel())

        def finish():
            calls.append("finish")
            resolve("final-value")

        return cancel, finish
    return executor


# ---------------------------------------------------------------------------
# CancellablePromise
# ---------------------------------------------------------------------------

class TestCancellablePromise:
    def test_resolve_from_executor(self, run):
        async def scenario():
            def executor(resolve, reject):
                asyncio.get_running_loop().call_soon(resolve, 42)
                return (lambda: None), (lambda: None)

            promise = CancellablePromise(executor)
            assert await promise == 42
            assert promise.state is ResourceState.PENDING

        run(scenario())

    def test_cancel_runs_callback_and_rejects(self, run):
        async def scenario():
            calls = []
            promise = CancellablePromise(drag_executor(calls))

            promise.cancel()

            assert promise.state is ResourceState.CANCELLED
            assert calls == ["cancel"]
            with pytest.raises(Cancel):
                await promise

        run(scenario())

    def test_finish_runs_callback_and_resolves(self, run):
        async def scenario():
            calls = []
            promise = CancellablePromise(drag_executor(calls))

            promise.finish()

            assert promise.state is ResourceState.FINISHED
            assert promise.done()
            assert promise.result() == "final-value"
            assert await promise == "final-value"

        run(scenario())

    def test_terminal_state_is_final(self, run):
        async def scenario():
            calls = []
            promise = CancellablePromise(drag_executor(calls))

            promise.finish()
            promise.cancel()
            promise.finish()

            assert promise.state is ResourceState.FINISHED
            assert calls == ["finish"]

        run(scenario())

    def test_cancel_callback_failure_is_swallowed(self, run):
        async def scenario():
            def executor(resolve, reject):
                def cancel():
                    raise RuntimeError("gizmo already gone")
                return cancel, (lambda: None)

            promise = CancellablePromise(executor)
            promise.cancel()
            assert promise.state is ResourceState.CANCELLED

        run(scenario())

    def test_finish_callback_failure_propagates(self, run):
        async def scenario():
            def executor(resolve, reject):
                def finish():
                    raise RuntimeError("cannot finish")
                return (lambda: None), finish

            promise = CancellablePromise(executor)
            with pytest.raises(RuntimeError):
                promise.finish()
            assert promise.state is ResourceState.FINISHED

        run(scenario())

    def test_settles_only_once(self, run):
        async def scenario():
            def executor(resolve, reject):
                resolve(1)
                resolve(2)
                reject(ValueError("late"))
                return (lambda: None), (lambda: None)

            assert await CancellablePromise(executor) == 1

        run(scenario())

    def test_resolved(self, run):
        async def scenario():
            promise = CancellablePromise.resolved("value")
            assert promise.done()
            promise.cancel()
            assert promise.state is ResourceState.CANCELLED
            assert await promise == "value"

        run(scenario())

    def test_resource_registers_and_returns_self(self, run):
        async def scenario():
            registor = CancellableRegistor()
            promise = CancellablePromise(drag_executor([])).resource(registor)

            assert isinstance(promise, CancellablePromise)
            assert registor.resources == (promise,)

            registor.cancel()
            with pytest.raises(Cancel):
                await promise

        run(scenario())

    def test_done_callback(self, run):
        async def scenario():
            seen = []
            promise = CancellablePromise(drag_executor([]))
            promise.add_done_callback(lambda fut: seen.append(fut.result()))

            promise.finish()
            await asyncio.sleep(0)

            assert seen == ["final-value"]

        run(scenario())

    def test_requires_loop(self):
        with pytest.raises(RuntimeError):
            CancellablePromise(drag_executor([]))

    def test_explicit_loop(self):
        loop = asyncio.new_event_loop()
        try:
            promise = CancellablePromise.resolved(7, loop=loop)
            assert loop.run_until_complete(promise.future) == 7
        finally:
            loop.close()


# ---------------------------------------------------------------------------
# CancellableDisposable
# ---------------------------------------------------------------------------

class TestCancellableDisposable:
    def test_disposes_once(self):
        calls = []
        disposable = CancellableDisposable(lambda: calls.append("dispose"))

        disposable.cancel()
        disposable.finish()
        disposable.cancel()

        assert disposable.disposed
        assert calls == ["dispose"]

    def test_finish_disposes(self):
        calls = []
        disposable = CancellableDisposable(lambda: calls.append("dispose"))
        disposable.finish()
        assert calls == ["dispose"]


# ---------------------------------------------------------------------------
# CancellableRegistor
# ---------------------------------------------------------------------------

class TestCancellableRegistor:
    def test_cancel_reaches_all_in_order(self):
        log = []
        registor = CancellableRegistor()
        for name in ("gizmo", "engine", "helper"):
            registor.register(Recorder(log, name))

        registor.cancel()

        assert log == ["gizmo.cancel", "engine.cancel", "helper.cancel"]
        assert registor.registor_state is ResourceState.CANCELLED

    def test_cancel_isolates_failures(self):
        log = []
        registor = CancellableRegistor()
        registor.register(Recorder(log, "a", fail_on=("cancel",)))
        registor.register(Recorder(log, "b"))

        registor.cancel()

        assert log == ["a.cancel", "b.cancel"]

    def test_finish_reaches_all_then_raises_first_error(self):
        log = []
        registor = CancellableRegistor()
        registor.register(Recorder(log, "a", fail_on=("finish",)))
        registor.register(Recorder(log, "b", fail_on=("finish",)))
        registor.register(Recorder(log, "c"))

        with pytest.raises(RuntimeError, match="a finish failed"):
            registor.finish()

        assert log == ["a.finish", "b.finish", "c.finish"]
        assert registor.registor_state is ResourceState.FINISHED

    def test_operations_are_idempotent(self):
        log = []
        registor = CancellableRegistor()
        registor.register(Recorder(log, "a"))

        registor.cancel()
        registor.cancel()
        registor.finish()

        assert log == ["a.cancel"]

    def test_register_rejects_non_resources(self):
        registor = CancellableRegistor()
        with pytest.raises(TypeError):
            registor.register(object())

    def test_register_is_structural_and_deduplicated(self):
        log = []
        registor = CancellableRegistor()
        recorder = Recorder(log, "a")

        assert isinstance(recorder, CancellableResource)
        assert registor.register(recorder) is recorder
        registor.register(recorder)

        assert registor.resources == (recorder,)

    def test_late_registration_follows_terminal_state(self):
        log = []
        cancelled, finished = CancellableRegistor(), CancellableRegistor()
        cancelled.cancel()
        finished.finish()

        cancelled.register(Recorder(log, "late1"))
        finished.register(Recorder(log, "late2"))

        assert log == ["late1.cancel", "late2.finish"]

    def test_disposable_on_registor(self):
        calls = []
        registor = CancellableRegistor()
        CancellableDisposable(lambda: calls.append("disconnect")).resource(registor)

        registor.finish()

        assert calls == ["disconnect"]
