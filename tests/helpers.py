"""Awaitable helpers shared by the async tests."""
import asyncio


def pending_future():
    return asyncio.get_running_loop().create_future()


def resolved_future(value=None):
    fut = pending_future()
    fut.set_result(value)
    return fut


def rejected_future(exc):
    fut = pending_future()
    fut.set_exception(exc)
    return fut


async def ticks(n: int = 10) -> None:
    """Let the loop run *n* iterations."""
    for _ in range(n):
        await asyncio.sleep(0)
