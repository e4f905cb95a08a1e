"""Shared test fixtures for hound tests."""

from collections.abc import Awaitable, Callable

import anyio
import pytest

WaitFor = Callable[[Callable[[], bool]], Awaitable[None]]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def wait_for() -> WaitFor:
    """Return a coroutine function that polls a predicate until it holds."""

    async def _wait_for(
        predicate: Callable[[], bool],
        timeout: float = 5.0,
        interval: float = 0.02,
    ) -> None:
        with anyio.fail_after(timeout):
            while not predicate():
                await anyio.sleep(interval)

    return _wait_for
