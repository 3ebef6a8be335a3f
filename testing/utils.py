"""Fixtures and utilities for testing."""
from __future__ import annotations

import asyncio
import inspect
import socket
from typing import Awaitable
from typing import Callable
from typing import Union


def open_port() -> int:
    """Return open port.

    Source: https://stackoverflow.com/questions/2838244
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(('', 0))
    s.listen(1)
    port = s.getsockname()[1]
    s.close()
    return port


async def wait_for(
    predicate: Callable[[], Union[bool, Awaitable[bool]]],
    timeout: float = 5,
    interval: float = 0.005,
) -> None:
    """Wait until the predicate returns `True`.

    Args:
        predicate: Callable returning a bool or an awaitable bool.
        timeout: Seconds to wait before giving up.
        interval: Seconds between checks.

    Raises:
        TimeoutError: If the predicate is still `False` after the timeout.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return
        if loop.time() > deadline:  # pragma: no cover
            raise TimeoutError(
                f'Condition was not met within {timeout} seconds.',
            )
        await asyncio.sleep(interval)
