"""Background tasks of relay servers and negotiation engines.

Nothing awaits these tasks until shutdown, so a failure inside one would
otherwise go unnoticed while the program keeps running without it. A
guarded task logs the traceback of an unexpected exception and stops the
process instead.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Coroutine

logger = logging.getLogger(__name__)


class SafeTaskExitError(Exception):
    """Raised inside a guarded task to end it without stopping the process."""

    pass


async def _run_logged(
    name: str | None,
    coro: Callable[..., Coroutine[Any, Any, None]],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> None:
    try:
        await coro(*args, **kwargs)
    except SafeTaskExitError:
        raise
    except Exception:
        logger.exception(f'Unhandled error in background task {name!r}')
        raise


def stop_on_error(task: asyncio.Task[Any]) -> None:
    """Done callback which raises `SystemExit` if the task failed.

    Cancelled tasks and tasks ended by
    [`SafeTaskExitError`][peerpair.utils.tasks.SafeTaskExitError] are
    ignored.
    """
    if task.cancelled():
        return
    error = task.exception()
    if error is not None and not isinstance(error, SafeTaskExitError):
        logger.error(
            f'Background task {task.get_name()!r} failed: {error!r}',
        )
        raise SystemExit(1)


def spawn_guarded_background_task(
    coro: Callable[..., Coroutine[Any, Any, None]],
    *args: Any,
    name: str | None = None,
    **kwargs: Any,
) -> asyncio.Task[Any]:
    """Run a coroutine function as a guarded background task.

    Args:
        coro: Coroutine function to run.
        args: Positional arguments for the coroutine function.
        name: Optional name of the task used in log messages.
        kwargs: Keyword arguments for the coroutine function.

    Returns:
        Asyncio task handle. Awaiting it raises the exception of the
        coroutine, if any.
    """
    task = asyncio.create_task(
        _run_logged(name, coro, args, kwargs),
        name=name,
    )
    task.add_done_callback(stop_on_error)
    return task


class PeriodicTask:
    """Invoke a coroutine function on a fixed period.

    The first invocation happens one `interval` after
    [`start()`][peerpair.utils.tasks.PeriodicTask.start]. Invocations never
    overlap; the next wait begins once the previous invocation returns.

    [`stop()`][peerpair.utils.tasks.PeriodicTask.stop] is synchronous. When
    called from outside the task, a pending sleep or invocation is
    cancelled. When called by the invocation itself, the invocation runs to
    completion and no further invocations are made.

    Args:
        callback: Coroutine function to invoke.
        interval: Seconds between invocations.
        name: Optional name of the underlying asyncio task.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval: float,
        *,
        name: str | None = None,
    ) -> None:
        self._callback = callback
        self._interval = interval
        self._name = name
        self._stopped = False
        self._task: asyncio.Task[Any] | None = None

    @property
    def running(self) -> bool:
        """Task has been started and not stopped."""
        return self._task is not None and not self._stopped

    def start(self) -> None:
        """Start invoking the callback.

        Raises:
            RuntimeError: If the task was already started.
        """
        if self._task is not None:
            raise RuntimeError('Periodic task was already started.')
        self._task = spawn_guarded_background_task(self._run, name=self._name)

    def stop(self) -> None:
        """Stop invoking the callback."""
        self._stopped = True
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._interval)
            if self._stopped:  # pragma: no cover
                break
            await self._callback()
