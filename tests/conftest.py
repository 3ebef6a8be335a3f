from __future__ import annotations

import asyncio
from typing import Generator
from unittest import mock

import pytest
import uvloop

# Fixtures shared across test directories
from testing.relay import clock
from testing.relay import local_relay
from testing.relay import relay_server
from testing.relay import service
from testing.relay import storage


def pytest_addoption(parser):
    parser.addoption(
        '--use-uvloop',
        action='store_true',
        default=False,
        help='Run asyncio tests and relay servers on uvloop',
    )


@pytest.fixture(scope='session')
def use_uvloop(request) -> bool:
    """Fixture returning if the session runs on uvloop."""
    return request.config.getoption('--use-uvloop')


@pytest.fixture(scope='session')
def event_loop_policy(
    use_uvloop: bool,
) -> Generator[asyncio.AbstractEventLoopPolicy, None, None]:
    """Event loop policy of every asyncio test in the session.

    Without `--use-uvloop`, code paths which would install uvloop (e.g.,
    the relay CLI without `--no-uvloop`) raise instead of silently changing
    the policy of the remaining tests.
    """
    if use_uvloop:  # pragma: no cover
        uvloop.install()
        yield asyncio.get_event_loop_policy()
        return

    guard = mock.patch(
        'uvloop.install',
        side_effect=RuntimeError(
            'uvloop.install() called in a session without --use-uvloop.',
        ),
    )
    with guard:  # pragma: no cover
        yield asyncio.get_event_loop_policy()
