"""Tools for running relay services and servers in unit tests."""
from __future__ import annotations

import asyncio
import pathlib
from typing import AsyncGenerator
from typing import NamedTuple

import pytest
import pytest_asyncio
import uvicorn

from peerpair.relay.client import LocalRelayClient
from peerpair.relay.serve import create_app
from peerpair.relay.service import RelayService
from peerpair.relay.storage import MemoryStorage
from peerpair.relay.storage import SignalingStorage
from peerpair.relay.storage import SQLiteStorage
from testing.utils import open_port


class ManualClock:
    """Clock which only moves when advanced."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RelayServerInfo(NamedTuple):
    """NamedTuple returned by relay_server fixture."""

    service: RelayService
    server: uvicorn.Server
    host: str
    port: int
    address: str


@pytest_asyncio.fixture(params=['memory', 'sqlite-memory', 'sqlite-file'])
async def storage(
    request: pytest.FixtureRequest,
    tmp_path: pathlib.Path,
) -> AsyncGenerator[SignalingStorage, None]:
    """Fixture yielding each signaling storage implementation."""
    storage: SignalingStorage
    if request.param == 'memory':
        storage = MemoryStorage()
    elif request.param == 'sqlite-memory':
        storage = SQLiteStorage(':memory:')
    else:
        storage = SQLiteStorage(tmp_path / 'signaling.db')
    yield storage
    await storage.close()


@pytest.fixture()
def clock() -> ManualClock:
    """Fixture yielding a manual clock."""
    return ManualClock()


@pytest_asyncio.fixture()
async def service(
    clock: ManualClock,
) -> AsyncGenerator[RelayService, None]:
    """Fixture yielding an in-memory relay service driven by `clock`."""
    service = RelayService(MemoryStorage(), clock=clock)
    yield service
    await service.close()


@pytest.fixture()
def local_relay(service: RelayService) -> LocalRelayClient:
    """Fixture yielding a relay client calling `service` in process."""
    return LocalRelayClient(service)


@pytest_asyncio.fixture()
async def relay_server() -> AsyncGenerator[RelayServerInfo, None]:
    """Fixture that runs a relay server in the current event loop.

    Yields:
        [`RelayServerInfo`][testing.relay.RelayServerInfo]
    """
    host = '127.0.0.1'
    port = open_port()
    service = RelayService(MemoryStorage())
    app = create_app(service)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
        ),
    )
    task = asyncio.create_task(server.serve())
    while not server.started:
        await asyncio.sleep(0.01)

    yield RelayServerInfo(
        service=service,
        server=server,
        host=host,
        port=port,
        address=f'http://{host}:{port}',
    )

    server.should_exit = True
    await task
