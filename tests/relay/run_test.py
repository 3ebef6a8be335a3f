from __future__ import annotations

import asyncio
import logging
import os
import pathlib
from unittest import mock
from unittest.mock import AsyncMock

import click.testing
import pytest

from peerpair.relay.config import RelayServingConfig
from peerpair.relay.messages import SessionDescription
from peerpair.relay.run import cli
from peerpair.relay.run import create_storage
from peerpair.relay.run import periodic_session_logger
from peerpair.relay.run import serve
from peerpair.relay.service import RelayService
from peerpair.relay.storage import MemoryStorage
from peerpair.relay.storage import SQLiteStorage
from testing.utils import open_port


@pytest.mark.asyncio()
async def test_periodic_session_logger(caplog) -> None:
    caplog.set_level(logging.INFO)

    service = RelayService(MemoryStorage())
    await service.publish_session(SessionDescription(type='offer', sdp='v=0'))

    task = periodic_session_logger(service, 0.001)
    assert task.get_name() == 'relay-server-session-logger'
    await asyncio.sleep(0.05)
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass

    assert any(
        [
            'Live sessions: 1' in record.message
            and record.levelname == 'INFO'
            for record in caplog.records
        ],
    )


def test_create_storage(tmp_path: pathlib.Path) -> None:
    assert isinstance(create_storage(RelayServingConfig()), MemoryStorage)

    config = RelayServingConfig(database_path=str(tmp_path / 'db.sqlite'))
    assert isinstance(create_storage(config), SQLiteStorage)


@pytest.mark.asyncio()
async def test_serve_and_stop() -> None:
    config = RelayServingConfig(host='127.0.0.1', port=open_port())
    config.logging.session_log_interval = 1

    async def _serve(self) -> None:
        await asyncio.sleep(0)

    with mock.patch('uvicorn.Server.serve', _serve):
        await serve(config)


def test_invoke() -> None:
    runner = click.testing.CliRunner()
    with mock.patch(
        'peerpair.relay.run.serve',
        AsyncMock(),
    ) as mock_serve:
        result = runner.invoke(cli, ['--no-uvloop'])
        assert result.exit_code == 0
        mock_serve.assert_awaited_once()


def test_invoke_and_override_defaults(tmp_path: pathlib.Path) -> None:
    tmp_dir = os.path.join(tmp_path, 'log-dir')
    database = os.path.join(tmp_path, 'signaling.db')
    assert not os.path.isdir(tmp_dir)

    async def _mock_serve(config: RelayServingConfig) -> None:
        assert config.host == 'test-host'
        assert config.port == 1234
        assert config.database_path == database
        assert config.logging.log_dir == str(tmp_dir)
        assert config.logging.default_level == logging.WARNING

    options: list[str] = ['--no-uvloop']
    options += ['--host', 'test-host']
    options += ['--port', '1234']
    options += ['--database', database]
    options += ['--log-dir', str(tmp_dir)]
    options += ['--log-level', 'WARNING']

    runner = click.testing.CliRunner()
    with mock.patch(
        'peerpair.relay.run.serve',
        AsyncMock(side_effect=_mock_serve),
    ) as mock_serve:
        result = runner.invoke(cli, options)
        assert result.exit_code == 0
        mock_serve.assert_awaited_once()

    assert os.path.isdir(tmp_dir)


def test_invoke_with_config_file(tmp_path: pathlib.Path) -> None:
    filepath = tmp_path / 'relay.toml'
    filepath.write_text('host = "0.0.0.0"\nport = 9000\n')

    async def _mock_serve(config: RelayServingConfig) -> None:
        assert config.host == '0.0.0.0'
        assert config.port == 9000

    runner = click.testing.CliRunner()
    with mock.patch(
        'peerpair.relay.run.serve',
        AsyncMock(side_effect=_mock_serve),
    ) as mock_serve:
        result = runner.invoke(cli, ['--no-uvloop', '-c', str(filepath)])
        assert result.exit_code == 0
        mock_serve.assert_awaited_once()
