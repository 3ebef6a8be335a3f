"""CLI and serving functions for running a relay server."""
from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
import logging.handlers
import os
import pprint
import sys

import click
import uvicorn
import uvloop

from peerpair.relay.config import RelayLoggingConfig
from peerpair.relay.config import RelayServingConfig
from peerpair.relay.serve import create_app
from peerpair.relay.service import RelayService
from peerpair.relay.storage import MemoryStorage
from peerpair.relay.storage import SignalingStorage
from peerpair.relay.storage import SQLiteStorage
from peerpair.utils.tasks import spawn_guarded_background_task

logger = logging.getLogger(__name__)


def periodic_session_logger(
    service: RelayService,
    interval: float = 60,
    level: int = logging.INFO,
) -> asyncio.Task[None]:
    """Create an asyncio task which logs the number of live sessions.

    Args:
        service: Relay service to log the sessions of.
        interval: Seconds between logging live sessions.
        level: Logging level.

    Returns:
        Asyncio task.
    """

    async def _log() -> None:
        while True:
            await asyncio.sleep(interval)
            count = await service.session_count()
            logger.log(level, f'Live sessions: {count}')

    return spawn_guarded_background_task(
        _log,
        name='relay-server-session-logger',
    )


def create_storage(config: RelayServingConfig) -> SignalingStorage:
    """Create the signaling storage described by the config."""
    if config.database_path is not None:
        logger.info(
            'Using SQLite database for storage '
            f'(path: {config.database_path})',
        )
        return SQLiteStorage(config.database_path)
    logger.warning('Database path not provided. State will not be persisted')
    return MemoryStorage()


def configure_logging(config: RelayLoggingConfig) -> None:
    """Configure the root logger of a relay server process.

    Records go to stdout and, if `config.log_dir` is set, to a
    `relay.log` file in that directory rotated weekly.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_dir is not None:
        os.makedirs(config.log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                os.path.join(config.log_dir, 'relay.log'),
                when='W6',
                atTime=datetime.time(hour=0, minute=0, second=0),
            ),
        )

    logging.basicConfig(
        format=(
            '[%(asctime)s.%(msecs)03d] %(levelname)-5s (%(name)s) :: '
            '%(message)s'
        ),
        datefmt='%Y-%m-%d %H:%M:%S',
        level=config.default_level,
        handlers=handlers,
    )

    # Access and lifecycle logs of the HTTP stack are noisy at INFO
    for name in ('uvicorn', 'uvicorn.error', 'quart'):
        logging.getLogger(name).setLevel(config.server_level)


async def serve(config: RelayServingConfig) -> None:
    """Run the relay server.

    Initializes a [`RelayService`][peerpair.relay.service.RelayService]
    and serves its routes with uvicorn until the process receives
    SIGINT or SIGTERM.

    Note:
        This function will not configure any logging. Configuring logging
        according to the `logging` field of
        [`RelayServingConfig`][peerpair.relay.config.RelayServingConfig] is
        the responsibility of the caller.

    Args:
        config: Serving configuration.
    """
    service = RelayService(
        create_storage(config),
        stale_after=config.stale_after,
    )
    app = create_app(service, max_content_length=config.max_content_length)

    server_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        access_log=False,
    )
    server = uvicorn.Server(server_config)

    session_logger_task: asyncio.Task[None] | None = None
    if config.logging.session_log_interval is not None:  # pragma: no branch
        level = (
            config.logging.default_level
            if isinstance(config.logging.default_level, int)
            else logging.getLevelName(config.logging.default_level)
        )
        session_logger_task = periodic_session_logger(
            service,
            config.logging.session_log_interval,
            level=level,
        )

    config_repr = pprint.pformat(config, indent=2)
    logger.info(f'Relay serving configuration:\n{config_repr}')
    logger.info(f'Relay server listening on {config.host}:{config.port}')
    logger.info('Use ctrl-C to stop')

    try:
        await server.serve()
    finally:
        if session_logger_task is not None:  # pragma: no branch
            session_logger_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await session_logger_task

    logger.info('Relay server shutdown')


@click.command()
@click.option('--config', '-c', 'config_path', help='Configuration file.')
@click.option('--host', metavar='ADDR', help='Interface to bind to.')
@click.option('--port', type=int, metavar='PORT', help='Port to bind to.')
@click.option('--database', metavar='PATH', help='SQLite database file.')
@click.option('--log-dir', metavar='PATH', help='Logging directory.')
@click.option(
    '--log-level',
    type=click.Choice(
        ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'],
        case_sensitive=False,
    ),
    help='Minimum logging level.',
)
@click.option(
    '--uvloop/--no-uvloop',
    'use_uvloop',
    default=True,
    help='Install uvloop as the default event loop implementation.',
)
def cli(
    config_path: str | None,
    host: str | None,
    port: int | None,
    database: str | None,
    log_dir: str | None,
    log_level: str | None,
    use_uvloop: bool,
) -> None:
    """Run a relay server instance.

    The relay server is used by displays and controllers to exchange
    handshake messages before their peer-to-peer channel opens. If no
    configuration file is provided, a default configuration will be
    created from
    [`RelayServingConfig()`][peerpair.relay.config.RelayServingConfig].
    The remaining CLI options will override the options provided in the
    configuration object.
    """
    config = (
        RelayServingConfig()
        if config_path is None
        else RelayServingConfig.from_toml(config_path)
    )

    # Override config with CLI options if given
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if database is not None:
        config.database_path = database
    if log_dir is not None:
        config.logging.log_dir = log_dir
    if log_level is not None:
        config.logging.default_level = logging.getLevelName(log_level)

    configure_logging(config.logging)

    if use_uvloop:  # pragma: no cover
        logger.info('Installing uvloop as default event loop')
        uvloop.install()

    asyncio.run(serve(config))
