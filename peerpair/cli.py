"""`peerpair` command-line interface.

`peerpair display` runs a headless display which logs the connection status
and the score. `peerpair controller` steers the display with commands read
line by line from stdin.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any
from typing import Callable
from typing import ClassVar
from typing import TextIO

import click

import peerpair
from peerpair.config import ClientConfig
from peerpair.context import PairingContext
from peerpair.game.controller import ControllerGame
from peerpair.game.logic import GameState
from peerpair.game.messages import Direction
from peerpair.game.messages import GameStatus
from peerpair.negotiation.events import ConnectionStatus

logger = logging.getLogger(__name__)

QUIT_COMMANDS = frozenset({'quit', 'exit'})


class _CLIFormatter(logging.Formatter):
    """Custom format for CLI printing.

    Source: https://stackoverflow.com/questions/1343227
    """

    grey = '\x1b[0;30m'
    red = '\x1b[0;31m'
    green = '\x1b[0;32m'
    yellow = '\x1b[0;33m'
    cyan = '\x1b[0;36m'
    bold_red = '\x1b[1;31m'
    reset = '\x1b[0m'

    FORMATS: ClassVar[dict[int, str]] = {
        logging.DEBUG: f'{cyan}DEBUG:{reset} %(message)s',
        logging.INFO: f'{green}INFO:{reset} %(message)s',
        logging.WARNING: f'{yellow}WARNING:{reset} %(message)s',
        logging.ERROR: f'{red}ERROR:{reset} %(message)s',
        logging.CRITICAL: f'{bold_red}CRITICAL:{reset} %(message)s',
    }

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover
        formatter = logging.Formatter(self.FORMATS[record.levelno])
        return formatter.format(record)


def _client_options(function: Callable[..., Any]) -> Callable[..., Any]:
    function = click.option(
        '--log-level',
        default='INFO',
        type=click.Choice(
            ['ERROR', 'WARNING', 'INFO', 'DEBUG'],
            case_sensitive=False,
        ),
        help='Minimum logging level.',
    )(function)
    function = click.option(
        '--relay',
        'relay_address',
        metavar='ADDR',
        help='Relay server address. Overrides the configuration file.',
    )(function)
    function = click.option(
        '--config',
        '-c',
        'config_path',
        type=click.Path(exists=True, dir_okay=False),
        help='Client configuration file.',
    )(function)
    return function


def load_config(
    config_path: str | None,
    relay_address: str | None,
) -> ClientConfig:
    """Load the client configuration and apply CLI overrides.

    Raises:
        click.BadParameter: If the relay address is invalid.
    """
    config = (
        ClientConfig()
        if config_path is None
        else ClientConfig.from_toml(config_path)
    )
    if relay_address is not None:
        try:
            config = config.model_copy(
                update={
                    'relay_address': ClientConfig(
                        relay_address=relay_address,
                    ).relay_address,
                },
            )
        except ValueError as e:
            raise click.BadParameter(
                str(e),
                param_hint='--relay',
            ) from e
    return config


def _configure_logging(log_level: str) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_CLIFormatter())
    logging.basicConfig(level=log_level, handlers=[handler])


def handle_command(game: ControllerGame, command: str) -> bool:
    """Forward one command line to the display.

    Args:
        game: Controller game to steer.
        command: One of `up`, `down`, `left`, `right`, `reset`, `quit`,
            or `exit`. Case and surrounding whitespace are ignored.

    Returns:
        `False` if the command asked to quit, otherwise `True`.
    """
    command = command.strip().lower()
    if command == '':
        return True
    if command in QUIT_COMMANDS:
        return False

    if command == 'reset':
        sent = game.send_reset()
    else:
        try:
            direction = Direction(command)
        except ValueError:
            click.echo(
                f'Unknown command {command!r}. Expected one of up, down, '
                'left, right, reset, or quit.',
                err=True,
            )
            return True
        sent = game.send_direction(direction)

    if not sent:
        click.echo('Not connected to a display yet.', err=True)
    return True


async def run_display(
    config: ClientConfig,
    stop: asyncio.Future[None] | None = None,
) -> None:
    """Run a display until stopped.

    Args:
        config: Client configuration.
        stop: Optional future which stops the display when done. If `None`,
            the display runs until SIGINT or SIGTERM.
    """
    loop = asyncio.get_running_loop()
    handle_signals = stop is None
    if stop is None:
        stop = loop.create_future()
        loop.add_signal_handler(signal.SIGINT, stop.set_result, None)
        loop.add_signal_handler(signal.SIGTERM, stop.set_result, None)

    async with PairingContext(config) as context:
        game = context.display()
        last: list[tuple[GameStatus, int]] = []

        def _on_status(status: ConnectionStatus) -> None:
            logger.info(f'Controller status: {status.value}')

        def _on_state(state: GameState) -> None:
            current = (state.status, state.score)
            if not last or last[-1] != current:
                logger.info(f'Game {state.status.value}, score {state.score}')
                last[:] = [current]

        game.negotiator.events.on('status', _on_status)
        game.events.on('state', _on_state)

        await game.start()
        logger.info(
            f'Display waiting for a controller at {config.relay_address}',
        )
        await stop

    if handle_signals:
        loop.remove_signal_handler(signal.SIGINT)
        loop.remove_signal_handler(signal.SIGTERM)


async def run_controller(
    config: ClientConfig,
    stream: TextIO | None = None,
) -> None:
    """Run a controller reading commands from a stream until EOF or quit.

    Args:
        config: Client configuration.
        stream: Text stream to read commands from. Defaults to stdin.
    """
    stream = sys.stdin if stream is None else stream
    loop = asyncio.get_running_loop()

    async with PairingContext(config) as context:
        game = context.controller()

        def _on_status(status: ConnectionStatus) -> None:
            click.echo(f'Connection: {status.value}')

        def _on_state(status: GameStatus, score: int) -> None:
            click.echo(f'Game {status.value}, score {score}')

        game.negotiator.events.on('status', _on_status)
        game.events.on('state', _on_state)

        await game.start()
        while True:
            line = await loop.run_in_executor(None, stream.readline)
            if not line or not handle_command(game, line):
                break


@click.group()
def cli() -> None:
    """Pair a display and a controller over a peer-to-peer channel."""
    pass


@cli.command()
def version() -> None:
    """Show the PeerPair version."""
    click.echo(f'PeerPair v{peerpair.__version__}')


@cli.command()
@_client_options
def display(
    config_path: str | None,
    relay_address: str | None,
    log_level: str,
) -> None:
    """Run a headless display."""
    config = load_config(config_path, relay_address)
    _configure_logging(log_level)
    asyncio.run(run_display(config))


@cli.command()
@_client_options
def controller(
    config_path: str | None,
    relay_address: str | None,
    log_level: str,
) -> None:
    """Steer a display with commands read from stdin.

    Each line is one of `up`, `down`, `left`, `right`, `reset`, or `quit`.
    """
    config = load_config(config_path, relay_address)
    _configure_logging(log_level)
    asyncio.run(run_controller(config))
