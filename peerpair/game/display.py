"""Display side of the snake game."""
from __future__ import annotations

import dataclasses
import logging
import random
from typing import Sequence

from pyee import EventEmitter

from peerpair.game.logic import GameState
from peerpair.game.logic import GRID_SIZE
from peerpair.game.logic import initial_state
from peerpair.game.logic import TICK_INTERVAL
from peerpair.game.logic import tick
from peerpair.game.messages import decode_controller_message
from peerpair.game.messages import Direction
from peerpair.game.messages import DirectionMessage
from peerpair.game.messages import encode_message
from peerpair.game.messages import GameStateMessage
from peerpair.game.messages import GameStatus
from peerpair.game.messages import MessageDecodeError
from peerpair.game.messages import ResetMessage
from peerpair.negotiation.display import DisplayNegotiator
from peerpair.negotiation.events import ConnectionStatus
from peerpair.negotiation.events import log_event
from peerpair.negotiation.events import Observer
from peerpair.negotiation.peer import AiortcPeer
from peerpair.negotiation.peer import DEFAULT_ICE_SERVERS
from peerpair.negotiation.peer import PeerFactory
from peerpair.relay.client import RelayClient
from peerpair.utils.tasks import PeriodicTask

logger = logging.getLogger(__name__)


class DisplayGame:
    """Snake game driven by a remote controller.

    The game waits until a controller connects and sends a reset. While
    playing, the game advances every `tick_interval` seconds and sends a
    snapshot of its status and score to the controller after each tick.
    Losing the controller stops the game.

    The `state` event is emitted on
    [`events`][peerpair.game.display.DisplayGame.events] with the new
    [`GameState`][peerpair.game.logic.GameState] whenever the state changes.

    Args:
        relay: Client used to reach the relay.
        poll_interval: Seconds between polls for joined controllers.
        tick_interval: Seconds between game ticks.
        grid_size: Width and height of the grid.
        peer_factory: Callable used to create local peers.
        ice_servers: STUN/TURN server URLs.
        observer: Callable invoked with every negotiation event.
        rng: Random number generator used to place food.
    """

    def __init__(
        self,
        relay: RelayClient,
        *,
        poll_interval: float = 1.0,
        tick_interval: float = TICK_INTERVAL,
        grid_size: int = GRID_SIZE,
        peer_factory: PeerFactory = AiortcPeer,
        ice_servers: Sequence[str] = DEFAULT_ICE_SERVERS,
        observer: Observer = log_event,
        rng: random.Random | None = None,
    ) -> None:
        self._tick_interval = tick_interval
        self._grid_size = grid_size
        self._rng = random.Random() if rng is None else rng
        self._state = initial_state(grid_size, self._rng)
        self._pending: Direction | None = None
        self._ticker: PeriodicTask | None = None

        self.events = EventEmitter()

        self.negotiator = DisplayNegotiator(
            relay,
            poll_interval=poll_interval,
            initial_payload=self.snapshot,
            peer_factory=peer_factory,
            ice_servers=ice_servers,
            observer=observer,
        )
        self.negotiator.events.on('data', self._on_data)
        self.negotiator.events.on('status', self._on_status)

    @property
    def state(self) -> GameState:
        """Current game state."""
        return self._state

    @property
    def playing(self) -> bool:
        """Game ticks are running."""
        return self._ticker is not None

    async def start(self) -> None:
        """Start waiting for a controller."""
        await self.negotiator.start()

    async def close(self) -> None:
        """Stop the game and close the connection to the controller."""
        self._stop_ticker()
        await self.negotiator.close()

    def snapshot(self) -> str:
        """Encode the current status and score as a message."""
        return encode_message(
            GameStateMessage(
                status=self._state.status,
                score=self._state.score,
            ),
        )

    def reset(self) -> None:
        """Start a new game."""
        self._set_state(
            dataclasses.replace(
                initial_state(self._grid_size, self._rng),
                status=GameStatus.PLAYING,
            ),
        )
        self._pending = None
        self._stop_ticker()
        self._ticker = PeriodicTask(
            self._tick,
            self._tick_interval,
            name='display-game-ticker',
        )
        self._ticker.start()
        self.negotiator.send(self.snapshot())

    async def _tick(self) -> None:
        direction, self._pending = self._pending, None
        self._set_state(tick(self._state, direction, self._rng))
        if self._state.status is GameStatus.GAMEOVER:
            logger.info(f'Game over with score {self._state.score}')
            self._stop_ticker()
        self.negotiator.send(self.snapshot())

    def _on_data(self, payload: str) -> None:
        try:
            message = decode_controller_message(payload)
        except MessageDecodeError as e:
            logger.warning(f'Dropping malformed controller message: {e}')
            return

        if isinstance(message, DirectionMessage):
            self._pending = message.direction
        elif isinstance(message, ResetMessage):  # pragma: no branch
            logger.info('Controller requested a new game')
            self.reset()

    def _on_status(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.DISCONNECTED:
            self._stop_ticker()
            self._pending = None
            self._set_state(initial_state(self._grid_size, self._rng))

    def _set_state(self, state: GameState) -> None:
        self._state = state
        self.events.emit('state', state)

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
