"""Controller side of the snake game."""
from __future__ import annotations

import logging
from typing import Sequence

from pyee import EventEmitter

from peerpair.game.messages import decode_display_message
from peerpair.game.messages import Direction
from peerpair.game.messages import DirectionMessage
from peerpair.game.messages import encode_message
from peerpair.game.messages import GameStatus
from peerpair.game.messages import MessageDecodeError
from peerpair.game.messages import ResetMessage
from peerpair.negotiation.controller import ControllerNegotiator
from peerpair.negotiation.controller import JOIN_TIMEOUT
from peerpair.negotiation.events import ConnectionStatus
from peerpair.negotiation.events import log_event
from peerpair.negotiation.events import Observer
from peerpair.negotiation.peer import AiortcPeer
from peerpair.negotiation.peer import DEFAULT_ICE_SERVERS
from peerpair.negotiation.peer import PeerFactory
from peerpair.relay.client import RelayClient

logger = logging.getLogger(__name__)


class ControllerGame:
    """Remote control for a snake game running on a display.

    Tracks the status and score reported by the display. The `state` event
    is emitted on [`events`][peerpair.game.controller.ControllerGame.events]
    with `(game_status, score)` whenever a snapshot is received.

    Args:
        relay: Client used to reach the relay.
        discover_interval: Seconds between polls for a published session.
        candidate_interval: Seconds between polls for the display's
            candidates.
        join_timeout: Seconds within which a joined session must connect
            before discovery starts again. If `None`, a join waits forever.
        peer_factory: Callable used to create local peers.
        ice_servers: STUN/TURN server URLs.
        observer: Callable invoked with every negotiation event.
    """

    def __init__(
        self,
        relay: RelayClient,
        *,
        discover_interval: float = 1.0,
        candidate_interval: float = 0.5,
        join_timeout: float | None = JOIN_TIMEOUT,
        peer_factory: PeerFactory = AiortcPeer,
        ice_servers: Sequence[str] = DEFAULT_ICE_SERVERS,
        observer: Observer = log_event,
    ) -> None:
        self.score = 0
        self.game_status = GameStatus.WAITING

        self.events = EventEmitter()

        self.negotiator = ControllerNegotiator(
            relay,
            discover_interval=discover_interval,
            candidate_interval=candidate_interval,
            join_timeout=join_timeout,
            peer_factory=peer_factory,
            ice_servers=ice_servers,
            observer=observer,
        )
        self.negotiator.events.on('data', self._on_data)
        self.negotiator.events.on('status', self._on_status)

    @property
    def connected(self) -> bool:
        """Data channel with the display is open."""
        return self.negotiator.status is ConnectionStatus.CONNECTED

    async def start(self) -> None:
        """Start looking for a display."""
        await self.negotiator.start()

    async def close(self) -> None:
        """Close the connection to the display."""
        await self.negotiator.close()

    def send_direction(self, direction: Direction) -> bool:
        """Ask the display to change direction.

        Returns:
            If the message was sent. Nothing is sent while disconnected.
        """
        return self.negotiator.send(
            encode_message(DirectionMessage(direction=direction)),
        )

    def send_reset(self) -> bool:
        """Ask the display to start a new game.

        Returns:
            If the message was sent. Nothing is sent while disconnected.
        """
        return self.negotiator.send(encode_message(ResetMessage()))

    def _on_data(self, payload: str) -> None:
        try:
            message = decode_display_message(payload)
        except MessageDecodeError as e:
            logger.warning(f'Dropping malformed display message: {e}')
            return

        self.game_status = message.status
        self.score = message.score
        self.events.emit('state', self.game_status, self.score)

    def _on_status(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.DISCONNECTED:
            self.game_status = GameStatus.WAITING
