"""Composition root for display and controller clients.

A [`PairingContext`][peerpair.context.PairingContext] owns the relay client
and the games of one process. Each is constructed on first use and the same
instance is returned afterwards.
"""
from __future__ import annotations

import logging
import sys
from types import TracebackType

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

from peerpair.config import ClientConfig
from peerpair.game.controller import ControllerGame
from peerpair.game.display import DisplayGame
from peerpair.negotiation.events import log_event
from peerpair.negotiation.events import Observer
from peerpair.negotiation.peer import AiortcPeer
from peerpair.negotiation.peer import PeerFactory
from peerpair.relay.client import HTTPRelayClient
from peerpair.relay.client import RelayClient

logger = logging.getLogger(__name__)


class PairingContext:
    """Lazily constructed clients of one process.

    Example:
        ```python
        from peerpair.config import ClientConfig
        from peerpair.context import PairingContext

        async with PairingContext(ClientConfig()) as context:
            await context.display().start()
            ...
        ```

    Args:
        config: Client configuration.
        relay: Optional relay client to use instead of an
            [`HTTPRelayClient`][peerpair.relay.client.HTTPRelayClient] to
            `config.relay_address`. A provided client is not closed by
            [`close()`][peerpair.context.PairingContext.close].
        peer_factory: Callable used to create local peers.
        observer: Callable invoked with every negotiation event.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        relay: RelayClient | None = None,
        peer_factory: PeerFactory = AiortcPeer,
        observer: Observer = log_event,
    ) -> None:
        self.config = config
        self._relay = relay
        self._owns_relay = relay is None
        self._peer_factory = peer_factory
        self._observer = observer
        self._display: DisplayGame | None = None
        self._controller: ControllerGame | None = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_traceback: TracebackType | None,
    ) -> None:
        await self.close()

    def relay(self) -> RelayClient:
        """Get the relay client."""
        if self._relay is None:
            self._relay = HTTPRelayClient(
                self.config.relay_address,
                timeout=self.config.request_timeout,
            )
            logger.debug(
                f'Created relay client for {self.config.relay_address}',
            )
        return self._relay

    def display(self) -> DisplayGame:
        """Get the display game."""
        if self._display is None:
            self._display = DisplayGame(
                self.relay(),
                poll_interval=self.config.display.poll_interval,
                tick_interval=self.config.display.tick_interval,
                grid_size=self.config.display.grid_size,
                peer_factory=self._peer_factory,
                ice_servers=self.config.ice_servers,
                observer=self._observer,
            )
        return self._display

    def controller(self) -> ControllerGame:
        """Get the controller game."""
        if self._controller is None:
            self._controller = ControllerGame(
                self.relay(),
                discover_interval=self.config.controller.discover_interval,
                candidate_interval=self.config.controller.candidate_interval,
                join_timeout=self.config.controller.join_timeout,
                peer_factory=self._peer_factory,
                ice_servers=self.config.ice_servers,
                observer=self._observer,
            )
        return self._controller

    async def close(self) -> None:
        """Close every constructed client."""
        if self._display is not None:
            await self._display.close()
            self._display = None
        if self._controller is not None:
            await self._controller.close()
            self._controller = None
        if self._relay is not None and self._owns_relay:
            await self._relay.close()
            self._relay = None
