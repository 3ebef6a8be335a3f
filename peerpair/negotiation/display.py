"""Display role negotiation engine.

The display is the initiator. Each attempt creates a fresh local peer,
publishes its offer as a new relay session, and polls the session's joined
connections until the data channel opens. The first joined connection is
accepted; later ones are ignored. Losing the channel tears down the session
and starts over with a new offer.
"""
from __future__ import annotations

import dataclasses
import enum
import functools
import logging
from typing import Callable
from typing import Sequence

from peerpair.negotiation.base import Cleanup
from peerpair.negotiation.base import Negotiator
from peerpair.negotiation.events import ConnectionStatus
from peerpair.negotiation.events import EventKind
from peerpair.negotiation.events import log_event
from peerpair.negotiation.events import Observer
from peerpair.negotiation.peer import AiortcPeer
from peerpair.negotiation.peer import DEFAULT_ICE_SERVERS
from peerpair.negotiation.peer import PeerFactory
from peerpair.relay.client import RelayClient
from peerpair.relay.exceptions import RelayError
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import JoinedConnection
from peerpair.relay.messages import SessionDescription

logger = logging.getLogger(__name__)


class DisplayPhase(enum.Enum):
    """Phases of the display negotiation engine."""

    IDLE = 'idle'
    PUBLISHING = 'publishing'
    AWAITING_ANSWER = 'awaiting_answer'
    CONNECTED = 'connected'
    CLOSED = 'closed'


@dataclasses.dataclass
class RemotePeer:
    """Delivery state of one joined connection.

    Attributes:
        connection_id: Identifier of the joined connection.
        cursor: Number of the connection's candidates already applied.
        connected: Data channel with this connection is open.
        ignored: Connection joined after another one was accepted.
    """

    connection_id: str
    cursor: int = 0
    connected: bool = False
    ignored: bool = False


class DisplayNegotiator(Negotiator):
    """Negotiation engine of the display role.

    Example:
        ```python
        from peerpair.negotiation.display import DisplayNegotiator
        from peerpair.relay.client import HTTPRelayClient

        relay = HTTPRelayClient('http://localhost:8710')
        display = DisplayNegotiator(relay)
        display.events.on('data', print)
        await display.start()
        ...
        display.send('hello')
        await display.close()
        ```

    Args:
        relay: Client used to reach the relay.
        poll_interval: Seconds between polls of the joined connections.
            Also used as the delay before retrying after a failed publish.
        initial_payload: Optional callable producing the payload sent to
            the controller as soon as the channel opens.
        peer_factory: Callable used to create local peers.
        ice_servers: STUN/TURN server URLs passed to the peer factory.
        observer: Callable invoked with every negotiation event.
    """

    role = 'display'

    def __init__(
        self,
        relay: RelayClient,
        *,
        poll_interval: float = 1.0,
        initial_payload: Callable[[], str] | None = None,
        peer_factory: PeerFactory = AiortcPeer,
        ice_servers: Sequence[str] = DEFAULT_ICE_SERVERS,
        observer: Observer = log_event,
    ) -> None:
        super().__init__(
            relay,
            initiator=True,
            idle=DisplayPhase.IDLE,
            closed=DisplayPhase.CLOSED,
            peer_factory=peer_factory,
            ice_servers=ice_servers,
            retry_delay=poll_interval,
            observer=observer,
        )
        self._poll_interval = poll_interval
        self._initial_payload = initial_payload
        self._session_id: str | None = None
        self._remotes: dict[str, RemotePeer] = {}
        self._accepted: RemotePeer | None = None

    @property
    def phase(self) -> DisplayPhase:
        """Current phase of the engine."""
        return self._phase  # type: ignore[return-value]

    @property
    def session_id(self) -> str | None:
        """Identifier of the published session, if any."""
        return self._session_id

    @property
    def remotes(self) -> dict[str, RemotePeer]:
        """Delivery state of each joined connection seen this attempt."""
        return dict(self._remotes)

    @property
    def connected(self) -> bool:
        """Data channel with the accepted controller is open."""
        return self._accepted is not None and self._accepted.connected

    async def _begin(self) -> None:
        epoch = self._epoch
        self._enter(DisplayPhase.PUBLISHING, ConnectionStatus.WAITING)
        peer = self._create_peer()
        try:
            await peer.start()
        except Exception as e:
            self._fail(
                epoch,
                f'failed to create offer: {e!r}',
                delay=self._poll_interval,
            )

    def _reset(self) -> Cleanup | None:
        session_id = self._session_id
        self._session_id = None
        self._remotes.clear()
        self._accepted = None
        if session_id is None:
            return None
        return functools.partial(self._teardown, session_id)

    async def _teardown(self, session_id: str) -> None:
        try:
            await self._relay.teardown_session(session_id)
        except RelayError as e:
            logger.warning(
                f'{self._log_prefix}: failed to tear down session '
                f'{session_id}: {e}',
            )
        else:
            self._observe(
                EventKind.RELAY_CALL,
                'tore down session',
                session_id=session_id,
            )

    async def _send_candidate(
        self,
        key: str,
        candidate: IceCandidate,
    ) -> None:
        await self._relay.append_session_candidate(key, candidate)
        self._observe(
            EventKind.RELAY_CALL,
            'appended session candidate',
            session_id=key,
        )

    async def _on_description(
        self,
        epoch: int,
        description: SessionDescription,
    ) -> None:
        if description.type != 'offer':
            raise ValueError(
                f'Display expected a local offer, got {description.type}.',
            )
        session_id = await self._relay.publish_session(description)
        if epoch != self._epoch:
            # The attempt ended while publishing so nobody owns the session
            await self._teardown(session_id)
            return

        self._session_id = session_id
        self._observe(
            EventKind.RELAY_CALL,
            'published session',
            session_id=session_id,
        )
        self._enter(DisplayPhase.AWAITING_ANSWER, ConnectionStatus.WAITING)
        self._start_timer('answer-poll', self._poll_interval, self._poll)
        assert self._outbox is not None
        await self._outbox.bind(session_id)

    async def _poll(self, epoch: int) -> None:
        session_id = self._session_id
        if (
            session_id is None
            or self.phase is not DisplayPhase.AWAITING_ANSWER
        ):
            return
        connections = await self._relay.list_joined_connections(session_id)
        for connection in connections:
            if epoch != self._epoch:
                return
            await self._deliver(epoch, connection)

    async def _deliver(self, epoch: int, connection: JoinedConnection) -> None:
        remote = self._remotes.get(connection.connection_id)
        if remote is None:
            remote = RemotePeer(connection.connection_id)
            self._remotes[connection.connection_id] = remote
            if self._accepted is not None:
                remote.ignored = True
                logger.warning(
                    f'{self._log_prefix}: ignoring connection '
                    f'{connection.connection_id} because connection '
                    f'{self._accepted.connection_id} was already accepted',
                )
                return

            self._accepted = remote
            self._set_status(ConnectionStatus.CONNECTING)
            logger.info(
                f'{self._log_prefix}: accepted connection '
                f'{connection.connection_id}',
            )
            assert self._peer is not None
            await self._peer.apply_description(connection.answer)
            if epoch != self._epoch:
                return

        if remote.ignored:
            return

        for candidate in connection.candidates[remote.cursor :]:
            assert self._peer is not None
            await self._peer.add_candidate(candidate)
            if epoch != self._epoch:
                return
            remote.cursor += 1

    async def _on_open(self, epoch: int) -> None:
        self._stop_timer('answer-poll')
        if self._accepted is not None:  # pragma: no branch
            self._accepted.connected = True
        self._enter(DisplayPhase.CONNECTED, ConnectionStatus.CONNECTED)
        if self._initial_payload is not None:
            self.send(self._initial_payload())
