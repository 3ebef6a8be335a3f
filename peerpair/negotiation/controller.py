"""Controller role negotiation engine.

The controller is the responder. It polls the relay for the most recently
published session, answers its offer with a fresh local peer, joins the
session with that answer, and polls the display's candidates until the data
channel opens. Losing the channel discards everything and discovery starts
again; a controller never resumes a stale session.
"""
from __future__ import annotations

import enum
import logging
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
from peerpair.relay.messages import DiscoveredSession
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import SessionDescription

logger = logging.getLogger(__name__)

JOIN_TIMEOUT = 30.0
"""Default seconds within which a joined session must connect."""


class ControllerPhase(enum.Enum):
    """Phases of the controller negotiation engine."""

    IDLE = 'idle'
    DISCOVERING = 'discovering'
    ANSWERING = 'answering'
    AWAITING_CONNECT = 'awaiting_connect'
    CONNECTED = 'connected'
    CLOSED = 'closed'


class ControllerNegotiator(Negotiator):
    """Negotiation engine of the controller role.

    Args:
        relay: Client used to reach the relay.
        discover_interval: Seconds between polls for a published session.
        candidate_interval: Seconds between polls for the display's
            candidates.
        join_timeout: Seconds after discovering a session within which the
            channel must open. Otherwise the attempt is abandoned and
            discovery starts again. If `None`, an attempt waits forever.
        peer_factory: Callable used to create local peers.
        ice_servers: STUN/TURN server URLs passed to the peer factory.
        observer: Callable invoked with every negotiation event.
    """

    role = 'controller'

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
        super().__init__(
            relay,
            initiator=False,
            idle=ControllerPhase.IDLE,
            closed=ControllerPhase.CLOSED,
            peer_factory=peer_factory,
            ice_servers=ice_servers,
            retry_delay=discover_interval,
            observer=observer,
        )
        self._discover_interval = discover_interval
        self._candidate_interval = candidate_interval
        self._join_timeout = join_timeout
        self._session_id: str | None = None
        self._connection_id: str | None = None
        self._cursor = 0
        self._last_payload: str | None = None

    @property
    def phase(self) -> ControllerPhase:
        """Current phase of the engine."""
        return self._phase  # type: ignore[return-value]

    @property
    def session_id(self) -> str | None:
        """Identifier of the session being answered, if any."""
        return self._session_id

    @property
    def connection_id(self) -> str | None:
        """Identifier of the joined connection, if any."""
        return self._connection_id

    @property
    def cursor(self) -> int:
        """Number of the display's candidates already fetched."""
        return self._cursor

    @property
    def last_payload(self) -> str | None:
        """Last payload received from the display this attempt."""
        return self._last_payload

    async def _begin(self) -> None:
        self._enter(ControllerPhase.DISCOVERING, ConnectionStatus.WAITING)
        self._start_timer('discover', self._discover_interval, self._discover)

    def _reset(self) -> Cleanup | None:
        self._session_id = None
        self._connection_id = None
        self._cursor = 0
        self._last_payload = None
        return None

    async def _discover(self, epoch: int) -> None:
        if self._peer is not None:
            return
        session = await self._relay.discover_latest_session()
        if epoch != self._epoch or session is None:
            return
        self._observe(
            EventKind.RELAY_CALL,
            'discovered session',
            session_id=session.session_id,
        )
        self._stop_timer('discover')
        await self._answer(epoch, session)

    async def _answer(self, epoch: int, session: DiscoveredSession) -> None:
        self._session_id = session.session_id
        self._enter(ControllerPhase.ANSWERING, ConnectionStatus.CONNECTING)
        peer = self._create_peer()
        await peer.apply_description(session.offer)
        if epoch != self._epoch:
            return

        # Candidates in the snapshot are never fetched again
        self._cursor = len(session.candidates)
        for candidate in session.candidates:
            await peer.add_candidate(candidate)
            if epoch != self._epoch:
                return

        self._start_timer(
            'candidates',
            self._candidate_interval,
            self._poll_candidates,
        )
        if self._join_timeout is not None:
            self._start_timer(
                'join-timeout',
                self._join_timeout,
                self._on_join_timeout,
            )

    async def _poll_candidates(self, epoch: int) -> None:
        session_id = self._session_id
        if self.phase is ControllerPhase.CONNECTED or session_id is None:
            self._stop_timer('candidates')
            return
        page = await self._relay.list_connection_candidates_since(
            session_id,
            self._cursor,
        )
        if epoch != self._epoch:
            return
        for candidate in page.candidates:
            assert self._peer is not None
            await self._peer.add_candidate(candidate)
            if epoch != self._epoch:
                return
        self._cursor = page.next_cursor

    async def _on_join_timeout(self, epoch: int) -> None:
        self._stop_timer('join-timeout')
        if self.phase is not ControllerPhase.CONNECTED:
            self._fail(
                epoch,
                f'channel did not open within {self._join_timeout}s',
            )

    async def _send_candidate(
        self,
        key: str,
        candidate: IceCandidate,
    ) -> None:
        await self._relay.append_connection_candidate(key, candidate)
        self._observe(
            EventKind.RELAY_CALL,
            'appended connection candidate',
            connection_id=key,
        )

    async def _on_description(
        self,
        epoch: int,
        description: SessionDescription,
    ) -> None:
        if description.type != 'answer':
            raise ValueError(
                'Controller expected a local answer, got '
                f'{description.type}.',
            )
        assert self._session_id is not None
        connection_id = await self._relay.join_session(
            self._session_id,
            description,
        )
        if epoch != self._epoch:
            return

        self._connection_id = connection_id
        self._observe(
            EventKind.RELAY_CALL,
            'joined session',
            session_id=self._session_id,
            connection_id=connection_id,
        )
        if self.phase is ControllerPhase.ANSWERING:
            self._enter(
                ControllerPhase.AWAITING_CONNECT,
                ConnectionStatus.CONNECTING,
            )
        assert self._outbox is not None
        await self._outbox.bind(connection_id)

    async def _on_open(self, epoch: int) -> None:
        self._stop_timer('candidates')
        self._stop_timer('join-timeout')
        self._enter(ControllerPhase.CONNECTED, ConnectionStatus.CONNECTED)

    async def _on_data(self, epoch: int, data: str) -> None:
        self._last_payload = data
        await super()._on_data(epoch, data)
