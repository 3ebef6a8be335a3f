"""Relay service for exchanging handshake messages between peers.

The relay service is the only component both peers can reach before their
direct channel exists. A display publishes its offer as a session, a
controller discovers the latest session and joins it with an answer, and
both sides append trickled candidates to their own append-only logs which
the other side reads with a cursor. Once the peers are connected the relay
is no longer consulted.

Stale sessions are evicted at the start of every publish and discovery
call; there is no background reaper.
"""
from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

from peerpair.relay.exceptions import BadRequestError
from peerpair.relay.messages import CandidatePage
from peerpair.relay.messages import DiscoveredSession
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import JoinedConnection
from peerpair.relay.messages import SessionDescription
from peerpair.relay.storage import SignalingStorage

logger = logging.getLogger(__name__)

STALE_SESSION_SECONDS = 300
"""Sessions not updated within this many seconds are evicted."""


class RelayService:
    """Signaling relay service.

    Operations are independent; no transactional guarantee is made across
    calls beyond the atomicity of each stored record.

    Args:
        storage: Storage backend for signaling state.
        stale_after: Seconds after the last update that a session is
            considered stale.
        clock: Callable returning the current time in seconds.
    """

    def __init__(
        self,
        storage: SignalingStorage,
        *,
        stale_after: float = STALE_SESSION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._stale_after = stale_after
        self._clock = clock

    @property
    def storage(self) -> SignalingStorage:
        """Signaling state storage."""
        return self._storage

    async def evict_stale_sessions(self) -> int:
        """Delete sessions older than the staleness window.

        Returns:
            Number of sessions deleted.
        """
        evicted = await self._storage.evict_stale(
            self._clock() - self._stale_after,
        )
        if evicted > 0:
            logger.info(f'Evicted {evicted} stale session(s)')
        return evicted

    async def publish_session(self, offer: SessionDescription) -> str:
        """Publish a display's offer as a new session.

        Args:
            offer: Offer description of the display.

        Returns:
            Identifier of the new session.

        Raises:
            BadRequestError: If the description is not an offer.
        """
        if offer.type != 'offer':
            raise BadRequestError(
                'Expected session description of type offer, got '
                f'{offer.type}.',
            )

        await self.evict_stale_sessions()
        session_id = str(uuid.uuid4())
        await self._storage.create_session(session_id, offer, self._clock())
        logger.info(f'Published session {session_id}')
        return session_id

    async def append_session_candidate(
        self,
        session_id: str,
        candidate: IceCandidate,
    ) -> None:
        """Append a display-origin candidate to a session.

        Candidates for sessions which no longer exist are accepted but
        not recorded.
        """
        recorded = await self._storage.append_session_candidate(
            session_id,
            candidate,
            self._clock(),
        )
        if recorded:
            logger.debug(f'Appended candidate to session {session_id}')
        else:
            logger.debug(
                f'Dropped candidate for unknown session {session_id}',
            )

    async def list_joined_connections(
        self,
        session_id: str,
    ) -> list[JoinedConnection]:
        """List the connections joined to a session in join order."""
        return await self._storage.list_connections(session_id)

    async def discover_latest_session(self) -> DiscoveredSession | None:
        """Get the most recently published session.

        Returns:
            The session and a snapshot of its candidate log or `None` if no
            session is live.
        """
        await self.evict_stale_sessions()
        return await self._storage.latest_session()

    async def teardown_session(self, session_id: str) -> None:
        """Delete a session along with its joined connections and candidates.

        Deleting a session that is already gone is not an error.
        """
        await self._storage.delete_session(session_id)
        logger.info(f'Tore down session {session_id}')

    async def join_session(
        self,
        session_id: str,
        answer: SessionDescription,
    ) -> str:
        """Join a session with a controller's answer.

        The session is not required to still exist. A join against a
        session that was torn down is never seen by the display.

        Returns:
            Identifier of the joined connection.

        Raises:
            BadRequestError: If the description is not an answer.
        """
        if answer.type != 'answer':
            raise BadRequestError(
                'Expected session description of type answer, got '
                f'{answer.type}.',
            )

        connection_id = str(uuid.uuid4())
        await self._storage.create_connection(
            connection_id,
            session_id,
            answer,
            self._clock(),
        )
        logger.info(f'Connection {connection_id} joined session {session_id}')
        return connection_id

    async def append_connection_candidate(
        self,
        connection_id: str,
        candidate: IceCandidate,
    ) -> None:
        """Append a controller-origin candidate to a joined connection."""
        recorded = await self._storage.append_connection_candidate(
            connection_id,
            candidate,
        )
        if recorded:
            logger.debug(f'Appended candidate to connection {connection_id}')
        else:
            logger.debug(
                f'Dropped candidate for unknown connection {connection_id}',
            )

    async def list_connection_candidates_since(
        self,
        session_id: str,
        cursor: int,
    ) -> CandidatePage:
        """List display-origin candidates at or after a cursor.

        Returns:
            The candidates and `next_cursor = cursor + len(candidates)`.

        Raises:
            BadRequestError: If the cursor is negative.
        """
        if cursor < 0:
            raise BadRequestError(
                f'Cursor must be non-negative, got {cursor}.',
            )

        candidates = await self._storage.session_candidates(session_id, cursor)
        return CandidatePage(
            candidates=candidates,
            next_cursor=cursor + len(candidates),
        )

    async def session_count(self) -> int:
        """Get the number of live sessions."""
        return await self._storage.session_count()

    async def close(self) -> None:
        """Close the underlying storage."""
        await self._storage.close()
