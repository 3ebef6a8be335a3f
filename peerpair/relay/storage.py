"""Signaling state storage for the relay service.

The relay stores sessions (a display's offer), the candidate log of each
session, joined connections (a controller's answer), and the candidate log
of each joined connection. Candidate logs are append-only and their order is
assigned at insertion time.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import pathlib
from typing import Protocol
from typing import runtime_checkable

import aiosqlite

from peerpair.relay.messages import DiscoveredSession
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import JoinedConnection
from peerpair.relay.messages import SessionDescription

logger = logging.getLogger(__name__)


@runtime_checkable
class SignalingStorage(Protocol):
    """Relay storage protocol for signaling state."""

    async def create_session(
        self,
        session_id: str,
        offer: SessionDescription,
        timestamp: float,
    ) -> None:
        """Create a new session.

        Args:
            session_id: Unique identifier of the session.
            offer: Offer published by the display.
            timestamp: Creation time of the session.
        """
        ...

    async def delete_session(self, session_id: str) -> None:
        """Delete a session, its joined connections, and all candidates.

        Deleting a session that does not exist is not an error.
        """
        ...

    async def evict_stale(self, cutoff: float) -> int:
        """Delete sessions last updated before the cutoff.

        Joined connections created before the cutoff whose session no longer
        exists are deleted as well, and so is every candidate whose session or
        connection no longer exists.

        Returns:
            Number of sessions deleted.
        """
        ...

    async def latest_session(self) -> DiscoveredSession | None:
        """Get the most recently created session and its candidates."""
        ...

    async def session_count(self) -> int:
        """Get the number of sessions currently stored."""
        ...

    async def append_session_candidate(
        self,
        session_id: str,
        candidate: IceCandidate,
        timestamp: float,
    ) -> bool:
        """Append a candidate to the log of a session.

        Returns:
            If the candidate was recorded. Candidates for unknown sessions
            are dropped.
        """
        ...

    async def session_candidates(
        self,
        session_id: str,
        cursor: int = 0,
    ) -> list[IceCandidate]:
        """Get the candidates of a session at or after the cursor."""
        ...

    async def create_connection(
        self,
        connection_id: str,
        session_id: str,
        answer: SessionDescription,
        timestamp: float,
    ) -> None:
        """Create a joined connection.

        The session is not required to exist.
        """
        ...

    async def append_connection_candidate(
        self,
        connection_id: str,
        candidate: IceCandidate,
    ) -> bool:
        """Append a candidate to the log of a joined connection.

        Returns:
            If the candidate was recorded. Candidates for unknown
            connections are dropped.
        """
        ...

    async def list_connections(
        self,
        session_id: str,
    ) -> list[JoinedConnection]:
        """Get the joined connections of a session in join order."""
        ...

    async def close(self) -> None:
        """Close the storage."""
        ...


@dataclasses.dataclass
class _Session:
    offer: SessionDescription
    created: float
    updated: float
    candidates: list[IceCandidate] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class _Connection:
    session_id: str
    answer: SessionDescription
    created: float
    candidates: list[IceCandidate] = dataclasses.field(default_factory=list)


class MemoryStorage:
    """Simple dictionary-based storage for signaling state.

    Dictionaries preserve insertion order so the order sessions and
    connections were created in is also their iteration order.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, _Session] = {}
        self._connections: dict[str, _Connection] = {}

    async def create_session(
        self,
        session_id: str,
        offer: SessionDescription,
        timestamp: float,
    ) -> None:
        """Create a new session."""
        self._sessions[session_id] = _Session(
            offer=offer,
            created=timestamp,
            updated=timestamp,
        )

    async def delete_session(self, session_id: str) -> None:
        """Delete a session, its joined connections, and all candidates."""
        self._sessions.pop(session_id, None)
        for connection_id in [
            cid
            for cid, connection in self._connections.items()
            if connection.session_id == session_id
        ]:
            del self._connections[connection_id]

    async def evict_stale(self, cutoff: float) -> int:
        """Delete sessions last updated before the cutoff."""
        stale = [
            sid
            for sid, session in self._sessions.items()
            if session.updated < cutoff
        ]
        for session_id in stale:
            await self.delete_session(session_id)

        for connection_id in [
            cid
            for cid, connection in self._connections.items()
            if connection.session_id not in self._sessions
            and connection.created < cutoff
        ]:
            del self._connections[connection_id]

        return len(stale)

    async def latest_session(self) -> DiscoveredSession | None:
        """Get the most recently created session and its candidates."""
        if len(self._sessions) == 0:
            return None
        session_id = next(reversed(self._sessions))
        session = self._sessions[session_id]
        return DiscoveredSession(
            session_id=session_id,
            offer=session.offer,
            candidates=list(session.candidates),
        )

    async def session_count(self) -> int:
        """Get the number of sessions currently stored."""
        return len(self._sessions)

    async def append_session_candidate(
        self,
        session_id: str,
        candidate: IceCandidate,
        timestamp: float,
    ) -> bool:
        """Append a candidate to the log of a session."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.candidates.append(candidate)
        session.updated = timestamp
        return True

    async def session_candidates(
        self,
        session_id: str,
        cursor: int = 0,
    ) -> list[IceCandidate]:
        """Get the candidates of a session at or after the cursor."""
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return session.candidates[cursor:]

    async def create_connection(
        self,
        connection_id: str,
        session_id: str,
        answer: SessionDescription,
        timestamp: float,
    ) -> None:
        """Create a joined connection."""
        self._connections[connection_id] = _Connection(
            session_id=session_id,
            answer=answer,
            created=timestamp,
        )
        session = self._sessions.get(session_id)
        if session is not None:
            session.updated = timestamp

    async def append_connection_candidate(
        self,
        connection_id: str,
        candidate: IceCandidate,
    ) -> bool:
        """Append a candidate to the log of a joined connection."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        connection.candidates.append(candidate)
        return True

    async def list_connections(
        self,
        session_id: str,
    ) -> list[JoinedConnection]:
        """Get the joined connections of a session in join order."""
        return [
            JoinedConnection(
                connection_id=connection_id,
                answer=connection.answer,
                candidates=list(connection.candidates),
            )
            for connection_id, connection in self._connections.items()
            if connection.session_id == session_id
        ]

    async def close(self) -> None:
        """Clear all stored state."""
        self._sessions.clear()
        self._connections.clear()


_SCHEMA = (
    'CREATE TABLE IF NOT EXISTS sessions ('
    'seq INTEGER PRIMARY KEY AUTOINCREMENT, '
    'session_id TEXT UNIQUE NOT NULL, '
    'offer TEXT NOT NULL, '
    'created REAL NOT NULL, '
    'updated REAL NOT NULL)',
    'CREATE TABLE IF NOT EXISTS session_candidates ('
    'seq INTEGER PRIMARY KEY AUTOINCREMENT, '
    'session_id TEXT NOT NULL, '
    'candidate TEXT NOT NULL)',
    'CREATE TABLE IF NOT EXISTS connections ('
    'seq INTEGER PRIMARY KEY AUTOINCREMENT, '
    'connection_id TEXT UNIQUE NOT NULL, '
    'session_id TEXT NOT NULL, '
    'answer TEXT NOT NULL, '
    'created REAL NOT NULL)',
    'CREATE TABLE IF NOT EXISTS connection_candidates ('
    'seq INTEGER PRIMARY KEY AUTOINCREMENT, '
    'connection_id TEXT NOT NULL, '
    'candidate TEXT NOT NULL)',
    'CREATE INDEX IF NOT EXISTS session_candidates_owner '
    'ON session_candidates (session_id, seq)',
    'CREATE INDEX IF NOT EXISTS connections_owner '
    'ON connections (session_id, seq)',
    'CREATE INDEX IF NOT EXISTS connection_candidates_owner '
    'ON connection_candidates (connection_id, seq)',
)


class SQLiteStorage:
    """SQLite storage for signaling state.

    Sequence numbers are assigned by `AUTOINCREMENT` primary keys so
    ordering by them reproduces insertion order.

    Every operation holds a lock for its whole duration because operations
    are several statements on one shared connection. Otherwise a candidate
    appended while its session is deleted could be inserted after the
    cascade and outlive its owner.

    Args:
        database_path: Path to database file.
    """

    def __init__(self, database_path: str | pathlib.Path = ':memory:') -> None:
        if database_path == ':memory:':
            self.database_path = database_path
        else:
            path = pathlib.Path(database_path).expanduser().resolve()
            self.database_path = str(path)

        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def db(self) -> aiosqlite.Connection:
        """Get the database connection object.

        Note:
            Callers other than the operations of this class must not use the
            connection while any operation is in progress.
        """
        if self._db is None:
            self._db = await aiosqlite.connect(self.database_path)
            for statement in _SCHEMA:
                await self._db.execute(statement)
            await self._db.commit()
        return self._db

    async def create_session(
        self,
        session_id: str,
        offer: SessionDescription,
        timestamp: float,
    ) -> None:
        """Create a new session."""
        async with self._lock:
            db = await self.db()
            await db.execute(
                'INSERT INTO sessions (session_id, offer, created, updated) '
                'VALUES (?, ?, ?, ?)',
                (session_id, offer.model_dump_json(), timestamp, timestamp),
            )
            await db.commit()

    async def delete_session(self, session_id: str) -> None:
        """Delete a session, its joined connections, and all candidates."""
        async with self._lock:
            db = await self.db()
            await self._delete_session(db, session_id)
            await db.commit()

    async def _delete_session(
        self,
        db: aiosqlite.Connection,
        session_id: str,
    ) -> None:
        await db.execute(
            'DELETE FROM connection_candidates WHERE connection_id IN '
            '(SELECT connection_id FROM connections WHERE session_id=?)',
            (session_id,),
        )
        await db.execute(
            'DELETE FROM connections WHERE session_id=?',
            (session_id,),
        )
        await db.execute(
            'DELETE FROM session_candidates WHERE session_id=?',
            (session_id,),
        )
        await db.execute(
            'DELETE FROM sessions WHERE session_id=?',
            (session_id,),
        )

    async def evict_stale(self, cutoff: float) -> int:
        """Delete sessions last updated before the cutoff.

        Candidate rows whose session or connection no longer exists are
        deleted as well, whatever their age.
        """
        async with self._lock:
            db = await self.db()
            async with db.execute(
                'SELECT session_id FROM sessions WHERE updated < ?',
                (cutoff,),
            ) as cursor:
                stale = [row[0] for row in await cursor.fetchall()]

            for session_id in stale:
                await self._delete_session(db, session_id)

            await db.execute(
                'DELETE FROM connections WHERE created < ? AND '
                'session_id NOT IN (SELECT session_id FROM sessions)',
                (cutoff,),
            )
            await db.execute(
                'DELETE FROM connection_candidates WHERE connection_id NOT IN '
                '(SELECT connection_id FROM connections)',
            )
            await db.execute(
                'DELETE FROM session_candidates WHERE session_id NOT IN '
                '(SELECT session_id FROM sessions)',
            )
            await db.commit()
            return len(stale)

    async def latest_session(self) -> DiscoveredSession | None:
        """Get the most recently created session and its candidates."""
        async with self._lock:
            db = await self.db()
            async with db.execute(
                'SELECT session_id, offer FROM sessions '
                'ORDER BY seq DESC LIMIT 1',
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            session_id, offer = row
            return DiscoveredSession(
                session_id=session_id,
                offer=SessionDescription.model_validate_json(offer),
                candidates=await self._session_candidates(db, session_id, 0),
            )

    async def session_count(self) -> int:
        """Get the number of sessions currently stored."""
        async with self._lock:
            db = await self.db()
            async with db.execute('SELECT count(*) FROM sessions') as cursor:
                result = await cursor.fetchone()
                # count() won't ever return 0 rows but mypy doesn't know this
                assert result is not None
                (count,) = result
                return count

    async def append_session_candidate(
        self,
        session_id: str,
        candidate: IceCandidate,
        timestamp: float,
    ) -> bool:
        """Append a candidate to the log of a session."""
        async with self._lock:
            db = await self.db()
            cursor = await db.execute(
                'UPDATE sessions SET updated=? WHERE session_id=?',
                (timestamp, session_id),
            )
            if cursor.rowcount == 0:
                return False
            await db.execute(
                'INSERT INTO session_candidates (session_id, candidate) '
                'VALUES (?, ?)',
                (session_id, candidate.model_dump_json()),
            )
            await db.commit()
            return True

    async def session_candidates(
        self,
        session_id: str,
        cursor: int = 0,
    ) -> list[IceCandidate]:
        """Get the candidates of a session at or after the cursor."""
        async with self._lock:
            db = await self.db()
            return await self._session_candidates(db, session_id, cursor)

    async def _session_candidates(
        self,
        db: aiosqlite.Connection,
        session_id: str,
        cursor: int,
    ) -> list[IceCandidate]:
        async with db.execute(
            'SELECT candidate FROM session_candidates WHERE session_id=? '
            'ORDER BY seq LIMIT -1 OFFSET ?',
            (session_id, cursor),
        ) as rows:
            return [
                IceCandidate.model_validate_json(row[0])
                for row in await rows.fetchall()
            ]

    async def create_connection(
        self,
        connection_id: str,
        session_id: str,
        answer: SessionDescription,
        timestamp: float,
    ) -> None:
        """Create a joined connection."""
        async with self._lock:
            db = await self.db()
            await db.execute(
                'INSERT INTO connections '
                '(connection_id, session_id, answer, created) '
                'VALUES (?, ?, ?, ?)',
                (
                    connection_id,
                    session_id,
                    answer.model_dump_json(),
                    timestamp,
                ),
            )
            await db.execute(
                'UPDATE sessions SET updated=? WHERE session_id=?',
                (timestamp, session_id),
            )
            await db.commit()

    async def append_connection_candidate(
        self,
        connection_id: str,
        candidate: IceCandidate,
    ) -> bool:
        """Append a candidate to the log of a joined connection."""
        async with self._lock:
            db = await self.db()
            cursor = await db.execute(
                'INSERT INTO connection_candidates (connection_id, candidate) '
                'SELECT connection_id, ? FROM connections '
                'WHERE connection_id=?',
                (candidate.model_dump_json(), connection_id),
            )
            if cursor.rowcount == 0:
                return False
            await db.commit()
            return True

    async def list_connections(
        self,
        session_id: str,
    ) -> list[JoinedConnection]:
        """Get the joined connections of a session in join order."""
        async with self._lock:
            db = await self.db()
            async with db.execute(
                'SELECT connection_id, answer FROM connections '
                'WHERE session_id=? ORDER BY seq',
                (session_id,),
            ) as cursor:
                rows = await cursor.fetchall()

            connections = []
            for connection_id, answer in rows:
                async with db.execute(
                    'SELECT candidate FROM connection_candidates '
                    'WHERE connection_id=? ORDER BY seq',
                    (connection_id,),
                ) as cursor:
                    candidates = [
                        IceCandidate.model_validate_json(row[0])
                        for row in await cursor.fetchall()
                    ]
                connections.append(
                    JoinedConnection(
                        connection_id=connection_id,
                        answer=SessionDescription.model_validate_json(answer),
                        candidates=candidates,
                    ),
                )
            return connections

    async def close(self) -> None:
        """Close the storage."""
        async with self._lock:
            if self._db is not None:
                await self._db.close()
                self._db = None
