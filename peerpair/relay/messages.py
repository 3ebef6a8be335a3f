"""Message types for relay client and relay service communication.

Every model serializes to JSON with camelCase keys, e.g.
`#!python {'sessionId': ..., 'nextCursor': ...}`, and can be populated
by either the field name or the alias.
"""
from __future__ import annotations

from typing import List
from typing import Literal
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel


class RelayModel(BaseModel):
    """Base model for relay messages."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra='ignore',
    )

    def to_json(self) -> dict[str, object]:
        """Return JSON-compatible dictionary with camelCase keys."""
        return self.model_dump(mode='json', by_alias=True)


class SessionDescription(RelayModel):
    """Handshake offer or answer.

    Attributes:
        type: One of `#!python 'offer'` or `#!python 'answer'`.
        sdp: Session description protocol blob.
    """

    type: Literal['offer', 'answer']
    sdp: str = Field(min_length=1)


class IceCandidate(RelayModel):
    """Network reachability candidate.

    Attributes:
        candidate: Candidate connection string.
        sdp_mline_index: Index of the media description the candidate is
            associated with.
        sdp_mid: Media stream identification tag.
    """

    candidate: str = Field(min_length=1)
    sdp_mline_index: Optional[int] = Field(  # noqa: UP007
        default=None,
        alias='sdpMLineIndex',
    )
    sdp_mid: Optional[str] = None  # noqa: UP007


class DiscoveredSession(RelayModel):
    """Most recently published session with its candidate snapshot."""

    session_id: str
    offer: SessionDescription
    candidates: List[IceCandidate] = Field(  # noqa: UP006
        default_factory=list,
    )


class JoinedConnection(RelayModel):
    """A controller's answer to a session and its candidate log."""

    connection_id: str
    answer: SessionDescription
    candidates: List[IceCandidate] = Field(  # noqa: UP006
        default_factory=list,
    )


class CandidatePage(RelayModel):
    """Candidates at or after a cursor.

    Attributes:
        candidates: Candidates in sequence order.
        next_cursor: Cursor to use in the next request.
    """

    candidates: List[IceCandidate]  # noqa: UP006
    next_cursor: int = Field(ge=0)


class PublishSessionRequest(RelayModel):
    """Body of `publishSession`."""

    offer: SessionDescription


class PublishSessionResponse(RelayModel):
    """Response of `publishSession`."""

    session_id: str


class SessionRequest(RelayModel):
    """Body of `listJoinedConnections` and `teardownSession`."""

    session_id: str = Field(min_length=1)


class SessionCandidateRequest(RelayModel):
    """Body of `appendSessionCandidate`."""

    session_id: str = Field(min_length=1)
    candidate: IceCandidate


class JoinSessionRequest(RelayModel):
    """Body of `joinSession`."""

    session_id: str = Field(min_length=1)
    answer: SessionDescription


class JoinSessionResponse(RelayModel):
    """Response of `joinSession`."""

    connection_id: str


class ConnectionCandidateRequest(RelayModel):
    """Body of `appendConnectionCandidate`."""

    connection_id: str = Field(min_length=1)
    candidate: IceCandidate


class CandidatesSinceRequest(RelayModel):
    """Body of `listConnectionCandidatesSince`."""

    session_id: str = Field(min_length=1)
    cursor: int = Field(default=0, ge=0)


class DiscoverResponse(RelayModel):
    """Response of `discoverLatestSession`."""

    session: Optional[DiscoveredSession] = None  # noqa: UP007


class JoinedConnectionsResponse(RelayModel):
    """Response of `listJoinedConnections`."""

    connections: List[JoinedConnection]  # noqa: UP006
