"""Client interfaces to the relay service.

Negotiation engines talk to the relay through the
[`RelayClient`][peerpair.relay.client.RelayClient] protocol.
[`HTTPRelayClient`][peerpair.relay.client.HTTPRelayClient] calls a relay
served by [`serve()`][peerpair.relay.run.serve] and
[`LocalRelayClient`][peerpair.relay.client.LocalRelayClient] calls a
[`RelayService`][peerpair.relay.service.RelayService] in the same process.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any
from typing import Protocol
from typing import runtime_checkable

import pydantic
import requests

from peerpair.relay.exceptions import RelayRequestError
from peerpair.relay.messages import CandidatePage
from peerpair.relay.messages import CandidatesSinceRequest
from peerpair.relay.messages import ConnectionCandidateRequest
from peerpair.relay.messages import DiscoveredSession
from peerpair.relay.messages import DiscoverResponse
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import JoinedConnection
from peerpair.relay.messages import JoinedConnectionsResponse
from peerpair.relay.messages import JoinSessionRequest
from peerpair.relay.messages import JoinSessionResponse
from peerpair.relay.messages import PublishSessionRequest
from peerpair.relay.messages import PublishSessionResponse
from peerpair.relay.messages import RelayModel
from peerpair.relay.messages import SessionCandidateRequest
from peerpair.relay.messages import SessionDescription
from peerpair.relay.messages import SessionRequest
from peerpair.relay.service import RelayService

logger = logging.getLogger(__name__)


@runtime_checkable
class RelayClient(Protocol):
    """Relay client protocol."""

    async def publish_session(self, offer: SessionDescription) -> str:
        """Publish an offer and return the new session identifier."""
        ...

    async def append_session_candidate(
        self,
        session_id: str,
        candidate: IceCandidate,
    ) -> None:
        """Append a display-origin candidate to a session."""
        ...

    async def list_joined_connections(
        self,
        session_id: str,
    ) -> list[JoinedConnection]:
        """List the connections joined to a session."""
        ...

    async def discover_latest_session(self) -> DiscoveredSession | None:
        """Get the most recently published session, if any."""
        ...

    async def teardown_session(self, session_id: str) -> None:
        """Delete a session and everything attached to it."""
        ...

    async def join_session(
        self,
        session_id: str,
        answer: SessionDescription,
    ) -> str:
        """Join a session and return the new connection identifier."""
        ...

    async def append_connection_candidate(
        self,
        connection_id: str,
        candidate: IceCandidate,
    ) -> None:
        """Append a controller-origin candidate to a joined connection."""
        ...

    async def list_connection_candidates_since(
        self,
        session_id: str,
        cursor: int,
    ) -> CandidatePage:
        """List display-origin candidates at or after the cursor."""
        ...

    async def close(self) -> None:
        """Release resources held by the client."""
        ...


class HTTPRelayClient:
    """Relay client which calls a relay server over HTTP.

    Requests are made with [`requests`](https://requests.readthedocs.io)
    in the event loop's default executor so polling does not block the
    loop.

    Example:
        ```python
        from peerpair.relay.client import HTTPRelayClient

        client = HTTPRelayClient('http://localhost:8710')
        session_id = await client.publish_session(offer)
        await client.close()
        ```

    Args:
        address: Address of the relay server. Should start with `http://` or
            `https://`.
        timeout: Timeout in seconds of each request.
        session: Session instance to use for making requests. Reusing the
            same session across many requests to the same host can improve
            performance.

    Raises:
        ValueError: If address does not start with `http://` or `https://`.
    """

    def __init__(
        self,
        address: str,
        *,
        timeout: float = 10,
        session: requests.Session | None = None,
    ) -> None:
        if not (
            address.startswith('http://') or address.startswith('https://')
        ):
            raise ValueError(
                'Relay server address must start with http:// or https://. '
                f'Got {address}.',
            )
        self._address = address.rstrip('/')
        self._timeout = timeout
        self._session = requests.Session() if session is None else session

    @property
    def address(self) -> str:
        """Address of the relay server."""
        return self._address

    def _post(self, operation: str, body: RelayModel | None) -> Any:
        url = f'{self._address}/signaling/{operation}'
        try:
            response = self._session.post(
                url,
                json={} if body is None else body.to_json(),
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RelayRequestError(
                f'Request to {url} failed: {e}',
            ) from e

        if not response.ok:
            raise RelayRequestError(
                f'Relay returned HTTP error code {response.status_code}. '
                f'{response.text}',
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            # requests.exceptions.JSONDecodeError is also a ValueError
            raise RelayRequestError(
                f'Relay response to {operation} is not valid JSON: {e}',
                status_code=response.status_code,
            ) from e

    async def _call(
        self,
        operation: str,
        body: RelayModel | None = None,
    ) -> Any:
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(
            None,
            functools.partial(self._post, operation, body),
        )
        logger.debug(f'Relay call {operation} succeeded')
        return data

    async def _parse(
        self,
        model: type[RelayModel],
        operation: str,
        body: RelayModel | None = None,
    ) -> Any:
        data = await self._call(operation, body)
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            raise RelayRequestError(
                f'Unable to parse response of {operation}: {e}',
            ) from e

    async def publish_session(self, offer: SessionDescription) -> str:
        """Publish an offer and return the new session identifier."""
        response = await self._parse(
            PublishSessionResponse,
            'publishSession',
            PublishSessionRequest(offer=offer),
        )
        return response.session_id

    async def append_session_candidate(
        self,
        session_id: str,
        candidate: IceCandidate,
    ) -> None:
        """Append a display-origin candidate to a session."""
        await self._call(
            'appendSessionCandidate',
            SessionCandidateRequest(
                session_id=session_id,
                candidate=candidate,
            ),
        )

    async def list_joined_connections(
        self,
        session_id: str,
    ) -> list[JoinedConnection]:
        """List the connections joined to a session."""
        response = await self._parse(
            JoinedConnectionsResponse,
            'listJoinedConnections',
            SessionRequest(session_id=session_id),
        )
        return list(response.connections)

    async def discover_latest_session(self) -> DiscoveredSession | None:
        """Get the most recently published session, if any."""
        response = await self._parse(DiscoverResponse, 'discoverLatestSession')
        return response.session

    async def teardown_session(self, session_id: str) -> None:
        """Delete a session and everything attached to it."""
        await self._call(
            'teardownSession',
            SessionRequest(session_id=session_id),
        )

    async def join_session(
        self,
        session_id: str,
        answer: SessionDescription,
    ) -> str:
        """Join a session and return the new connection identifier."""
        response = await self._parse(
            JoinSessionResponse,
            'joinSession',
            JoinSessionRequest(session_id=session_id, answer=answer),
        )
        return response.connection_id

    async def append_connection_candidate(
        self,
        connection_id: str,
        candidate: IceCandidate,
    ) -> None:
        """Append a controller-origin candidate to a joined connection."""
        await self._call(
            'appendConnectionCandidate',
            ConnectionCandidateRequest(
                connection_id=connection_id,
                candidate=candidate,
            ),
        )

    async def list_connection_candidates_since(
        self,
        session_id: str,
        cursor: int,
    ) -> CandidatePage:
        """List display-origin candidates at or after the cursor."""
        return await self._parse(
            CandidatePage,
            'listConnectionCandidatesSince',
            CandidatesSinceRequest(session_id=session_id, cursor=cursor),
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()


class LocalRelayClient:
    """Relay client which calls a relay service in the same process.

    Args:
        service: Relay service to forward calls to.
    """

    def __init__(self, service: RelayService) -> None:
        self._service = service

    @property
    def service(self) -> RelayService:
        """Relay service calls are forwarded to."""
        return self._service

    async def publish_session(self, offer: SessionDescription) -> str:
        """Publish an offer and return the new session identifier."""
        return await self._service.publish_session(offer)

    async def append_session_candidate(
        self,
        session_id: str,
        candidate: IceCandidate,
    ) -> None:
        """Append a display-origin candidate to a session."""
        await self._service.append_session_candidate(session_id, candidate)

    async def list_joined_connections(
        self,
        session_id: str,
    ) -> list[JoinedConnection]:
        """List the connections joined to a session."""
        return await self._service.list_joined_connections(session_id)

    async def discover_latest_session(self) -> DiscoveredSession | None:
        """Get the most recently published session, if any."""
        return await self._service.discover_latest_session()

    async def teardown_session(self, session_id: str) -> None:
        """Delete a session and everything attached to it."""
        await self._service.teardown_session(session_id)

    async def join_session(
        self,
        session_id: str,
        answer: SessionDescription,
    ) -> str:
        """Join a session and return the new connection identifier."""
        return await self._service.join_session(session_id, answer)

    async def append_connection_candidate(
        self,
        connection_id: str,
        candidate: IceCandidate,
    ) -> None:
        """Append a controller-origin candidate to a joined connection."""
        await self._service.append_connection_candidate(
            connection_id,
            candidate,
        )

    async def list_connection_candidates_since(
        self,
        session_id: str,
        cursor: int,
    ) -> CandidatePage:
        """List display-origin candidates at or after the cursor."""
        return await self._service.list_connection_candidates_since(
            session_id,
            cursor,
        )

    async def close(self) -> None:
        """No-op; the service is owned by the caller."""
        pass
