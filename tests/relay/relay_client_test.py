from __future__ import annotations

from unittest import mock

import pytest
import requests

from peerpair.relay.client import HTTPRelayClient
from peerpair.relay.client import LocalRelayClient
from peerpair.relay.client import RelayClient
from peerpair.relay.exceptions import RelayRequestError
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import SessionDescription
from peerpair.relay.service import RelayService
from peerpair.relay.storage import MemoryStorage

OFFER = SessionDescription(type='offer', sdp='v=0 offer')
ANSWER = SessionDescription(type='answer', sdp='v=0 answer')


def _candidate(i: int) -> IceCandidate:
    return IceCandidate(candidate=f'candidate:{i}', sdp_mid='0')


def test_clients_implement_protocol() -> None:
    assert isinstance(HTTPRelayClient('http://localhost'), RelayClient)
    assert isinstance(
        LocalRelayClient(RelayService(MemoryStorage())),
        RelayClient,
    )


def test_invalid_address_protocol() -> None:
    with pytest.raises(ValueError, match='http://'):
        HTTPRelayClient('localhost:8710')


def test_address_trailing_slash() -> None:
    client = HTTPRelayClient('https://relay.example.com/')
    assert client.address == 'https://relay.example.com'


async def _exercise(client: RelayClient) -> None:
    assert await client.discover_latest_session() is None

    session_id = await client.publish_session(OFFER)
    await client.append_session_candidate(session_id, _candidate(0))
    await client.append_session_candidate(session_id, _candidate(1))

    session = await client.discover_latest_session()
    assert session is not None
    assert session.session_id == session_id
    assert session.offer == OFFER
    assert session.candidates == [_candidate(0), _candidate(1)]

    connection_id = await client.join_session(session_id, ANSWER)
    await client.append_connection_candidate(connection_id, _candidate(2))

    connections = await client.list_joined_connections(session_id)
    assert len(connections) == 1
    assert connections[0].connection_id == connection_id
    assert connections[0].answer == ANSWER
    assert connections[0].candidates == [_candidate(2)]

    page = await client.list_connection_candidates_since(session_id, 1)
    assert page.candidates == [_candidate(1)]
    assert page.next_cursor == 2

    await client.teardown_session(session_id)
    assert await client.discover_latest_session() is None


@pytest.mark.asyncio()
async def test_local_client(local_relay: LocalRelayClient) -> None:
    await _exercise(local_relay)
    await local_relay.close()


@pytest.mark.asyncio()
async def test_http_client(relay_server) -> None:
    client = HTTPRelayClient(relay_server.address, timeout=5)
    try:
        await _exercise(client)
    finally:
        await client.close()


@pytest.mark.asyncio()
async def test_http_client_bad_request(relay_server) -> None:
    client = HTTPRelayClient(relay_server.address, timeout=5)
    with pytest.raises(RelayRequestError) as exc_info:
        await client.join_session('abc', OFFER)
    assert exc_info.value.status_code == 400
    await client.close()


@pytest.mark.asyncio()
async def test_http_client_negative_cursor(relay_server) -> None:
    client = HTTPRelayClient(relay_server.address, timeout=5)
    with pytest.raises(RelayRequestError) as exc_info:
        await client.list_connection_candidates_since('abc', -1)
    assert exc_info.value.status_code == 400
    await client.close()


@pytest.mark.asyncio()
async def test_http_client_connection_error() -> None:
    session = mock.MagicMock()
    session.post.side_effect = requests.exceptions.ConnectionError('refused')
    client = HTTPRelayClient('http://localhost:1', session=session)
    with pytest.raises(RelayRequestError, match='refused') as exc_info:
        await client.publish_session(OFFER)
    assert exc_info.value.status_code is None
    await client.close()
    session.close.assert_called_once()


@pytest.mark.asyncio()
async def test_http_client_unparsable_response() -> None:
    response = mock.MagicMock()
    response.ok = True
    response.json.return_value = {'unexpected': True}
    session = mock.MagicMock()
    session.post.return_value = response
    client = HTTPRelayClient('http://localhost', session=session)
    with pytest.raises(RelayRequestError, match='publishSession'):
        await client.publish_session(OFFER)

    url = session.post.call_args.args[0]
    assert url == 'http://localhost/signaling/publishSession'
    body = session.post.call_args.kwargs['json']
    assert body == {'offer': {'type': 'offer', 'sdp': 'v=0 offer'}}


def _html_response() -> requests.Response:
    response = requests.Response()
    response.status_code = 200
    response._content = b'<html>proxy page</html>'
    response.headers['Content-Type'] = 'text/html'
    return response


@pytest.mark.asyncio()
@pytest.mark.parametrize('operation', ('teardown', 'discover'))
async def test_http_client_non_json_response(operation: str) -> None:
    session = mock.MagicMock()
    session.post.return_value = _html_response()
    client = HTTPRelayClient('http://localhost', session=session)
    with pytest.raises(RelayRequestError, match='not valid JSON') as exc_info:
        if operation == 'teardown':
            await client.teardown_session('abc')
        else:
            await client.discover_latest_session()
    assert exc_info.value.status_code == 200
    await client.close()
