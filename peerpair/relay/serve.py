"""Relay HTTP routes.

Each relay operation is a `POST /signaling/<operation>` route taking and
returning JSON with camelCase keys. Request bodies are validated before the
relay service is called so invalid input never mutates the store.
"""
from __future__ import annotations

import json
import logging
from typing import Any
from typing import TypeVar

import pydantic
import quart
from quart import request
from quart import Response

from peerpair.relay.exceptions import BadRequestError
from peerpair.relay.messages import CandidatesSinceRequest
from peerpair.relay.messages import ConnectionCandidateRequest
from peerpair.relay.messages import DiscoverResponse
from peerpair.relay.messages import JoinedConnectionsResponse
from peerpair.relay.messages import JoinSessionRequest
from peerpair.relay.messages import JoinSessionResponse
from peerpair.relay.messages import PublishSessionRequest
from peerpair.relay.messages import PublishSessionResponse
from peerpair.relay.messages import RelayModel
from peerpair.relay.messages import SessionCandidateRequest
from peerpair.relay.messages import SessionRequest
from peerpair.relay.service import RelayService

logger = logging.getLogger(__name__)

routes_blueprint = quart.Blueprint('routes', __name__)

RequestT = TypeVar('RequestT', bound=RelayModel)


def create_app(
    service: RelayService,
    max_content_length: int | None = None,
) -> quart.Quart:
    """Create quart app for a relay service and register routes.

    Args:
        service: Initialized relay service to forward routes to.
        max_content_length: Max request body size in bytes.

    Returns:
        Quart app.
    """
    app = quart.Quart(__name__)

    app.config['service'] = service

    app.register_blueprint(routes_blueprint, url_prefix='')

    app.config['MAX_CONTENT_LENGTH'] = max_content_length

    return app


def _service() -> RelayService:
    return quart.current_app.config['service']


def _json_response(model: RelayModel | None = None) -> Response:
    body = {} if model is None else model.to_json()
    return Response(json.dumps(body), 200, content_type='application/json')


async def _parse(model: type[RequestT]) -> RequestT:
    data: Any = await request.get_json(force=True, silent=True)
    if data is None:
        raise BadRequestError('request body is not valid JSON')
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise BadRequestError(str(e)) from e


@routes_blueprint.errorhandler(BadRequestError)
async def _bad_request(error: BadRequestError) -> Response:
    logger.warning(f'Rejected bad request to {request.path}: {error}')
    return Response(str(error), 400)


@routes_blueprint.after_app_serving
async def _shutdown() -> None:
    await _service().close()


@routes_blueprint.route('/')
async def _home() -> tuple[str, int]:
    return ('', 200)


@routes_blueprint.route('/signaling/publishSession', methods=['POST'])
async def publish_session_handler() -> Response:
    """Route handler for `POST /signaling/publishSession`.

    Responses:

    * `Status Code 200`: JSON containing the key `sessionId`.
    * `Status Code 400`: If the body is not a valid offer.
    """
    body = await _parse(PublishSessionRequest)
    session_id = await _service().publish_session(body.offer)
    return _json_response(PublishSessionResponse(session_id=session_id))


@routes_blueprint.route('/signaling/appendSessionCandidate', methods=['POST'])
async def append_session_candidate_handler() -> Response:
    """Route handler for `POST /signaling/appendSessionCandidate`.

    Responses:

    * `Status Code 200`: If the candidate was accepted. The response
      will be an empty JSON object.
    * `Status Code 400`: If the body is missing the session ID or the
      candidate is invalid.
    """
    body = await _parse(SessionCandidateRequest)
    await _service().append_session_candidate(body.session_id, body.candidate)
    return _json_response()


@routes_blueprint.route('/signaling/listJoinedConnections', methods=['POST'])
async def list_joined_connections_handler() -> Response:
    """Route handler for `POST /signaling/listJoinedConnections`.

    Responses:

    * `Status Code 200`: JSON containing the key `connections`.
    * `Status Code 400`: If the body is missing the session ID.
    """
    body = await _parse(SessionRequest)
    connections = await _service().list_joined_connections(body.session_id)
    return _json_response(JoinedConnectionsResponse(connections=connections))


@routes_blueprint.route('/signaling/discoverLatestSession', methods=['POST'])
async def discover_latest_session_handler() -> Response:
    """Route handler for `POST /signaling/discoverLatestSession`.

    Responses:

    * `Status Code 200`: JSON containing the key `session` which is `null`
      if no session is live.
    """
    session = await _service().discover_latest_session()
    return _json_response(DiscoverResponse(session=session))


@routes_blueprint.route('/signaling/teardownSession', methods=['POST'])
async def teardown_session_handler() -> Response:
    """Route handler for `POST /signaling/teardownSession`.

    Responses:

    * `Status Code 200`: If the session is gone. The response will be an
      empty JSON object.
    * `Status Code 400`: If the body is missing the session ID.
    """
    body = await _parse(SessionRequest)
    await _service().teardown_session(body.session_id)
    return _json_response()


@routes_blueprint.route('/signaling/joinSession', methods=['POST'])
async def join_session_handler() -> Response:
    """Route handler for `POST /signaling/joinSession`.

    Responses:

    * `Status Code 200`: JSON containing the key `connectionId`.
    * `Status Code 400`: If the body is missing the session ID or the
      answer is invalid.
    """
    body = await _parse(JoinSessionRequest)
    connection_id = await _service().join_session(body.session_id, body.answer)
    return _json_response(JoinSessionResponse(connection_id=connection_id))


@routes_blueprint.route(
    '/signaling/appendConnectionCandidate',
    methods=['POST'],
)
async def append_connection_candidate_handler() -> Response:
    """Route handler for `POST /signaling/appendConnectionCandidate`.

    Responses:

    * `Status Code 200`: If the candidate was accepted. The response
      will be an empty JSON object.
    * `Status Code 400`: If the body is missing the connection ID or the
      candidate is invalid.
    """
    body = await _parse(ConnectionCandidateRequest)
    await _service().append_connection_candidate(
        body.connection_id,
        body.candidate,
    )
    return _json_response()


@routes_blueprint.route(
    '/signaling/listConnectionCandidatesSince',
    methods=['POST'],
)
async def list_connection_candidates_since_handler() -> Response:
    """Route handler for `POST /signaling/listConnectionCandidatesSince`.

    Responses:

    * `Status Code 200`: JSON containing the keys `candidates` and
      `nextCursor`.
    * `Status Code 400`: If the body is missing the session ID or the
      cursor is negative.
    """
    body = await _parse(CandidatesSinceRequest)
    page = await _service().list_connection_candidates_since(
        body.session_id,
        body.cursor,
    )
    return _json_response(page)
