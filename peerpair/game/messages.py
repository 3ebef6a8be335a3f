"""Application messages exchanged over an open data channel.

Controllers send [`DirectionMessage`][peerpair.game.messages.DirectionMessage]
and [`ResetMessage`][peerpair.game.messages.ResetMessage]. Displays send
[`GameStateMessage`][peerpair.game.messages.GameStateMessage] snapshots.
Every message is a JSON object discriminated by its `type` key.
"""
from __future__ import annotations

import dataclasses
import enum
import json
from typing import Any
from typing import Literal
from typing import Union


class Direction(enum.Enum):
    """Movement direction."""

    UP = 'up'
    DOWN = 'down'
    LEFT = 'left'
    RIGHT = 'right'


class GameStatus(enum.Enum):
    """Status of the game running on the display."""

    WAITING = 'waiting'
    PLAYING = 'playing'
    GAMEOVER = 'gameover'


@dataclasses.dataclass(frozen=True)
class DirectionMessage:
    """Request to change the movement direction.

    Attributes:
        direction: New movement direction.
    """

    direction: Direction
    type: Literal['direction'] = 'direction'


@dataclasses.dataclass(frozen=True)
class ResetMessage:
    """Request to start a new game."""

    type: Literal['reset'] = 'reset'


@dataclasses.dataclass(frozen=True)
class GameStateMessage:
    """Snapshot of the game status and score.

    Attributes:
        status: Status of the game.
        score: Current score.
    """

    status: GameStatus
    score: int
    type: Literal['gameState'] = 'gameState'


ControllerMessage = Union[DirectionMessage, ResetMessage]
DisplayMessage = GameStateMessage
Message = Union[DirectionMessage, ResetMessage, GameStateMessage]


class MessageError(Exception):
    """Base exception type for application messages."""

    pass


class MessageDecodeError(MessageError):
    """Exception raised when a message cannot be decoded."""

    pass


class MessageEncodeError(MessageError):
    """Exception raised when a message cannot be encoded."""

    pass


def encode_message(message: Message) -> str:
    """Encode message as JSON string.

    Args:
        message: Message to JSON encode.

    Raises:
        MessageEncodeError: If the message is not a known message type.
    """
    if isinstance(message, DirectionMessage):
        data: dict[str, Any] = {
            'type': message.type,
            'direction': message.direction.value,
        }
    elif isinstance(message, ResetMessage):
        data = {'type': message.type}
    elif isinstance(message, GameStateMessage):
        data = {
            'type': message.type,
            'status': message.status.value,
            'score': message.score,
        }
    else:
        raise MessageEncodeError(
            'Message is not an instance of a known message type. '
            f'Got {type(message).__name__}.',
        )
    return json.dumps(data)


def _load(message: str) -> dict[str, Any]:
    try:
        data = json.loads(message)
    except json.JSONDecodeError as e:
        raise MessageDecodeError('Failed to load string as JSON.') from e
    if not isinstance(data, dict):
        raise MessageDecodeError('Message is not a JSON object.')
    if 'type' not in data:
        raise MessageDecodeError('Message does not contain a type key.')
    return data


def decode_controller_message(message: str) -> ControllerMessage:
    """Decode a message sent by a controller.

    Args:
        message: JSON string to decode.

    Returns:
        Parsed message.

    Raises:
        MessageDecodeError: If the message cannot be decoded.
    """
    data = _load(message)
    if data['type'] == 'reset':
        return ResetMessage()
    elif data['type'] == 'direction':
        try:
            return DirectionMessage(direction=Direction(data['direction']))
        except (KeyError, TypeError, ValueError) as e:
            raise MessageDecodeError(
                f'Invalid direction message: {message}',
            ) from e
    raise MessageDecodeError(
        f'Unknown controller message type: {data["type"]!r}.',
    )


def decode_display_message(message: str) -> DisplayMessage:
    """Decode a message sent by a display.

    Args:
        message: JSON string to decode.

    Returns:
        Parsed message.

    Raises:
        MessageDecodeError: If the message cannot be decoded.
    """
    data = _load(message)
    if data['type'] != 'gameState':
        raise MessageDecodeError(
            f'Unknown display message type: {data["type"]!r}.',
        )
    try:
        status = GameStatus(data['status'])
        score = data['score']
    except (KeyError, TypeError, ValueError) as e:
        raise MessageDecodeError(
            f'Invalid game state message: {message}',
        ) from e
    if isinstance(score, bool) or not isinstance(score, int):
        raise MessageDecodeError(f'Score must be an integer, got {score!r}.')
    return GameStateMessage(status=status, score=score)
