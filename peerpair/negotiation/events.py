"""Connection status and structured negotiation events.

Negotiation engines report every phase transition, relay call, channel
message and failure as a
[`NegotiationEvent`][peerpair.negotiation.events.NegotiationEvent] to an
observer callable. The default observer,
[`log_event()`][peerpair.negotiation.events.log_event], writes the event to
the log.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any
from typing import Callable
from typing import Dict

logger = logging.getLogger(__name__)


class ConnectionStatus(enum.Enum):
    """Coarse connectivity status surfaced to collaborators."""

    DISCONNECTED = 'disconnected'
    """No attempt is in progress or the last attempt was lost."""
    WAITING = 'waiting'
    """Waiting for the other peer to show up at the relay."""
    CONNECTING = 'connecting'
    """Handshake with a specific peer is in progress."""
    CONNECTED = 'connected'
    """Data channel is open."""


class EventKind(enum.Enum):
    """Kinds of negotiation events."""

    PHASE_ENTERED = 'phase-entered'
    """The engine entered a new phase."""
    RELAY_CALL = 'relay-call'
    """The engine made a call to the relay."""
    MESSAGE_SENT = 'message-sent'
    """A payload was sent over the data channel."""
    MESSAGE_RECEIVED = 'message-received'
    """A payload was received over the data channel."""
    ERROR = 'error'
    """The current attempt failed and will be restarted."""


@dataclasses.dataclass(frozen=True)
class NegotiationEvent:
    """Event reported by a negotiation engine.

    Attributes:
        role: Role of the engine (`display` or `controller`).
        kind: Kind of event.
        detail: Human readable description.
        data: Extra structured fields of the event.
    """

    role: str
    kind: EventKind
    detail: str
    data: Dict[str, Any] = dataclasses.field(  # noqa: UP006
        default_factory=dict,
    )


Observer = Callable[[NegotiationEvent], None]
"""Callable which receives negotiation events."""

_EVENT_LEVELS = {
    EventKind.PHASE_ENTERED: logging.INFO,
    EventKind.RELAY_CALL: logging.DEBUG,
    EventKind.MESSAGE_SENT: logging.DEBUG,
    EventKind.MESSAGE_RECEIVED: logging.DEBUG,
    EventKind.ERROR: logging.WARNING,
}


def log_event(event: NegotiationEvent) -> None:
    """Log a negotiation event.

    Phase transitions are logged at `INFO`, relay calls and messages at
    `DEBUG`, and failures at `WARNING`.
    """
    extra = ''.join(f' {key}={value}' for key, value in event.data.items())
    logger.log(
        _EVENT_LEVELS[event.kind],
        f'[{event.role}] {event.kind.value}: {event.detail}{extra}',
    )
