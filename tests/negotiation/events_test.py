from __future__ import annotations

import logging

import pytest

from peerpair.negotiation.events import EventKind
from peerpair.negotiation.events import log_event
from peerpair.negotiation.events import NegotiationEvent


@pytest.mark.parametrize(
    ('kind', 'level'),
    (
        (EventKind.PHASE_ENTERED, logging.INFO),
        (EventKind.RELAY_CALL, logging.DEBUG),
        (EventKind.MESSAGE_SENT, logging.DEBUG),
        (EventKind.MESSAGE_RECEIVED, logging.DEBUG),
        (EventKind.ERROR, logging.WARNING),
    ),
)
def test_log_event_levels(kind: EventKind, level: int, caplog) -> None:
    caplog.set_level(logging.DEBUG)
    log_event(NegotiationEvent(role='display', kind=kind, detail='test'))
    assert len(caplog.records) == 1
    assert caplog.records[0].levelno == level


def test_log_event_format(caplog) -> None:
    caplog.set_level(logging.DEBUG)
    event = NegotiationEvent(
        role='controller',
        kind=EventKind.RELAY_CALL,
        detail='joined session',
        data={'session_id': 'abc', 'connection_id': 'xyz'},
    )
    log_event(event)
    assert caplog.records[0].message == (
        '[controller] relay-call: joined session '
        'session_id=abc connection_id=xyz'
    )


def test_event_default_data() -> None:
    event = NegotiationEvent(
        role='display',
        kind=EventKind.PHASE_ENTERED,
        detail='publishing',
    )
    assert event.data == {}
