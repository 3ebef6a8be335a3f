from __future__ import annotations

import asyncio

import pytest

from peerpair.negotiation.base import CandidateOutbox
from peerpair.negotiation.display import DisplayNegotiator
from peerpair.negotiation.display import DisplayPhase
from peerpair.negotiation.events import ConnectionStatus
from peerpair.negotiation.events import EventKind
from peerpair.negotiation.events import NegotiationEvent
from peerpair.relay.client import LocalRelayClient
from peerpair.relay.exceptions import RelayRequestError
from peerpair.relay.messages import IceCandidate
from testing.peers import FakePeerFactory
from testing.utils import wait_for


def _candidate(i: int) -> IceCandidate:
    return IceCandidate(candidate=f'candidate:{i}')


@pytest.mark.asyncio()
async def test_outbox_buffers_until_bound() -> None:
    sent: list[tuple[str, IceCandidate]] = []

    async def _send(key: str, candidate: IceCandidate) -> None:
        sent.append((key, candidate))

    outbox = CandidateOutbox(_send)
    assert outbox.key is None

    await outbox.push(_candidate(0))
    await outbox.push(_candidate(1))
    assert sent == []
    assert outbox.pending == 2

    await outbox.bind('key')
    assert outbox.key == 'key'
    assert outbox.pending == 0
    assert sent == [('key', _candidate(0)), ('key', _candidate(1))]

    await outbox.push(_candidate(2))
    assert sent[-1] == ('key', _candidate(2))


@pytest.mark.asyncio()
async def test_outbox_bind_twice() -> None:
    async def _send(key: str, candidate: IceCandidate) -> None:
        pass

    outbox = CandidateOutbox(_send)
    await outbox.bind('key')
    with pytest.raises(RuntimeError, match='already bound'):
        await outbox.bind('other')


@pytest.mark.asyncio()
async def test_outbox_preserves_order_while_flushing() -> None:
    sent: list[IceCandidate] = []

    async def _send(key: str, candidate: IceCandidate) -> None:
        await asyncio.sleep(0.001)
        sent.append(candidate)

    outbox = CandidateOutbox(_send)
    await outbox.push(_candidate(0))
    await outbox.push(_candidate(1))
    await asyncio.gather(
        outbox.bind('key'),
        outbox.push(_candidate(2)),
        outbox.push(_candidate(3)),
    )
    assert sent == [_candidate(i) for i in range(4)]


@pytest.mark.asyncio()
async def test_outbox_drops_failed_sends(caplog) -> None:
    sent: list[IceCandidate] = []

    async def _send(key: str, candidate: IceCandidate) -> None:
        if candidate == _candidate(0):
            raise RelayRequestError('unreachable')
        sent.append(candidate)

    outbox = CandidateOutbox(_send)
    await outbox.push(_candidate(0))
    await outbox.push(_candidate(1))
    await outbox.bind('key')
    assert sent == [_candidate(1)]
    assert 'unreachable' in caplog.text


@pytest.mark.asyncio()
async def test_start_twice(local_relay: LocalRelayClient) -> None:
    negotiator = DisplayNegotiator(
        local_relay,
        poll_interval=0.01,
        peer_factory=FakePeerFactory(),
    )
    await negotiator.start()
    assert negotiator.running
    with pytest.raises(RuntimeError, match='already running'):
        await negotiator.start()
    await negotiator.close()
    assert not negotiator.running


@pytest.mark.asyncio()
async def test_close_before_start(local_relay: LocalRelayClient) -> None:
    negotiator = DisplayNegotiator(local_relay)
    await negotiator.close()
    assert negotiator.phase is DisplayPhase.IDLE
    assert negotiator.status is ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio()
async def test_send_while_disconnected(local_relay: LocalRelayClient) -> None:
    negotiator = DisplayNegotiator(
        local_relay,
        poll_interval=0.01,
        peer_factory=FakePeerFactory(),
    )
    assert not negotiator.send('hello')
    await negotiator.start()
    assert not negotiator.send('hello')
    await negotiator.close()


@pytest.mark.asyncio()
async def test_phase_and_status_events(local_relay: LocalRelayClient) -> None:
    observed: list[NegotiationEvent] = []
    phases: list[DisplayPhase] = []
    statuses: list[ConnectionStatus] = []

    negotiator = DisplayNegotiator(
        local_relay,
        poll_interval=0.01,
        peer_factory=FakePeerFactory(),
        observer=observed.append,
    )
    negotiator.events.on('phase', phases.append)
    negotiator.events.on('status', statuses.append)

    await negotiator.start()
    await wait_for(lambda: negotiator.phase is DisplayPhase.AWAITING_ANSWER)
    await negotiator.close()

    assert phases == [
        DisplayPhase.PUBLISHING,
        DisplayPhase.AWAITING_ANSWER,
        DisplayPhase.IDLE,
    ]
    assert statuses == [
        ConnectionStatus.WAITING,
        ConnectionStatus.DISCONNECTED,
    ]
    entered = [
        event.detail
        for event in observed
        if event.kind is EventKind.PHASE_ENTERED
    ]
    assert entered == ['publishing', 'awaiting_answer', 'idle']
    assert all(event.role == 'display' for event in observed)
    assert any(
        event.kind is EventKind.RELAY_CALL
        and event.detail == 'published session'
        for event in observed
    )
