from __future__ import annotations

import asyncio

import pytest

from peerpair.negotiation.controller import ControllerNegotiator
from peerpair.negotiation.controller import ControllerPhase
from peerpair.negotiation.display import DisplayNegotiator
from peerpair.negotiation.display import DisplayPhase
from peerpair.negotiation.events import ConnectionStatus
from peerpair.relay.client import HTTPRelayClient
from peerpair.relay.client import LocalRelayClient
from peerpair.relay.client import RelayClient
from peerpair.relay.service import RelayService
from testing.peers import FakePeerFactory
from testing.utils import wait_for

SNAPSHOT = '{"type": "gameState", "status": "playing", "score": 0}'


def _pair(
    relay: RelayClient,
    factory: FakePeerFactory,
    interval: float = 0.01,
) -> tuple[DisplayNegotiator, ControllerNegotiator]:
    display = DisplayNegotiator(
        relay,
        poll_interval=interval,
        initial_payload=lambda: SNAPSHOT,
        peer_factory=factory,
    )
    controller = ControllerNegotiator(
        relay,
        discover_interval=interval,
        candidate_interval=interval,
        join_timeout=1.0,
        peer_factory=factory,
    )
    return display, controller


async def _connected(
    display: DisplayNegotiator,
    controller: ControllerNegotiator,
) -> None:
    await wait_for(
        lambda: display.phase is DisplayPhase.CONNECTED
        and controller.phase is ControllerPhase.CONNECTED,
    )


@pytest.mark.asyncio()
async def test_connect_and_exchange(local_relay: LocalRelayClient) -> None:
    factory = FakePeerFactory()
    display, controller = _pair(local_relay, factory)
    received: list[str] = []
    display.events.on('data', received.append)

    await display.start()
    await controller.start()
    await _connected(display, controller)

    assert display.status is ConnectionStatus.CONNECTED
    assert controller.status is ConnectionStatus.CONNECTED
    assert controller.session_id == display.session_id
    await wait_for(lambda: controller.last_payload == SNAPSHOT)

    assert controller.send('{"type": "direction", "direction": "up"}')
    await wait_for(lambda: len(received) == 1)
    assert received == ['{"type": "direction", "direction": "up"}']

    await controller.close()
    await display.close()


@pytest.mark.asyncio()
async def test_controller_started_first(
    local_relay: LocalRelayClient,
) -> None:
    factory = FakePeerFactory()
    display, controller = _pair(local_relay, factory)

    await controller.start()
    await asyncio.sleep(0.05)
    assert controller.phase is ControllerPhase.DISCOVERING
    assert factory.peers == []
    await display.start()
    await _connected(display, controller)

    await display.close()
    await controller.close()


@pytest.mark.asyncio()
async def test_reconnect_with_new_session(
    local_relay: LocalRelayClient,
    service: RelayService,
) -> None:
    factory = FakePeerFactory()
    display, controller = _pair(local_relay, factory)

    await display.start()
    await controller.start()
    await _connected(display, controller)
    first_session = display.session_id
    display_peer, controller_peer = factory.peers

    display_peer.drop()
    controller_peer.drop()
    await wait_for(lambda: len(factory.peers) >= 4)
    await _connected(display, controller)

    assert display.session_id is not None
    assert display.session_id != first_session
    assert controller.session_id == display.session_id
    assert display_peer.closed
    assert controller_peer.closed
    await wait_for(lambda: controller.last_payload == SNAPSHOT)
    assert await service.session_count() == 1

    await display.close()
    await controller.close()
    assert await service.session_count() == 0


@pytest.mark.asyncio()
async def test_display_restart_with_idle_controller(
    local_relay: LocalRelayClient,
) -> None:
    factory = FakePeerFactory()
    display, controller = _pair(local_relay, factory)

    await display.start()
    await controller.start()
    await _connected(display, controller)

    # The display going away drops the channel on both ends
    await display.close()
    factory.peers[1].drop()
    await wait_for(lambda: controller.phase is ControllerPhase.DISCOVERING)

    await display.start()
    await _connected(display, controller)

    await display.close()
    await controller.close()


@pytest.mark.asyncio()
async def test_connect_over_http_relay(relay_server) -> None:
    factory = FakePeerFactory()
    relay = HTTPRelayClient(relay_server.address, timeout=5)
    display, controller = _pair(relay, factory, interval=0.05)

    await display.start()
    await controller.start()
    await _connected(display, controller)
    await wait_for(lambda: controller.last_payload == SNAPSHOT)

    await display.close()
    await controller.close()
    await relay.close()
