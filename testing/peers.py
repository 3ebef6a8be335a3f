"""Scripted in-memory peers for testing negotiation engines."""
from __future__ import annotations

import itertools
from typing import Sequence
from typing import Union

from pyee.asyncio import AsyncIOEventEmitter

from peerpair.negotiation.exceptions import PeerConnectionError
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import SessionDescription

Applied = Union[SessionDescription, IceCandidate]


class FakePeer(AsyncIOEventEmitter):
    """Peer which emits scripted descriptions and candidates.

    The initiator emits its offer followed by its candidates when started.
    A responder emits its answer followed by its candidates when an offer
    is applied. Every applied description and candidate is recorded in
    `applied` in order.

    Args:
        initiator: Peer creates the offer.
        ice_servers: Recorded but unused.
        label: Unique label used in generated descriptions and candidates.
        candidates: Number of local candidates to emit.
        factory: Optional factory notified whenever something is applied.
    """

    def __init__(
        self,
        initiator: bool,
        ice_servers: Sequence[str] = (),
        *,
        label: str = 'peer',
        candidates: int = 2,
        factory: FakePeerFactory | None = None,
    ) -> None:
        super().__init__()
        self._initiator = initiator
        self.ice_servers = tuple(ice_servers)
        self.label = label
        self.factory = factory
        kind = 'offer' if initiator else 'answer'
        self.description = SessionDescription(
            type=kind,
            sdp=f'v=0 {kind} {label}',
        )
        self.local_candidates = [
            IceCandidate(
                candidate=f'candidate:{label}-{i} 1 udp 1 10.0.0.1 {5000 + i} '
                'typ host',
                sdp_mid='0',
                sdp_mline_index=0,
            )
            for i in range(candidates)
        ]
        self.applied: list[Applied] = []
        self.sent: list[str] = []
        self.started = False
        self.closed = False
        self.is_open = False
        self.remote: FakePeer | None = None
        self.fail_apply: Exception | None = None

    @property
    def initiator(self) -> bool:
        return self._initiator

    @property
    def descriptions(self) -> list[SessionDescription]:
        return [a for a in self.applied if isinstance(a, SessionDescription)]

    @property
    def candidates(self) -> list[IceCandidate]:
        return [a for a in self.applied if isinstance(a, IceCandidate)]

    async def start(self) -> None:
        self.started = True
        if self._initiator:
            self._emit_local()

    async def apply_description(
        self,
        description: SessionDescription,
    ) -> None:
        if self.fail_apply is not None:
            raise self.fail_apply
        self.applied.append(description)
        if description.type == 'offer' and not self._initiator:
            self._emit_local()
        self._notify()

    async def add_candidate(self, candidate: IceCandidate) -> None:
        if not self.descriptions:
            raise AssertionError(
                f'{self.label} received a candidate before a description.',
            )
        self.applied.append(candidate)
        self._notify()

    def send(self, data: str) -> None:
        if not self.is_open or self.closed:
            raise PeerConnectionError('Data channel is not open.')
        self.sent.append(data)
        if self.remote is not None and not self.remote.closed:
            self.remote.emit('data', data)

    async def close(self) -> None:
        self.closed = True
        self.is_open = False

    def open(self) -> None:
        """Mark the channel open and emit `open`."""
        if not self.is_open:
            self.is_open = True
            self.emit('open')

    def drop(self) -> None:
        """Simulate the channel closing unexpectedly."""
        self.is_open = False
        self.emit('close')

    def fail(self, error: Exception | None = None) -> None:
        """Simulate the connection failing."""
        self.is_open = False
        self.emit(
            'error',
            PeerConnectionError('failed') if error is None else error,
        )

    def _emit_local(self) -> None:
        self.emit('description', self.description)
        for candidate in self.local_candidates:
            self.emit('candidate', candidate)

    def _notify(self) -> None:
        if self.factory is not None:
            self.factory.maybe_connect()


class FakePeerFactory:
    """Peer factory which connects matching fake peers.

    Once an initiator and a responder have applied each other's description
    and all of each other's candidates, both channels are opened and data
    sent on one is received by the other.

    Args:
        candidates: Number of candidates each peer emits.
        auto_connect: Open channels of matched peers automatically.
    """

    def __init__(self, *, candidates: int = 2, auto_connect: bool = True):
        self.candidates = candidates
        self.auto_connect = auto_connect
        self.peers: list[FakePeer] = []
        self._counter = itertools.count()

    def __call__(
        self,
        initiator: bool,
        ice_servers: Sequence[str],
    ) -> FakePeer:
        role = 'display' if initiator else 'controller'
        peer = FakePeer(
            initiator,
            ice_servers,
            label=f'{role}{next(self._counter)}',
            candidates=self.candidates,
            factory=self,
        )
        self.peers.append(peer)
        return peer

    @property
    def initiators(self) -> list[FakePeer]:
        return [peer for peer in self.peers if peer.initiator]

    @property
    def responders(self) -> list[FakePeer]:
        return [peer for peer in self.peers if not peer.initiator]

    def maybe_connect(self) -> None:
        if not self.auto_connect:
            return
        for initiator in self.initiators:
            for responder in self.responders:
                if _ready(initiator, responder) and _ready(
                    responder,
                    initiator,
                ):
                    link(initiator, responder)


def _ready(local: FakePeer, remote: FakePeer) -> bool:
    return (
        not local.closed
        and remote.description in local.descriptions
        and all(c in local.candidates for c in remote.local_candidates)
    )


def link(a: FakePeer, b: FakePeer) -> None:
    """Connect two fake peers and open both channels."""
    a.remote = b
    b.remote = a
    a.open()
    b.open()
