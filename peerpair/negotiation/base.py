"""Shared machinery of the display and controller negotiation engines.

Each negotiation attempt is identified by an epoch. Peer event handlers and
poll timers capture the epoch of the attempt that created them and become
no-ops once the engine has moved on to a later attempt, so a timer firing
or a relay call returning after teardown never touches the new state.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Sequence

from pyee import EventEmitter

from peerpair.negotiation.events import ConnectionStatus
from peerpair.negotiation.events import EventKind
from peerpair.negotiation.events import log_event
from peerpair.negotiation.events import NegotiationEvent
from peerpair.negotiation.events import Observer
from peerpair.negotiation.exceptions import PeerConnectionError
from peerpair.negotiation.peer import AiortcPeer
from peerpair.negotiation.peer import DEFAULT_ICE_SERVERS
from peerpair.negotiation.peer import Peer
from peerpair.negotiation.peer import PeerFactory
from peerpair.relay.client import RelayClient
from peerpair.relay.exceptions import RelayError
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import SessionDescription
from peerpair.utils.tasks import PeriodicTask
from peerpair.utils.tasks import spawn_guarded_background_task

logger = logging.getLogger(__name__)

Cleanup = Callable[[], Awaitable[None]]


class CandidateOutbox:
    """Ordered buffer of local candidates waiting for their owner key.

    Candidates pushed before the owner key is bound are buffered and
    flushed in push order by
    [`bind()`][peerpair.negotiation.base.CandidateOutbox.bind]. Later
    candidates are sent immediately. A failed send is logged and dropped.

    Args:
        send: Coroutine function taking the owner key and a candidate.
    """

    def __init__(
        self,
        send: Callable[[str, IceCandidate], Awaitable[None]],
    ) -> None:
        self._send = send
        self._key: str | None = None
        self._pending: list[IceCandidate] = []
        self._lock = asyncio.Lock()

    @property
    def key(self) -> str | None:
        """Owner key candidates are sent to."""
        return self._key

    @property
    def pending(self) -> int:
        """Number of buffered candidates."""
        return len(self._pending)

    async def push(self, candidate: IceCandidate) -> None:
        """Send a candidate or buffer it until the key is bound."""
        async with self._lock:
            if self._key is None:
                self._pending.append(candidate)
            else:
                await self._deliver(self._key, candidate)

    async def bind(self, key: str) -> None:
        """Bind the owner key and flush buffered candidates in order.

        Raises:
            RuntimeError: If a key was already bound.
        """
        async with self._lock:
            if self._key is not None:
                raise RuntimeError(f'Outbox already bound to {self._key}.')
            self._key = key
            pending, self._pending = self._pending, []
            for candidate in pending:
                await self._deliver(key, candidate)

    async def _deliver(self, key: str, candidate: IceCandidate) -> None:
        try:
            await self._send(key, candidate)
        except RelayError as e:
            logger.warning(f'Failed to send candidate for {key}: {e}')


class Negotiator:
    """Base negotiation engine.

    Subclasses implement the role specific handlers. The base class owns
    the peer, the poll timers, the candidate outbox, and the publication of
    the phase and status.

    Events emitted on [`events`][peerpair.negotiation.base.Negotiator.events]:

    * `phase`: the new phase.
    * `status`: the new
      [`ConnectionStatus`][peerpair.negotiation.events.ConnectionStatus].
    * `data`: a string payload received from the remote peer.

    Args:
        relay: Client used to reach the relay.
        initiator: Local peer creates the offer.
        idle: Phase of a stopped engine.
        closed: Phase entered when an attempt is abandoned.
        peer_factory: Callable used to create local peers.
        ice_servers: STUN/TURN server URLs passed to the peer factory.
        retry_delay: Seconds to wait before restarting after an
            unexpected failure.
        observer: Callable invoked with every negotiation event.
    """

    role = 'peer'

    def __init__(
        self,
        relay: RelayClient,
        *,
        initiator: bool,
        idle: enum.Enum,
        closed: enum.Enum,
        peer_factory: PeerFactory = AiortcPeer,
        ice_servers: Sequence[str] = DEFAULT_ICE_SERVERS,
        retry_delay: float = 1.0,
        observer: Observer = log_event,
    ) -> None:
        self._relay = relay
        self._initiator = initiator
        self._idle = idle
        self._closed = closed
        self._peer_factory = peer_factory
        self._ice_servers = tuple(ice_servers)
        self._retry_delay = retry_delay
        self._observer = observer

        self.events = EventEmitter()

        self._epoch = 0
        self._running = False
        self._peer: Peer | None = None
        self._outbox: CandidateOutbox | None = None
        self._timers: dict[str, PeriodicTask] = {}
        self._restart_task: asyncio.Task[Any] | None = None
        self._phase: enum.Enum = idle
        self._status = ConnectionStatus.DISCONNECTED

    @property
    def _log_prefix(self) -> str:
        return f'{self.__class__.__name__}[attempt={self._epoch}]'

    @property
    def phase(self) -> Any:
        """Current phase of the engine."""
        return self._phase

    @property
    def status(self) -> ConnectionStatus:
        """Current coarse connectivity status."""
        return self._status

    @property
    def running(self) -> bool:
        """Engine was started and not closed."""
        return self._running

    @property
    def relay(self) -> RelayClient:
        """Client used to reach the relay."""
        return self._relay

    async def start(self) -> None:
        """Start negotiating.

        Raises:
            RuntimeError: If the engine is already running.
        """
        if self._running:
            raise RuntimeError(f'{self.__class__.__name__} already running.')
        self._running = True
        logger.info(f'{self._log_prefix}: starting')
        await self._begin()

    async def close(self) -> None:
        """Stop all timers, close the peer, and release relay state.

        A timer or peer event belonging to the closed attempt becomes a
        no-op.
        """
        if not self._running and self._peer is None:
            return
        self._running = False
        self._epoch += 1
        self._stop_timers()
        peer = self._detach_peer()
        cleanup = self._reset()
        self._enter(self._idle, ConnectionStatus.DISCONNECTED)

        if self._restart_task is not None:
            await self._restart_task
            self._restart_task = None
        await self._release(peer, cleanup)
        logger.info(f'{self._log_prefix}: closed')

    def send(self, payload: str) -> bool:
        """Send a payload to the remote peer if connected.

        Returns:
            If the payload was sent. Nothing is sent while disconnected.
        """
        peer = self._peer
        if self._status is not ConnectionStatus.CONNECTED or peer is None:
            return False
        try:
            peer.send(payload)
        except PeerConnectionError as e:
            logger.warning(
                f'{self._log_prefix}: failed to send payload: {e}',
            )
            return False
        self._observe(
            EventKind.MESSAGE_SENT,
            'sent payload',
            size=len(payload),
        )
        return True

    async def _begin(self) -> None:
        """Begin a new negotiation attempt."""
        raise NotImplementedError

    def _reset(self) -> Cleanup | None:
        """Discard role state of the current attempt.

        Returns:
            Optional coroutine function releasing relay state of the
            discarded attempt.
        """
        return None

    async def _send_candidate(
        self,
        key: str,
        candidate: IceCandidate,
    ) -> None:
        raise NotImplementedError

    async def _on_description(
        self,
        epoch: int,
        description: SessionDescription,
    ) -> None:
        raise NotImplementedError

    async def _on_open(self, epoch: int) -> None:
        raise NotImplementedError

    async def _on_data(self, epoch: int, data: str) -> None:
        self._observe(
            EventKind.MESSAGE_RECEIVED,
            'received payload',
            size=len(data),
        )
        self.events.emit('data', data)

    async def _on_candidate(self, epoch: int, candidate: IceCandidate) -> None:
        if self._outbox is not None:  # pragma: no branch
            await self._outbox.push(candidate)

    async def _on_close(self, epoch: int) -> None:
        self._fail(epoch, 'data channel closed')

    async def _on_error(self, epoch: int, error: Exception) -> None:
        self._fail(epoch, f'peer connection error: {error!r}')

    def _create_peer(self) -> Peer:
        epoch = self._epoch
        peer = self._peer_factory(self._initiator, self._ice_servers)
        peer.on('description', self._bind(epoch, self._on_description))
        peer.on('candidate', self._bind(epoch, self._on_candidate))
        peer.on('open', self._bind(epoch, self._on_open))
        peer.on('data', self._bind(epoch, self._on_data))
        peer.on('close', self._bind(epoch, self._on_close))
        peer.on('error', self._bind(epoch, self._on_error))
        self._peer = peer
        self._outbox = CandidateOutbox(self._send_candidate)
        return peer

    def _bind(
        self,
        epoch: int,
        handler: Callable[..., Awaitable[None]],
    ) -> Callable[..., Awaitable[None]]:
        async def _handler(*args: Any) -> None:
            if epoch != self._epoch:
                return
            try:
                await handler(epoch, *args)
            except Exception as e:
                self._fail(
                    epoch,
                    f'{handler.__name__} failed: {e!r}',
                    delay=self._retry_delay,
                )

        return _handler

    def _detach_peer(self) -> Peer | None:
        peer, self._peer = self._peer, None
        self._outbox = None
        if peer is not None:
            peer.remove_all_listeners()
        return peer

    def _start_timer(
        self,
        name: str,
        interval: float,
        callback: Callable[[int], Awaitable[None]],
    ) -> None:
        epoch = self._epoch

        async def _tick() -> None:
            if epoch != self._epoch:
                return
            try:
                await callback(epoch)
            except RelayError as e:
                logger.warning(
                    f'{self._log_prefix}: relay call in {name} failed, '
                    f'retrying next tick: {e}',
                )
            except Exception as e:
                self._fail(
                    epoch,
                    f'{name} failed: {e!r}',
                    delay=self._retry_delay,
                )

        self._stop_timer(name)
        timer = PeriodicTask(_tick, interval, name=f'{self.role}-{name}')
        self._timers[name] = timer
        timer.start()

    def _stop_timer(self, name: str) -> None:
        timer = self._timers.pop(name, None)
        if timer is not None:
            timer.stop()

    def _stop_timers(self) -> None:
        for name in list(self._timers):
            self._stop_timer(name)

    def _enter(self, phase: enum.Enum, status: ConnectionStatus) -> None:
        if phase is not self._phase:
            self._phase = phase
            self._observe(EventKind.PHASE_ENTERED, phase.value)
            self.events.emit('phase', phase)
        self._set_status(status)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is not self._status:
            self._status = status
            self.events.emit('status', status)

    def _observe(self, kind: EventKind, detail: str, **data: Any) -> None:
        self._observer(
            NegotiationEvent(
                role=self.role,
                kind=kind,
                detail=detail,
                data=data,
            ),
        )

    def _fail(self, epoch: int, reason: str, *, delay: float = 0) -> None:
        """Abandon the attempt and restart from the beginning.

        The local peer and all attempt state are discarded. The peer is
        closed and relay state is released in the background before the
        next attempt begins after `delay` seconds.
        """
        if epoch != self._epoch or not self._running:
            return
        self._observe(EventKind.ERROR, reason)
        self._epoch += 1
        self._stop_timers()
        peer = self._detach_peer()
        cleanup = self._reset()
        self._enter(self._closed, ConnectionStatus.DISCONNECTED)
        self._restart_task = spawn_guarded_background_task(
            self._restart,
            self._epoch,
            peer,
            cleanup,
            delay,
            name=f'{self.role}-restart',
        )

    async def _restart(
        self,
        epoch: int,
        peer: Peer | None,
        cleanup: Cleanup | None,
        delay: float,
    ) -> None:
        await self._release(peer, cleanup)
        if not self._running or epoch != self._epoch:
            return
        if delay > 0:
            self._start_timer('restart', delay, self._begin_after_delay)
        else:
            await self._begin()

    async def _begin_after_delay(self, epoch: int) -> None:
        self._stop_timer('restart')
        await self._begin()

    async def _release(
        self,
        peer: Peer | None,
        cleanup: Cleanup | None,
    ) -> None:
        if peer is not None:
            await peer.close()
        if cleanup is not None:
            await cleanup()
