"""Local peer connection abstraction.

A [`Peer`][peerpair.negotiation.peer.Peer] wraps one local peer connection
with a single data channel. Negotiation engines drive it by applying remote
descriptions and candidates and react to the events it emits:

* `description`: a local
  [`SessionDescription`][peerpair.relay.messages.SessionDescription]
  (the initiator's offer or the responder's answer) is ready.
* `candidate`: a local
  [`IceCandidate`][peerpair.relay.messages.IceCandidate] is ready.
* `open`: the data channel is open.
* `data`: a string payload was received over the data channel.
* `close`: the channel closed without
  [`close()`][peerpair.negotiation.peer.Peer.close] being called.
* `error`: the connection failed. The argument is an exception.
"""
from __future__ import annotations

import logging
from typing import Any
from typing import Callable
from typing import Protocol
from typing import runtime_checkable
from typing import Sequence

from aiortc import RTCConfiguration
from aiortc import RTCDataChannel
from aiortc import RTCIceServer
from aiortc import RTCPeerConnection
from aiortc import RTCSessionDescription
from aiortc.sdp import candidate_from_sdp
from pyee.asyncio import AsyncIOEventEmitter

from peerpair.negotiation.exceptions import PeerConnectionError
from peerpair.relay.messages import IceCandidate
from peerpair.relay.messages import SessionDescription

logger = logging.getLogger(__name__)

DEFAULT_ICE_SERVERS = (
    'stun:stun.l.google.com:19302',
    'stun:global.stun.twilio.com:3478',
)
"""Public STUN servers used when none are configured."""

DATA_CHANNEL_LABEL = 'peerpair'


@runtime_checkable
class Peer(Protocol):
    """Local peer connection protocol."""

    @property
    def initiator(self) -> bool:
        """Peer creates the offer and the data channel."""
        ...

    def on(self, event: str, f: Callable[..., Any] | None = None) -> Any:
        """Register a handler for an event."""
        ...

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Remove all handlers of an event or of all events."""
        ...

    async def start(self) -> None:
        """Start negotiating.

        The initiator creates its offer and emits it as a `description`
        event. Responders wait for an offer to be applied.
        """
        ...

    async def apply_description(
        self,
        description: SessionDescription,
    ) -> None:
        """Apply the remote peer's offer or answer.

        Applying an offer makes a responder emit its answer.
        """
        ...

    async def add_candidate(self, candidate: IceCandidate) -> None:
        """Add a candidate received from the remote peer."""
        ...

    def send(self, data: str) -> None:
        """Send a payload over the open data channel."""
        ...

    async def close(self) -> None:
        """Close the connection and release its resources."""
        ...


PeerFactory = Callable[[bool, Sequence[str]], Peer]
"""Callable taking `(initiator, ice_servers)` and returning a new peer."""


class AiortcPeer(AsyncIOEventEmitter):
    """Peer implemented with [aiortc](https://aiortc.readthedocs.io).

    Note:
        aiortc gathers all local candidates while setting the local
        description, so the candidates are carried in the description and
        no `candidate` events are emitted. Candidates received from a
        trickling remote peer are still applied.

    Args:
        initiator: Create the data channel and the offer.
        ice_servers: STUN/TURN server URLs used to gather candidates.
    """

    def __init__(
        self,
        initiator: bool,
        ice_servers: Sequence[str] = DEFAULT_ICE_SERVERS,
    ) -> None:
        super().__init__()
        self._initiator = initiator
        configuration = RTCConfiguration(
            iceServers=[RTCIceServer(urls=url) for url in ice_servers],
        )
        self._pc = RTCPeerConnection(configuration=configuration)
        self._channel: RTCDataChannel | None = None
        self._closed = False

        self._pc.on('connectionstatechange', self._on_connection_state)
        if not initiator:
            self._pc.on('datachannel', self._on_datachannel)

    @property
    def initiator(self) -> bool:
        """Peer creates the offer and the data channel."""
        return self._initiator

    @property
    def state(self) -> str:
        """Get the current connection state.

        Returns:
            One of 'connected', 'connecting', 'closed', 'failed', or 'new'.
        """
        return self._pc.connectionState

    async def start(self) -> None:
        """Create the data channel and emit the offer if the initiator."""
        if not self._initiator:
            return
        self._register_channel(self._pc.createDataChannel(DATA_CHANNEL_LABEL))
        await self._pc.setLocalDescription(await self._pc.createOffer())
        self._emit_local_description()

    async def apply_description(
        self,
        description: SessionDescription,
    ) -> None:
        """Apply the remote peer's offer or answer."""
        await self._pc.setRemoteDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type),
        )
        if description.type == 'offer':
            await self._pc.setLocalDescription(await self._pc.createAnswer())
            self._emit_local_description()

    async def add_candidate(self, candidate: IceCandidate) -> None:
        """Add a candidate received from the remote peer.

        An empty candidate string marks the end of the remote candidates
        and is skipped.
        """
        sdp = candidate.candidate
        if sdp.startswith('candidate:'):
            sdp = sdp[len('candidate:') :]
        if not sdp.strip():
            return
        rtc_candidate = candidate_from_sdp(sdp)
        rtc_candidate.sdpMid = candidate.sdp_mid
        rtc_candidate.sdpMLineIndex = candidate.sdp_mline_index
        await self._pc.addIceCandidate(rtc_candidate)

    def send(self, data: str) -> None:
        """Send a payload over the open data channel.

        Raises:
            PeerConnectionError: If the data channel is not open.
        """
        if self._channel is None or self._channel.readyState != 'open':
            raise PeerConnectionError('Data channel is not open.')
        self._channel.send(data)

    async def close(self) -> None:
        """Close the connection without emitting a `close` event."""
        self._closed = True
        if self._channel is not None:
            self._channel.close()
        await self._pc.close()

    def _emit_local_description(self) -> None:
        local = self._pc.localDescription
        self.emit(
            'description',
            SessionDescription(type=local.type, sdp=local.sdp),
        )

    def _register_channel(self, channel: RTCDataChannel) -> None:
        self._channel = channel
        channel.on('open', self._on_channel_open)
        channel.on('message', self._on_channel_message)
        channel.on('close', self._on_channel_close)

    def _on_datachannel(self, channel: RTCDataChannel) -> None:
        logger.info(f'Received data channel {channel.label} from peer')
        self._register_channel(channel)
        # The remote channel is already open when it is announced
        if channel.readyState == 'open':
            self._on_channel_open()

    def _on_channel_open(self) -> None:
        if not self._closed:
            self.emit('open')

    def _on_channel_message(self, message: bytes | str) -> None:
        if self._closed:
            return
        if isinstance(message, bytes):
            message = message.decode('utf-8', errors='replace')
        self.emit('data', message)

    def _on_channel_close(self) -> None:
        self._emit_close()

    async def _on_connection_state(self) -> None:
        state = self._pc.connectionState
        logger.debug(f'Peer connection entered {state} state')
        if self._closed:
            return
        if state == 'failed':
            self._closed = True
            if not self.listeners('error'):
                logger.warning('Peer connection failed with no listener')
                return
            self.emit(
                'error',
                PeerConnectionError('Peer connection entered failed state.'),
            )
        elif state == 'closed':
            self._emit_close()

    def _emit_close(self) -> None:
        if not self._closed:
            self._closed = True
            self.emit('close')
