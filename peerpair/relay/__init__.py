"""Relay service and clients used to exchange handshake messages.

The relay stores a display's published offer as a session, the answers of
controllers which join the session, and the candidate logs of both sides.
[`serve()`][peerpair.relay.run.serve] exposes a
[`RelayService`][peerpair.relay.service.RelayService] over HTTP and peers
talk to it through a [`RelayClient`][peerpair.relay.client.RelayClient].
"""
from __future__ import annotations

from peerpair.relay.client import HTTPRelayClient
from peerpair.relay.client import LocalRelayClient
from peerpair.relay.client import RelayClient
from peerpair.relay.service import RelayService
