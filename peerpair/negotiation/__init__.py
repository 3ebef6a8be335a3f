"""Negotiation engines pairing a display and a controller.

The [`DisplayNegotiator`][peerpair.negotiation.display.DisplayNegotiator]
publishes an offer and waits for an answer while the
[`ControllerNegotiator`][peerpair.negotiation.controller.ControllerNegotiator]
discovers the offer and answers it. Both exchange candidates through the
relay until their data channel opens and restart from scratch when it
closes.
"""
from __future__ import annotations

from peerpair.negotiation.controller import ControllerNegotiator
from peerpair.negotiation.controller import ControllerPhase
from peerpair.negotiation.display import DisplayNegotiator
from peerpair.negotiation.display import DisplayPhase
from peerpair.negotiation.events import ConnectionStatus
