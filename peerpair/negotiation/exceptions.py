"""Exception types for peer negotiation errors."""
from __future__ import annotations


class PeerConnectionError(Exception):
    """Error establishing or using a peer connection."""

    pass
