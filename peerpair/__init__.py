"""PeerPair pairs a display and a controller over a WebRTC data channel."""
from __future__ import annotations

import importlib.metadata as importlib_metadata

__version__ = importlib_metadata.version('peerpair')
