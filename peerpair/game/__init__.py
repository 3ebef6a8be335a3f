"""Snake game played between a display and a controller.

The display runs the game and the controller steers it. Both exchange the
messages of [`peerpair.game.messages`][peerpair.game.messages] over the data
channel opened by the negotiation engines.
"""
from __future__ import annotations
