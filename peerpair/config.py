"""Display and controller client configuration."""
from __future__ import annotations

import pathlib
import sys
from typing import List
from typing import Optional

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from peerpair.game.logic import GRID_SIZE
from peerpair.game.logic import TICK_INTERVAL
from peerpair.negotiation.controller import JOIN_TIMEOUT
from peerpair.negotiation.peer import DEFAULT_ICE_SERVERS
from peerpair.utils.config import read_toml
from peerpair.utils.config import write_toml


def _positive(name: str, v: float) -> float:
    if v <= 0:
        raise ValueError(f'{name} must be greater than zero, got {v}.')
    return v


class DisplayConfig(BaseModel):
    """Display configuration.

    Attributes:
        poll_interval: Seconds between polls for joined controllers.
        tick_interval: Seconds between game ticks.
        grid_size: Width and height of the game grid.
    """

    model_config = ConfigDict(extra='forbid')

    poll_interval: float = 1.0
    tick_interval: float = TICK_INTERVAL
    grid_size: int = GRID_SIZE

    @field_validator('poll_interval', 'tick_interval')
    @classmethod
    def _interval_validator(cls, v: float) -> float:
        return _positive('Interval', v)

    @field_validator('grid_size')
    @classmethod
    def _grid_size_validator(cls, v: int) -> int:
        # The initial snake is three cells long and starts at the center
        if v < 4:
            raise ValueError(f'Grid size must be at least 4, got {v}.')
        return v


class ControllerConfig(BaseModel):
    """Controller configuration.

    Attributes:
        discover_interval: Seconds between polls for a published session.
        candidate_interval: Seconds between polls for the display's
            candidates.
        join_timeout: Optional seconds within which a joined session must
            connect before discovery starts again.
    """

    model_config = ConfigDict(extra='forbid')

    discover_interval: float = 1.0
    candidate_interval: float = 0.5
    join_timeout: Optional[float] = JOIN_TIMEOUT  # noqa: UP007

    @field_validator('discover_interval', 'candidate_interval')
    @classmethod
    def _interval_validator(cls, v: float) -> float:
        return _positive('Interval', v)

    @field_validator('join_timeout')
    @classmethod
    def _join_timeout_validator(cls, v: float | None) -> float | None:
        return None if v is None else _positive('Join timeout', v)


class ClientConfig(BaseModel):
    """Client configuration shared by displays and controllers.

    Attributes:
        relay_address: Address of the relay server.
        ice_servers: STUN/TURN server URLs used to gather candidates.
        request_timeout: Timeout in seconds of each relay request.
        display: Display configuration.
        controller: Controller configuration.

    Raises:
        ValueError: If the relay address does not start with `http://` or
            `https://`.
    """

    model_config = ConfigDict(extra='forbid')

    relay_address: str = 'http://localhost:8710'
    ice_servers: List[str] = Field(  # noqa: UP006
        default_factory=lambda: list(DEFAULT_ICE_SERVERS),
    )
    request_timeout: float = 10
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    controller: ControllerConfig = Field(default_factory=ControllerConfig)

    @field_validator('relay_address')
    @classmethod
    def _relay_address_validator(cls, v: str) -> str:
        if not (v.startswith('http://') or v.startswith('https://')):
            raise ValueError(
                'Relay address must start with http:// or https://. '
                f'Got {v}.',
            )
        return v

    @field_validator('request_timeout')
    @classmethod
    def _request_timeout_validator(cls, v: float) -> float:
        return _positive('Request timeout', v)

    @classmethod
    def from_toml(cls, filepath: str | pathlib.Path) -> Self:
        """Parse an TOML config file.

        Example:
            ```toml title="peerpair.toml"
            relay_address = "https://relay.example.com"
            ice_servers = ["stun:stun.l.google.com:19302"]

            [display]
            poll_interval = 1.0

            [controller]
            join_timeout = 30
            ```
        """
        return read_toml(cls, filepath)

    def write_toml(self, filepath: str | pathlib.Path) -> None:
        """Write the config to a TOML file."""
        write_toml(self, filepath)
