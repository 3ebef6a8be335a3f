"""Relay server configuration file parsing."""

from __future__ import annotations

import logging
import pathlib
import sys
from typing import Optional
from typing import Union

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from peerpair.relay.service import STALE_SESSION_SECONDS
from peerpair.utils.config import read_toml


class RelayLoggingConfig(BaseModel):
    """Relay logging configuration.

    Attributes:
        log_dir: Default logging directory.
        default_level: Default logging level for the root logger.
        server_level: Log level for the `uvicorn` and `quart` loggers. These
            log every request so it is suggested to set this to `WARNING` or
            higher.
        session_log_interval: Optional seconds between logging the number of
            live sessions.
    """

    model_config = ConfigDict(extra='forbid')

    log_dir: Optional[str] = None  # noqa: UP007
    default_level: Union[int, str] = logging.INFO  # noqa: UP007
    server_level: Union[int, str] = logging.WARNING  # noqa: UP007
    session_log_interval: Optional[int] = 60  # noqa: UP007


class RelayServingConfig(BaseModel):
    """Relay serving configuration.

    Attributes:
        host: Network interface the server binds to.
        port: Network port the server binds to.
        database_path: Optional path to an SQLite database file used to
            store signaling state. If `None`, state is only kept in-memory.
        stale_after: Seconds after the last update that a session is
            evicted.
        max_content_length: Maximum size in bytes of request bodies.
        logging: Logging configuration.
    """

    model_config = ConfigDict(extra='forbid')

    host: str = 'localhost'
    port: int = 8710
    database_path: Optional[str] = None  # noqa: UP007
    stale_after: float = STALE_SESSION_SECONDS
    max_content_length: Optional[int] = 2**20  # noqa: UP007
    logging: RelayLoggingConfig = Field(default_factory=RelayLoggingConfig)

    @field_validator('port')
    @classmethod
    def _port_validator(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError(f'Port must be in range [1, 65535], got {v}.')
        return v

    @field_validator('stale_after')
    @classmethod
    def _stale_after_validator(cls, v: float) -> float:
        if v <= 0:
            raise ValueError('Staleness window must be greater than zero.')
        return v

    @classmethod
    def from_toml(cls, filepath: str | pathlib.Path) -> Self:
        """Parse an TOML config file.

        Example:
            Minimal config persisting state to a database.
            ```toml title="relay.toml"
            host = "0.0.0.0"
            port = 8710
            database_path = "/path/to/signaling.db"

            [logging]
            log_dir = "/path/to/log/dir"
            default_level = "INFO"
            server_level = "WARNING"
            session_log_interval = 60
            ```

            ```python
            from peerpair.relay.config import RelayServingConfig

            config = RelayServingConfig.from_toml('relay.toml')
            ```

        Note:
            Omitted values will be set to their defaults (if they are an
            optional value with a default).
        """
        return read_toml(cls, filepath)
