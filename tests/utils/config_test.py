from __future__ import annotations

import io
import pathlib
from typing import List
from typing import Optional

import pydantic
import pytest
from pydantic import BaseModel

from peerpair.utils.config import dump
from peerpair.utils.config import dumps
from peerpair.utils.config import load
from peerpair.utils.config import loads
from peerpair.utils.config import read_toml
from peerpair.utils.config import write_toml


class _Timing(BaseModel):
    interval: float
    label: str


class _Section(BaseModel):
    timing: _Timing
    servers: List[str]  # noqa: UP006


class _Config(BaseModel):
    enabled: bool
    timeout: Optional[float] = None  # noqa: UP007
    section: _Section


TEST_CONFIG = _Config(
    enabled=True,
    section=_Section(
        timing=_Timing(interval=0.5, label='poll'),
        servers=['stun:a', 'stun:b'],
    ),
)
TEST_CONFIG_REPR = """\
enabled = true

[section]
servers = [
    "stun:a",
    "stun:b",
]

[section.timing]
interval = 0.5
label = "poll"
"""


def test_dumps() -> None:
    assert dumps(TEST_CONFIG) == TEST_CONFIG_REPR


def test_dump_to_stream() -> None:
    stream = io.BytesIO()
    dump(TEST_CONFIG, stream)
    assert stream.getvalue().decode() == TEST_CONFIG_REPR


def test_dumps_drops_none_values() -> None:
    assert 'timeout' not in dumps(TEST_CONFIG)
    config = TEST_CONFIG.model_copy(update={'timeout': 2.0})
    assert 'timeout = 2.0' in dumps(config)


def test_loads() -> None:
    assert loads(_Config, TEST_CONFIG_REPR) == TEST_CONFIG


def test_load_from_stream() -> None:
    stream = io.BytesIO(TEST_CONFIG_REPR.encode())
    assert load(_Config, stream) == TEST_CONFIG


def test_loads_is_strict() -> None:
    data = TEST_CONFIG_REPR.replace('enabled = true', 'enabled = "true"')
    with pytest.raises(pydantic.ValidationError):
        loads(_Config, data)


def test_file_round_trip(tmp_path: pathlib.Path) -> None:
    filepath = tmp_path / 'config.toml'
    write_toml(TEST_CONFIG, filepath)
    assert filepath.read_text() == TEST_CONFIG_REPR
    assert read_toml(_Config, filepath) == TEST_CONFIG
