"""Read and write TOML configuration files with Pydantic models.

Parsing is strict: values must already have the type of the field they
populate (e.g., a port written as `"8710"` is rejected) and any extra
validation declared by the model is applied.
"""

from __future__ import annotations

import pathlib
import sys
from typing import BinaryIO
from typing import TypeVar

import tomli_w
from pydantic import BaseModel

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    import tomllib
else:  # pragma: <3.11 cover
    import tomli as tomllib


ModelT = TypeVar('ModelT', bound=BaseModel)


def dumps(model: BaseModel, *, exclude_none: bool = True) -> str:
    """Serialize a config model to a TOML string.

    Args:
        model: Config model instance to serialize.
        exclude_none: Omit fields set to `None`. TOML has no null value so
            these fields fall back to their defaults when the file is read.
    """
    return tomli_w.dumps(model.model_dump(exclude_none=exclude_none))


def dump(
    model: BaseModel,
    fp: BinaryIO,
    *,
    exclude_none: bool = True,
) -> None:
    """Serialize a config model to a binary TOML stream."""
    fp.write(dumps(model, exclude_none=exclude_none).encode())


def loads(model: type[ModelT], data: str) -> ModelT:
    """Parse a TOML string into a config model.

    Raises:
        pydantic.ValidationError: If the parsed data does not match the
            schema of `model`.
    """
    return model.model_validate(tomllib.loads(data), strict=True)


def load(model: type[ModelT], fp: BinaryIO) -> ModelT:
    """Parse a binary TOML stream into a config model."""
    return loads(model, fp.read().decode())


def read_toml(model: type[ModelT], filepath: str | pathlib.Path) -> ModelT:
    """Parse a TOML file into a config model."""
    with open(filepath, 'rb') as f:
        return load(model, f)


def write_toml(model: BaseModel, filepath: str | pathlib.Path) -> None:
    """Write a config model to a TOML file."""
    with open(filepath, 'wb') as f:
        dump(model, f)
