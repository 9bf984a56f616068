"""Versioned history envelopes and the shapes their ``data`` can take.

Every history field is stored as ``{"version": <int>, "data": <payload>}``.
The payload is tagged with a ``FieldShape`` so the authorization layer can
dispatch on it instead of guessing per endpoint.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from clinic_backend.history.exceptions import MalformedDocumentError, ShapeMismatchError


class FieldShape(str, Enum):
    SCALAR_LIST = 'scalar_list'
    RECORD_LIST = 'record_list'
    RECORD = 'record'
    COUNTERS = 'counters'


@dataclass(frozen=True)
class VersionedField:
    """A ``{version, data}`` envelope around one history field."""

    version: int
    data: Any

    @classmethod
    def from_dict(cls, payload: Any, *, field: str | None = None) -> VersionedField:
        if isinstance(payload, VersionedField):
            return payload
        if not isinstance(payload, Mapping):
            raise MalformedDocumentError(
                f'History field must be an object, got {type(payload).__name__}.',
                field=field,
            )
        if 'data' not in payload:
            raise MalformedDocumentError("History field is missing 'data'.", field=field)

        version = payload.get('version')
        if isinstance(version, bool) or not isinstance(version, int):
            raise MalformedDocumentError(
                "History field 'version' must be an integer.",
                field=field,
            )
        return cls(version=version, data=payload['data'])

    def to_dict(self) -> dict[str, Any]:
        return {'version': self.version, 'data': self.data}


def _describe(data: Any) -> str:
    if isinstance(data, Mapping):
        return 'object'
    if isinstance(data, list):
        return 'list'
    if data is None:
        return 'null'
    return type(data).__name__


def infer_shape(data: Any) -> FieldShape:
    """Guess the shape of ``data`` for fields without a registered policy."""
    if isinstance(data, list):
        if data and all(isinstance(item, Mapping) for item in data):
            return FieldShape.RECORD_LIST
        return FieldShape.SCALAR_LIST
    if isinstance(data, Mapping):
        return FieldShape.RECORD
    raise ShapeMismatchError(None, 'list or object', _describe(data))


def entries(data: Any) -> list[Any]:
    """Return list-shaped ``data`` as a list; an empty object means no entries."""
    if isinstance(data, Mapping) and not data:
        return []
    return list(data)


def ensure_shape(field: str | None, data: Any, expected: FieldShape) -> None:
    """Raise ``ShapeMismatchError`` unless ``data`` fits ``expected``."""
    expected = FieldShape(expected)

    if expected in (FieldShape.SCALAR_LIST, FieldShape.RECORD_LIST):
        # Older clients send an empty object for a list they never filled in.
        if isinstance(data, Mapping) and not data:
            return

    if expected is FieldShape.SCALAR_LIST:
        if not isinstance(data, list):
            raise ShapeMismatchError(field, expected.value, _describe(data))
        for item in data:
            if isinstance(item, (Mapping, list)):
                raise ShapeMismatchError(field, expected.value, 'list of containers')
        return

    if expected is FieldShape.RECORD_LIST:
        if not isinstance(data, list):
            raise ShapeMismatchError(field, expected.value, _describe(data))
        for item in data:
            if not isinstance(item, Mapping):
                raise ShapeMismatchError(field, expected.value, f'list containing {_describe(item)}')
        return

    if not isinstance(data, Mapping):
        raise ShapeMismatchError(field, expected.value, _describe(data))
