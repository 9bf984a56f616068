"""
History-specific exceptions for the history app.

Expected rejections are returned as ``Decision`` values by the authorization
module. These exceptions are raised for malformed input, or by the service
layer once a rejection has to abort a request, and are translated to DRF
responses by ``history.responses``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ReasonCode(str, Enum):
    """Machine-readable reason attached to a rejected update."""

    RECORD_REMOVED = 'record_removed'
    RECORD_MODIFIED = 'record_modified'
    FIELD_OVERWRITTEN = 'field_overwritten'
    COUNTER_DECREASED = 'counter_decreased'
    FIELD_REMOVED = 'field_removed'
    SHAPE_MISMATCH = 'shape_mismatch'
    STALE_VERSION = 'stale_version'


class HistoryError(Exception):
    """Base exception for all medical-history update errors."""

    def to_dict(self) -> dict[str, Any]:
        return {'detail': str(self)}


class AuthorizationError(HistoryError):
    """
    Raised when a proposed update would edit or delete previously saved data.

    Attributes:
        reason: ReasonCode describing the violation
        field: The history field that failed (None if document-level)
        message_key: Catalog key the boundary uses to pick the user-facing text
    """
    def __init__(
        self,
        reason: ReasonCode,
        *,
        field: str | None = None,
        message_key: str = 'update',
        message: str = 'Update would change previously saved data',
    ):
        self.reason = ReasonCode(reason)
        self.field = field
        self.message_key = message_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = {
            'detail': str(self),
            'reason': self.reason.value,
        }
        if self.field:
            result['field'] = self.field
        return result


class ShapeMismatchError(HistoryError):
    """
    Raised when a document's data does not have the shape its field expects.

    A mismatch is always treated as a rejection, never as "nothing saved".
    """
    def __init__(self, field: str | None, expected: str, actual: str):
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Field '{field}' expected {expected} data but received {actual}"
        )

    def to_dict(self) -> dict[str, Any]:
        result = {
            'detail': str(self),
            'reason': ReasonCode.SHAPE_MISMATCH.value,
            'expected': self.expected,
            'actual': self.actual,
        }
        if self.field:
            result['field'] = self.field
        return result


class MalformedDocumentError(HistoryError):
    """
    Raised when a versioned field payload cannot be parsed at all
    (not an object, missing ``data``, non-integer ``version``).
    """
    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = {'detail': str(self)}
        if self.field:
            result['field'] = self.field
        return result


class UnknownSectionError(HistoryError):
    """Raised when no policy is registered for a history section name."""

    def __init__(self, section: str):
        self.section = section
        super().__init__(f"Unknown history section '{section}'")

    def to_dict(self) -> dict[str, Any]:
        return {'detail': str(self), 'section': self.section}
