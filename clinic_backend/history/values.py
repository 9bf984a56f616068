"""Scalar value rules shared by the history detectors.

The legacy clinic database records "no answer" in several ways (NULL, empty
string, a dash, zero, false, or the key simply missing). Everything in this
module treats those forms alike so the detectors can tell "filling in a blank"
apart from "overwriting a recorded value".
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable

Comparator = Callable[[Any, Any], bool]


class _Missing:
    """Sentinel for a key that is absent from a record."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'MISSING'

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()

EMPTY_STRINGS = frozenset({'', '-'})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_empty_value(value: Any) -> bool:
    """Return True if ``value`` is one of the recognised "no answer" forms.

    Membership is by exact value, not truthiness: ``"0"`` and ``True`` are
    recorded answers, ``0`` and ``False`` are not.
    """
    if value is None or value is MISSING or value is False:
        return True
    if isinstance(value, str):
        return value in EMPTY_STRINGS
    if _is_number(value):
        return value == 0
    return False


def fields_equal(a: Any, b: Any) -> bool:
    """Strict equality between two field values.

    Booleans only equal booleans, numbers compare by value regardless of
    int/float, ``None`` never equals a missing key. Containers compare
    structurally with the same rules.
    """
    if a is MISSING or b is MISSING:
        return a is b
    if a is None or b is None:
        return a is b
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a) != set(b):
            return False
        return all(fields_equal(a[key], b[key]) for key in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(fields_equal(x, y) for x, y in zip(a, b))
    if type(a) is not type(b):
        return False
    return a == b


def fields_differ(a: Any, b: Any) -> bool:
    return not fields_equal(a, b)


def matches_or_fills_blank(proposed: Any, saved: Any) -> bool:
    """Accept ``proposed`` if it keeps ``saved`` or fills a blank ``saved`` value."""
    return is_empty_value(saved) or fields_equal(proposed, saved)


def read_field(record: Mapping, key: str) -> Any:
    return record[key] if key in record else MISSING
