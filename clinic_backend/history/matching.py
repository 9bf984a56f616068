"""
Diff detectors for append-only medical history updates.

Each detector compares a saved history payload against a proposed one and
answers a single question (is everything saved still there? was a recorded
value changed?). They are pure functions over already-parsed JSON:

- Saved payloads are never mutated.
- Comparators are injectable; the defaults live in ``history.values``.
- Detectors log their reasoning at DEBUG so a rejected update can be traced
  back to the record or field that caused it.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from clinic_backend.history.values import (
    MISSING,
    Comparator,
    fields_differ,
    fields_equal,
    is_empty_value,
    read_field,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Containment
# ---------------------------------------------------------------------------

def _item_matches(saved_item: Any, candidate: Any, comparator: Comparator) -> bool:
    if isinstance(saved_item, Mapping):
        if not isinstance(candidate, Mapping):
            return False
        return all(
            comparator(read_field(candidate, key), value)
            for key, value in saved_item.items()
        )
    return comparator(candidate, saved_item)


def _freeze(value: Any) -> Any:
    """Hashable key for a JSON value; identical items get identical keys."""
    if isinstance(value, Mapping):
        items = ((str(key), _freeze(nested)) for key, nested in value.items())
        return ('map', tuple(sorted(items, key=lambda item: item[0])))
    if isinstance(value, (list, tuple)):
        return ('list', tuple(_freeze(nested) for nested in value))
    return (type(value).__name__, value)


def _augment(root: int, candidates: list[list[int]], owner: dict[int, int]) -> bool:
    """Find an augmenting path from saved item ``root`` and flip it.

    Iterative depth-first search: ``path`` holds the saved items on the
    current path and ``steps`` the proposed positions between them.
    """
    visited: set[int] = set()
    path = [root]
    steps: list[int] = []
    pending = [iter(candidates[root])]

    while pending:
        for position in pending[-1]:
            if position in visited:
                continue
            visited.add(position)
            steps.append(position)
            if position not in owner:
                for index, taken in zip(path, steps):
                    owner[taken] = index
                return True
            path.append(owner[position])
            pending.append(iter(candidates[owner[position]]))
            break
        else:
            pending.pop()
            path.pop()
            if steps:
                steps.pop()

    return False


def is_subset(
    saved: Sequence[Any] | None,
    proposed: Sequence[Any] | None,
    comparator: Comparator = fields_equal,
) -> bool:
    """Return True if every saved item can be matched to its own proposed item.

    A proposed item satisfies at most one saved item, so two identical saved
    records need two identical proposed records. Order is irrelevant: the
    matching is a full bipartite assignment, not a first-fit scan.

    For record items, every key of the saved record must satisfy
    ``comparator(proposed[key], saved[key])``; keys the proposed record lacks
    are read as ``MISSING``.
    """
    saved = list(saved or [])
    proposed = list(proposed or [])
    if not saved:
        return True

    if len(proposed) < len(saved):
        logger.debug(
            'Request has %d items but %d are saved, something was removed.',
            len(proposed),
            len(saved),
        )
        return False

    # Identical saved items share one candidate list and one greedy cursor.
    by_key: dict[Any, list[int]] = {}
    cursors: dict[Any, int] = {}
    keys = []
    candidates = []
    for saved_item in saved:
        key = _freeze(saved_item)
        if key not in by_key:
            by_key[key] = [
                position for position, item in enumerate(proposed)
                if _item_matches(saved_item, item, comparator)
            ]
            cursors[key] = 0
        keys.append(key)
        candidates.append(by_key[key])

    owner: dict[int, int] = {}
    unmatched = []
    for index, key in enumerate(keys):
        options = by_key[key]
        cursor = cursors[key]
        while cursor < len(options) and options[cursor] in owner:
            cursor += 1
        cursors[key] = cursor
        if cursor < len(options):
            owner[options[cursor]] = index
        else:
            unmatched.append(index)

    for index in unmatched:
        if not candidates[index] or not _augment(index, candidates, owner):
            logger.debug('Saved item %d not found in request: %r', index, saved[index])
            return False

    return True


# ---------------------------------------------------------------------------
# Positional mutation
# ---------------------------------------------------------------------------

def edits_existing_data(
    saved: Sequence[Any] | None,
    proposed: Sequence[Any] | None,
    comparator: Comparator = fields_differ,
) -> bool:
    """Return True if a recorded value was changed at its original position.

    Record ``i`` of the request is compared with saved record ``i``. Only keys
    present in both are inspected, and only saved values that are not empty
    count, so filling in a blank is never reported. A request shorter than the
    saved list is not reported here; ``is_subset`` catches removals.
    """
    saved = list(saved or [])
    proposed = list(proposed or [])

    for index, saved_item in enumerate(saved):
        if index >= len(proposed):
            logger.debug('Request has no item at position %d, skipping.', index)
            continue
        proposed_item = proposed[index]

        if not isinstance(saved_item, Mapping):
            if not is_empty_value(saved_item) and comparator(proposed_item, saved_item):
                logger.debug('Item %d changed: %r -> %r', index, saved_item, proposed_item)
                return True
            continue

        if not isinstance(proposed_item, Mapping):
            logger.debug('Item %d is no longer a record: %r', index, proposed_item)
            return True

        for key, saved_value in saved_item.items():
            if key not in proposed_item or is_empty_value(saved_value):
                continue
            if comparator(proposed_item[key], saved_value):
                logger.debug(
                    'Item %d field %s changed: %r -> %r',
                    index,
                    key,
                    saved_value,
                    proposed_item[key],
                )
                return True

    return False


def _medication_values(record: Any) -> tuple[Any, Any, Any] | None:
    if not isinstance(record, Mapping):
        return None
    dose = record['dose'] if 'dose' in record else read_field(record, 'dosage')
    return read_field(record, 'medication'), dose, read_field(record, 'frequency')


def detects_unauthorized_change(
    new_data: Sequence[Any] | None,
    old_data: Sequence[Any] | None,
) -> bool:
    """Return True if a saved medication record was altered or dropped.

    Records carry ``medication``, ``dose`` (or ``dosage``) and ``frequency``.
    With nothing saved there is nothing to violate. A saved record whose three
    fields are all empty may be filled in freely.
    """
    new_data = list(new_data or [])
    old_data = list(old_data or [])
    if not old_data:
        return False

    for index, old_record in enumerate(old_data):
        old_values = _medication_values(old_record)
        if old_values is None:
            if is_empty_value(old_record):
                continue
        elif all(is_empty_value(value) for value in old_values):
            continue

        new_record = new_data[index] if index < len(new_data) else MISSING
        new_values = _medication_values(new_record)
        if old_values is not None and new_values is not None:
            if all(fields_equal(new, old) for new, old in zip(new_values, old_values)):
                continue

        logger.debug('Medication record %d changed: %r -> %r', index, old_record, new_record)
        return True

    return False


# ---------------------------------------------------------------------------
# Singleton records
# ---------------------------------------------------------------------------

def _section_data(section: Any) -> Any:
    if isinstance(section, Mapping) and 'data' in section:
        return section['data']
    return MISSING


def _overwrites(saved_value: Any, proposed_value: Any, ignored: frozenset[str], path: str) -> bool:
    if isinstance(saved_value, Mapping):
        proposed_map = proposed_value if isinstance(proposed_value, Mapping) else {}
        for key, nested in saved_value.items():
            if key in ignored:
                logger.debug('Skipping changes check for %s.%s', path, key)
                continue
            if _overwrites(nested, read_field(proposed_map, key), ignored, f'{path}.{key}'):
                return True
        return False

    if isinstance(saved_value, list):
        if not saved_value:
            return False
        proposed_list = proposed_value if isinstance(proposed_value, list) else []
        if not is_subset(saved_value, proposed_list):
            logger.debug('%s no longer contains every saved item.', path)
            return True
        return False

    if is_empty_value(saved_value):
        return False

    if fields_differ(proposed_value, saved_value):
        logger.debug('%s changed: %r -> %r', path, saved_value, proposed_value)
        return True
    return False


def edits_filled_fields(
    proposed: Mapping[str, Any] | None,
    saved: Mapping[str, Any] | None,
    ignored_keys: Iterable[str] = (),
) -> bool:
    """Return True if a filled-in field of a singleton section is overwritten.

    Both arguments map section names to ``{"data": {...}}`` envelopes. Sections
    absent from ``saved`` have nothing to protect. Within a section every
    saved field is checked: non-empty scalars must keep their value, nested
    objects are checked field by field, and saved lists must still be
    contained in the proposed list.
    """
    ignored = frozenset(ignored_keys)
    saved = saved or {}

    for section, proposed_section in (proposed or {}).items():
        if section in ignored:
            continue
        saved_data = _section_data(saved.get(section))
        if saved_data is MISSING or saved_data is None:
            logger.debug('Nothing saved for %s, safe to proceed.', section)
            continue
        if _overwrites(saved_data, _section_data(proposed_section), ignored, section):
            return True

    return False


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

LEADING_INT = re.compile(r'\s*([+-]?\d+)')


def _leading_int(value: Any) -> int | None:
    """Read the integer a form field starts with: ``"2.5"`` is 2, ``"3 kids"`` is 3."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    return None


def _as_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def decreases_counters(saved: Mapping[str, Any] | None, proposed: Mapping[str, Any] | None) -> bool:
    """Return True if a saved tally is dropped, unreadable, or lowered.

    The requested count is read up to its first non-digit and compared with
    the saved value as stored, so a saved ``2.7`` needs at least ``3``.
    """
    proposed = proposed if isinstance(proposed, Mapping) else {}

    for key, saved_count in (saved or {}).items():
        if key not in proposed:
            logger.debug('Counter %s is missing from the request.', key)
            return True

        requested = _leading_int(proposed[key])
        if requested is None:
            logger.debug('Counter %s is not a number: %r', key, proposed[key])
            return True

        current = _as_number(saved_count)
        if current is not None and requested < current:
            logger.debug('Counter %s lowered: %s < %s', key, requested, current)
            return True

    return False
