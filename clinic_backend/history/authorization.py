"""
Update authorization for medical history documents.

Clinicians are the source of truth and may replace any history field.
Patients and students may only add: every saved entry must survive, and no
recorded (non-empty) value may change. The decision is made per field and
combined per document, all-or-nothing.

Architecture Rules:
- No I/O. Callers load the saved document and persist the proposed one.
- Rejections are returned as ``Decision`` values; only malformed input raises.
- The engine never merges documents. An accepted proposal is stored verbatim.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from django.conf import settings

from clinic_backend.core.permissions import is_clinician
from clinic_backend.history.documents import (
    FieldShape,
    VersionedField,
    ensure_shape,
    entries,
    infer_shape,
)
from clinic_backend.history.exceptions import AuthorizationError, ReasonCode, ShapeMismatchError
from clinic_backend.history.matching import (
    decreases_counters,
    detects_unauthorized_change,
    edits_existing_data,
    edits_filled_fields,
    is_subset,
)
from clinic_backend.history.policies import FieldPolicy, MutationCheck, SectionPolicy, get_section
from clinic_backend.history.values import fields_equal, is_empty_value, matches_or_fills_blank

logger = logging.getLogger(__name__)


class CallerRole(str, Enum):
    CLINICIAN = 'clinician'
    PATIENT = 'patient'


def resolve_caller_role(user) -> CallerRole:
    """Map a request user to a caller role. Unknown roles are treated as patients."""
    if is_clinician(user):
        return CallerRole.CLINICIAN
    return CallerRole.PATIENT


@dataclass(frozen=True)
class Decision:
    accepted: bool
    field: str | None = None
    reason: ReasonCode | None = None

    @classmethod
    def accept(cls) -> Decision:
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: ReasonCode, field: str | None = None) -> Decision:
        return cls(accepted=False, field=field, reason=ReasonCode(reason))

    def __bool__(self) -> bool:
        return self.accepted

    def raise_for_rejection(self, *, message_key: str = 'update') -> None:
        if self.accepted:
            return
        raise AuthorizationError(self.reason, field=self.field, message_key=message_key)


def _enforce_version_match() -> bool:
    return bool(getattr(settings, 'HISTORY_ENFORCE_VERSION_MATCH', True))


def _resolve_shape(policy: FieldPolicy | None, saved_data: Any, proposed_data: Any) -> FieldShape:
    if policy is not None:
        return policy.shape
    if isinstance(saved_data, list) and not saved_data:
        return infer_shape(proposed_data)
    return infer_shape(saved_data)


def _check_lists(
    shape: FieldShape,
    saved: list[Any],
    proposed: list[Any],
    check: MutationCheck | None,
    field: str | None,
) -> Decision:
    comparator = matches_or_fills_blank if check else fields_equal
    if not is_subset(saved, proposed, comparator):
        return Decision.reject(ReasonCode.RECORD_REMOVED, field)

    if shape is FieldShape.RECORD_LIST:
        if check is MutationCheck.POSITIONAL and edits_existing_data(saved, proposed):
            return Decision.reject(ReasonCode.RECORD_MODIFIED, field)
        if check is MutationCheck.MEDICATION and detects_unauthorized_change(proposed, saved):
            return Decision.reject(ReasonCode.RECORD_MODIFIED, field)

    return Decision.accept()


def authorize_update(
    caller_role: CallerRole,
    proposed: VersionedField | Mapping[str, Any],
    saved: VersionedField | Mapping[str, Any] | None,
    policy: FieldPolicy | None = None,
    *,
    field: str | None = None,
) -> Decision:
    """Decide whether ``proposed`` may replace ``saved`` for one history field.

    ``saved`` is None when nothing has been stored yet; that is a pure
    addition and always accepted. Without a ``policy`` the shape is inferred
    from the data.
    """
    proposed = VersionedField.from_dict(proposed, field=field)

    if CallerRole(caller_role) is CallerRole.CLINICIAN:
        return Decision.accept()

    if saved is None:
        logger.debug('No saved data for %s, accepting.', field)
        return Decision.accept()
    saved = VersionedField.from_dict(saved, field=field)
    if saved.data is None:
        return Decision.accept()

    if _enforce_version_match() and proposed.version != saved.version:
        logger.warning(
            'Version mismatch for %s: request=%s saved=%s',
            field,
            proposed.version,
            saved.version,
        )
        return Decision.reject(ReasonCode.STALE_VERSION, field)

    try:
        shape = _resolve_shape(policy, saved.data, proposed.data)
        ensure_shape(field, saved.data, shape)
        ensure_shape(field, proposed.data, shape)
    except ShapeMismatchError as exc:
        logger.warning('Rejecting %s: %s', field, exc)
        return Decision.reject(ReasonCode.SHAPE_MISMATCH, field)

    if shape in (FieldShape.SCALAR_LIST, FieldShape.RECORD_LIST):
        check = policy.mutation_check if policy is not None else None
        return _check_lists(shape, entries(saved.data), entries(proposed.data), check, field)

    if shape is FieldShape.COUNTERS:
        if decreases_counters(saved.data, proposed.data):
            return Decision.reject(ReasonCode.COUNTER_DECREASED, field)
        return Decision.accept()

    key = field or 'data'
    ignored = policy.ignored_keys if policy is not None else ()
    if edits_filled_fields({key: proposed.to_dict()}, {key: saved.to_dict()}, ignored):
        return Decision.reject(ReasonCode.FIELD_OVERWRITTEN, field)
    return Decision.accept()


def _has_content(value: Any) -> bool:
    if isinstance(value, Mapping):
        return any(_has_content(nested) for nested in value.values())
    if isinstance(value, list):
        return bool(value)
    return not is_empty_value(value)


def authorize_history(
    caller_role: CallerRole,
    proposed_history: Mapping[str, Any] | None,
    saved_history: Mapping[str, Any] | None,
    section: SectionPolicy | str,
) -> Decision:
    """Decide a whole history document; the first rejected field rejects it.

    A saved field with content that the request leaves out counts as a
    removal. Fields the section does not declare are checked with an
    inferred shape.
    """
    if not isinstance(section, SectionPolicy):
        section = get_section(section)

    if CallerRole(caller_role) is CallerRole.CLINICIAN:
        logger.info('Clinician update of %s history accepted without checks.', section.name)
        return Decision.accept()

    proposed_history = proposed_history or {}
    saved_history = saved_history or {}

    for name, payload in proposed_history.items():
        decision = authorize_update(
            caller_role,
            payload,
            saved_history.get(name),
            section.policy_for(name),
            field=name,
        )
        if not decision:
            logger.warning(
                'Rejected %s history update: field=%s reason=%s',
                section.name,
                decision.field,
                decision.reason.value,
            )
            return decision

    for name, saved_payload in saved_history.items():
        if name in proposed_history or saved_payload is None:
            continue
        if isinstance(saved_payload, VersionedField):
            data = saved_payload.data
        elif isinstance(saved_payload, Mapping):
            data = saved_payload.get('data')
        else:
            data = saved_payload
        if _has_content(data):
            logger.warning('Rejected %s history update: field %s was left out.', section.name, name)
            return Decision.reject(ReasonCode.FIELD_REMOVED, name)

    logger.info('Accepted %s history update (%d fields).', section.name, len(proposed_history))
    return Decision.accept()
