"""
Self-service review of medical history updates.

Views validate the request body and review it against the saved document
between loading and storing:

    saved = load(patient_id, section)          # caller's persistence layer
    accepted = review_history_request(request.user, section, request.data, saved)
    store(patient_id, section, accepted)       # caller's persistence layer

``review_history_request`` runs ``HistoryUpdateSerializer`` first, the same
way the clinic's views call ``is_valid(raise_exception=True)`` before handing
``validated_data`` to a service. ``review_history_update`` is the lower-level
entry point for callers that already hold a parsed ``medicalHistory``.

The load-review-store sequence is not atomic on its own. Run it inside one
transaction, or rely on the version check (``HISTORY_ENFORCE_VERSION_MATCH``)
so that the second of two concurrent student updates is rejected as stale.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from clinic_backend.core.utils import log_history_action
from clinic_backend.history.authorization import authorize_history, resolve_caller_role
from clinic_backend.history.documents import VersionedField
from clinic_backend.history.exceptions import MalformedDocumentError
from clinic_backend.history.policies import get_section
from clinic_backend.history.serializers import HistoryUpdateSerializer


def review_history_update(
    user,
    section: str,
    patient_id: int | None,
    proposed_history: Mapping[str, Any] | None,
    saved_history: Mapping[str, Any] | None = None,
) -> Mapping[str, Any]:
    """Return ``proposed_history`` unchanged if ``user`` may store it.

    Raises:
        MalformedDocumentError: the request is missing a patient or carries
            an envelope that cannot be parsed.
        UnknownSectionError: no policy exists for ``section``.
        AuthorizationError: a patient/student update would change saved data.
    """
    policy = get_section(section)

    if not patient_id:
        raise MalformedDocumentError('Missing patientId.', field='patientId')
    if not isinstance(proposed_history, Mapping):
        raise MalformedDocumentError('Missing medicalHistory.', field='medicalHistory')

    for name, payload in proposed_history.items():
        VersionedField.from_dict(payload, field=name)

    role = resolve_caller_role(user)
    decision = authorize_history(role, proposed_history, saved_history, policy)

    meta = {'role': role.value, 'fields': sorted(proposed_history)}
    if decision.accepted:
        log_history_action(user, f'{policy.name}_history_update', patient_id=patient_id, meta=meta)
    else:
        meta.update({'field': decision.field, 'reason': decision.reason.value})
        log_history_action(user, f'{policy.name}_history_rejected', patient_id=patient_id, meta=meta)

    decision.raise_for_rejection(message_key=policy.message_key)
    return proposed_history


def review_history_request(
    user,
    section: str,
    payload: Any,
    saved_history: Mapping[str, Any] | None = None,
) -> Mapping[str, Any]:
    """Validate a ``{patientId, medicalHistory}`` body, then review it.

    Returns the validated ``medicalHistory``. An invalid body raises DRF's
    ``ValidationError`` (400); rejections raise as in ``review_history_update``.
    """
    serializer = HistoryUpdateSerializer(data=payload)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return review_history_update(
        user,
        section,
        data['patientId'],
        data['medicalHistory'],
        saved_history,
    )
