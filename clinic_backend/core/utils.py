import logging

from clinic_backend.core.permissions import role_name

logger = logging.getLogger(__name__)


def log_history_action(user, action, patient_id=None, meta=None):
    """Write one audit line for a medical-history access or update.

    The audit line must never break the request it describes.
    """

    try:
        name = role_name(user) or ''
        username = getattr(user, 'username', '') or ''
    except Exception:
        name = ''
        username = ''

    try:
        logger.info(
            'history_audit action=%s patient_id=%s user=%s role=%s meta=%s',
            action,
            patient_id,
            username,
            name,
            meta or {},
        )
    except Exception:
        logger.exception('Audit log write failed (action=%s, patient_id=%s)', action, patient_id)
