"""Core role lookup for RBAC (Role-Based Access Control).

Authentication happens upstream; by the time a history update reaches the
service layer, ``request.user`` carries a ``role`` with a ``name``.

Standard roles: doctor, patient, student, collaborator
"""

from django.conf import settings

DEFAULT_CLINICIAN_ROLES = frozenset({"doctor"})


def role_name(user):
    role = getattr(user, "role", None)
    return getattr(role, "name", None)


def clinician_roles() -> frozenset:
    """Role names that may edit saved history without restrictions."""
    roles = getattr(settings, "HISTORY_CLINICIAN_ROLES", None)
    if not roles:
        return DEFAULT_CLINICIAN_ROLES
    return frozenset(roles)


def is_clinician(user) -> bool:
    if not user or not getattr(user, "is_authenticated", False):
        return False

    name = role_name(user)
    if not name:
        return False

    return name in clinician_roles()
