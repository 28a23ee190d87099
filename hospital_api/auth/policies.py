"""Role and ownership checks shared by the routers."""

from hospital_api.core.errors import AuthorizationError
from hospital_api.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, User


def is_allowed(caller_role: str, caller_id: int | None, resource_owner_id: int | None) -> bool:
    """Admins may act on anything; doctors and patients only on what they own.

    ``caller_id`` and ``resource_owner_id`` are profile ids in the same space
    (doctor ids for doctor-owned resources, patient ids for patient-owned ones).
    """
    if caller_role == ROLE_ADMIN:
        return True
    if caller_role in (ROLE_DOCTOR, ROLE_PATIENT):
        return caller_id is not None and caller_id == resource_owner_id
    return False


def require_role(user: User, *roles: str, message: str | None = None) -> None:
    if user.role not in roles:
        labels = ' or '.join(role.capitalize() for role in roles)
        raise AuthorizationError(message or f'Forbidden: {labels} access required')


def require_allowed(caller_role: str, caller_id: int | None, resource_owner_id: int | None, message: str) -> None:
    if not is_allowed(caller_role, caller_id, resource_owner_id):
        raise AuthorizationError(message)
