import pytest

from hospital_api.auth.policies import is_allowed, require_allowed, require_role
from hospital_api.core.errors import AuthorizationError
from hospital_api.models.user import User


@pytest.mark.parametrize(
    ('caller_role', 'caller_id', 'owner_id', 'expected'),
    [
        ('admin', None, 7, True),
        ('admin', 3, 7, True),
        ('doctor', 7, 7, True),
        ('doctor', 3, 7, False),
        ('doctor', None, None, False),
        ('patient', 4, 4, True),
        ('patient', 4, 5, False),
        ('nurse', 7, 7, False),
    ],
)
def test_is_allowed(caller_role: str, caller_id, owner_id, expected: bool) -> None:
    assert is_allowed(caller_role, caller_id, owner_id) is expected


def test_require_role_passes_listed_role() -> None:
    require_role(User(email='a@example.com', role='doctor'), 'admin', 'doctor')


def test_require_role_builds_default_message() -> None:
    with pytest.raises(AuthorizationError) as exception_info:
        require_role(User(email='p@example.com', role='patient'), 'admin', 'doctor')

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Forbidden: Admin or Doctor access required'


def test_require_allowed_uses_given_message() -> None:
    with pytest.raises(AuthorizationError) as exception_info:
        require_allowed('doctor', 1, 2, 'Not yours')

    assert exception_info.value.detail == 'Not yours'
