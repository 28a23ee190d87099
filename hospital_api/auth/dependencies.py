import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import func
from sqlalchemy.orm import Session

from hospital_api.auth import jwt_handler
from hospital_api.core.errors import AuthenticationError
from hospital_api.database import get_db, storage_errors
from hospital_api.models.user import USER_ROLES, User

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise AuthenticationError("Invalid token subject")

    with storage_errors(db, "loading the current user"):
        user = db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()
    if user is None:
        raise AuthenticationError("User not found")
    if user.role not in USER_ROLES:
        raise AuthenticationError("User profile has no valid role")
    return user
