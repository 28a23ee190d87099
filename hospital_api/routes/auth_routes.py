from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hospital_api.auth.dependencies import get_current_user
from hospital_api.models.user import User

router = APIRouter(tags=['auth'])


class CurrentUserResponse(BaseModel):
    user_id: int
    email: str
    full_name: str | None = None
    role: str


@router.get("/me", response_model=CurrentUserResponse)
def me(current_user: User = Depends(get_current_user)):
    return CurrentUserResponse(
        user_id=current_user.id,
        email=current_user.email,
        full_name=current_user.full_name,
        role=current_user.role,
    )
