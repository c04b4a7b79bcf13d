# donorlink/routers/users.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from donorlink.core.auth import require_auth, require_complete_profile
from donorlink.database import get_session
from donorlink.models.user import User
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.user import ProfileRead, UserRead
from donorlink.services.profile_service import ProfileService

router = APIRouter(prefix="/users", tags=["Users"])

repo = UserRepository()
service = ProfileService(repo)


@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(require_auth)):
    """
    Return the authenticated user's profile.

    Available before profile setup so the client can check
    `profile_complete` and route accordingly.
    """
    return service.get_me(current_user)


@router.get(
    "/{user_id}",
    response_model=ProfileRead,
    dependencies=[Depends(require_complete_profile)],
)
def get_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Public profile of another user with a complete profile.
    """
    return service.get_public_profile(session, user_id)
