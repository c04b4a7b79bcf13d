# donorlink/routers/search.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from donorlink.core.auth import require_complete_profile
from donorlink.core.causes import ALL_CAUSES
from donorlink.database import get_session
from donorlink.models.user import User
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.user import SearchResponse
from donorlink.services.search_service import SearchService

router = APIRouter(prefix="/search", tags=["Search"])

repo = UserRepository()
service = SearchService(repo)


@router.get("", response_model=SearchResponse)
def search_profiles(
    location: str | None = None,
    cause: str = ALL_CAUSES,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_complete_profile),
):
    """
    Find users of the opposite role with a complete profile.

    Query params (optional):
      - location: case-insensitive substring of the profile location
      - cause: cause id, or "all" (default) for no cause filter

    An empty result is a normal 200 response.
    """
    return service.search(session, current_user, location=location, cause=cause)
