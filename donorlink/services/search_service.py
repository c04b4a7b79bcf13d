# donorlink/services/search_service.py
import logging
from typing import Iterable

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from donorlink.core.causes import ALL_CAUSES, is_known_cause
from donorlink.models.user import User
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.user import ProfileRead, SearchResponse, opposite_role

logger = logging.getLogger(__name__)


def filter_profiles(
    profiles: Iterable[User],
    location: str | None = None,
    cause: str = ALL_CAUSES,
) -> list[User]:
    """
    Apply the in-memory search filters, in order:

      1. location: case-insensitive substring match, skipped when blank
      2. cause: membership in the profile's causes, skipped for "all"
    """
    results = list(profiles)

    needle = (location or "").strip().lower()
    if needle:
        results = [
            p for p in results if p.location and needle in p.location.lower()
        ]

    if cause and cause != ALL_CAUSES:
        results = [p for p in results if p.causes and cause in p.causes]

    return results


class SearchService:
    """
    Opposite-role matching.

    Store query: role == opposite AND profile_complete == True.
    Everything else is filtered in memory. Results are unordered.
    """

    def __init__(self, repo: UserRepository):
        self.repo = repo

    def search(
        self,
        session: Session,
        current_user: User,
        location: str | None = None,
        cause: str = ALL_CAUSES,
    ) -> SearchResponse:
        if cause != ALL_CAUSES and not is_known_cause(cause):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Unknown cause: {cause}",
            )

        user_id = current_user.id
        search_role = opposite_role(current_user.role)

        try:
            candidates = self.repo.list_complete_by_role(session, search_role)
        except SQLAlchemyError:
            # Degrade to an empty result instead of failing the page
            session.rollback()
            logger.exception(f"Search query failed for user {user_id}")
            candidates = []

        matches = filter_profiles(candidates, location=location, cause=cause)

        return SearchResponse(
            search_role=search_role,
            total=len(matches),
            results=[ProfileRead.model_validate(p) for p in matches],
        )
