# donorlink/services/profile_service.py
import logging
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from donorlink.core.storage_utils import (
    delete_public_url,
    profile_image_path,
    upload_to_storage,
)
from donorlink.models.user import User
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.user import ProfileFields

logger = logging.getLogger(__name__)


# --- Image config ---

MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5MB per image

ALLOWED_IMAGE_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


class ProfileService:
    """
    Business logic for the profile lifecycle.

    Two flows share one contract (validated ProfileFields, optional image,
    merged write):
      - setup: only while profile_complete is False, and the only place
        that sets it to True
      - edit: requires a complete profile, never touches profile_complete
    """

    def __init__(self, repo: UserRepository):
        self.repo = repo

    # ----- Helpers -----

    @staticmethod
    def _validate_and_get_ext(content_type: str, file_bytes: bytes) -> str:
        if content_type not in ALLOWED_IMAGE_CONTENT_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Unsupported image type. Allowed: JPEG, PNG, WEBP.",
            )

        if len(file_bytes) > MAX_IMAGE_BYTES:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="Image too large (max 5MB).",
            )

        return ALLOWED_IMAGE_CONTENT_TYPES[content_type]

    def _upload_profile_image(
        self,
        user: User,
        content_type: str,
        file_bytes: bytes,
    ) -> str:
        """
        Upload the profile image to a deterministic path so a new upload
        overwrites the old one.

        Path pattern:
            profile-images/<user_id>.<ext>
        """
        ext = self._validate_and_get_ext(content_type, file_bytes)
        path = profile_image_path(user.id, ext)

        try:
            new_url = upload_to_storage(path, file_bytes, content_type)
        except Exception:
            logger.exception(f"Profile image upload failed for user {user.id}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Uploading profile image failed. Please try again.",
            )

        return new_url

    @staticmethod
    def _discard_old_image(old_url: str | None, new_url: str | None) -> None:
        """
        Best-effort cleanup when the extension (and so the path) changed.

        Only called once the new URL is stored, so the row never points at
        a deleted object.
        """
        if not old_url or old_url == new_url:
            return
        try:
            delete_public_url(old_url)
        except Exception:
            logger.warning(f"Could not delete old profile image {old_url}")

    def _save(self, session: Session, user: User, action: str) -> User:
        try:
            return self.repo.update(session, user)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"{action} failed for user {user.id}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"{action} failed. Please try again.",
            )

    @staticmethod
    def _apply_fields(user: User, fields: ProfileFields) -> None:
        user.name = fields.name
        user.location = fields.location
        user.bio = fields.bio
        user.causes = list(fields.causes)
        user.updated_at = datetime.now(timezone.utc)

    # ----- Reads -----

    def get_me(self, current_user: User) -> User:
        """Return the current authenticated user."""
        return current_user

    def get_public_profile(self, session: Session, user_id: uuid.UUID) -> User:
        """
        Profile of another user.

        Raises:
            HTTPException(404): if not found or setup is unfinished.
            HTTPException(503): the profile store could not be read.
        """
        try:
            user = self.repo.get_by_id(session, user_id)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"Loading profile {user_id} failed")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Loading profile failed. Please try again.",
            )
        if not user or not user.profile_complete:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        return user

    # ----- Writes -----

    def setup_profile(
        self,
        session: Session,
        current_user: User,
        fields: ProfileFields,
        image: tuple[str, bytes] | None = None,
    ) -> User:
        """
        First-time profile completion.

        Steps:
          1. Refuse if the profile is already complete.
          2. Upload the image, if any.
          3. Write fields and set profile_complete = True.
        """
        if current_user.profile_complete:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Profile already complete",
            )

        old_url = current_user.profile_image_url
        image_url = None
        if image is not None:
            image_url = self._upload_profile_image(current_user, *image)

        self._apply_fields(current_user, fields)
        current_user.profile_image_url = image_url
        current_user.profile_complete = True

        user = self._save(session, current_user, "Profile setup")
        if image_url is not None:
            self._discard_old_image(old_url, image_url)
        return user

    def update_profile(
        self,
        session: Session,
        current_user: User,
        fields: ProfileFields,
        image: tuple[str, bytes] | None = None,
    ) -> User:
        """
        Profile edit. The existing image is kept unless a new one is sent.
        """
        old_url = current_user.profile_image_url
        if image is not None:
            current_user.profile_image_url = self._upload_profile_image(
                current_user, *image
            )

        self._apply_fields(current_user, fields)

        user = self._save(session, current_user, "Profile update")
        self._discard_old_image(old_url, user.profile_image_url)
        return user
