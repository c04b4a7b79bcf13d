# donorlink/routers/profile.py
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlmodel import Session

from donorlink.core.auth import require_auth, require_complete_profile
from donorlink.core.causes import CAUSES
from donorlink.database import get_session
from donorlink.models.user import User
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.user import CauseRead, ProfileFields, UserRead
from donorlink.services.profile_service import ProfileService

router = APIRouter(tags=["Profile"])

repo = UserRepository()
service = ProfileService(repo)


def _parse_fields(
    name: str,
    location: str,
    bio: str,
    causes: list[str],
) -> ProfileFields:
    """
    Validate form fields into ProfileFields.

    Errors are reported per field (422) before anything is uploaded or
    written.
    """
    try:
        return ProfileFields.model_validate(
            {"name": name, "location": location, "bio": bio, "causes": causes}
        )
    except ValidationError as exc:
        errors = []
        for err in exc.errors(include_url=False, include_context=False):
            err["loc"] = ("body", *err["loc"])
            errors.append(err)
        raise RequestValidationError(errors)


def _read_image(image: UploadFile | None) -> tuple[str, bytes] | None:
    """Return (content_type, bytes), or None when no file was chosen."""
    if image is None or not image.filename:
        return None

    file_bytes = image.file.read()
    if not file_bytes:
        return None

    if not image.content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing content-type for uploaded file",
        )
    return image.content_type, file_bytes


@router.get("/causes", response_model=list[CauseRead])
def list_causes():
    """Cause catalogue used by profiles and search (public)."""
    return [CauseRead(id=cause_id, label=label) for cause_id, label in CAUSES.items()]


@router.post("/profile/setup", response_model=UserRead)
def setup_profile(
    name: str = Form(""),
    location: str = Form(""),
    bio: str = Form(""),
    causes: list[str] = Form([]),
    image: UploadFile | None = File(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    First-time profile completion (multipart form).

    - Validates name, location, bio and causes.
    - Optional image: JPEG, PNG or WEBP, max 5MB.
    - Sets profile_complete = true. A second call returns 409.
    """
    fields = _parse_fields(name, location, bio, causes)
    return service.setup_profile(session, current_user, fields, _read_image(image))


@router.put("/profile", response_model=UserRead)
def update_profile(
    name: str = Form(""),
    location: str = Form(""),
    bio: str = Form(""),
    causes: list[str] = Form([]),
    image: UploadFile | None = File(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_complete_profile),
):
    """
    Edit an existing profile (multipart form).

    Same validation as setup. The current image is kept unless a new
    one is uploaded. profile_complete is never changed here.
    """
    fields = _parse_fields(name, location, bio, causes)
    return service.update_profile(session, current_user, fields, _read_image(image))
