# donorlink/core/auth.py
import logging
import uuid
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from donorlink.core.config import get_settings
from donorlink.database import get_session
from donorlink.models.user import User
from donorlink.repositories.user_repo import UserRepository

settings = get_settings()

logger = logging.getLogger(__name__)

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately,
#   require_auth turns it into a 401 with our own message.
bearer_scheme = HTTPBearer(auto_error=False)

user_repo = UserRepository()

PROFILE_SETUP_PATH = "/profile/setup"


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Args:
        token: raw JWT from the Authorization header.

    Returns:
        Decoded JWT claims.

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def user_from_token(session: Session, token: str) -> User:
    """
    Resolve the profile row behind a Supabase access token.

    Flow:
      1. Decode JWT => extract 'sub' (auth user id) and 'email'.
      2. Convert 'sub' to UUID to match User.id type.
      3. Find the profile by id, falling back to the email for
         accounts whose row was written before the id was known.

    Raises:
        HTTPException(401): malformed token, missing claims, or no profile.
        HTTPException(503): the profile store could not be read.
    """
    payload = decode_access_token(token)
    sub = payload.get("sub")
    email = payload.get("email")

    if not sub or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub/email",
        )

    # Supabase provides sub as a string; enforce UUID
    try:
        sub_uuid = uuid.UUID(sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub in token",
        )

    try:
        user = user_repo.get_by_id(session, sub_uuid)
        if user is None:
            # Profiles store emails lower-cased (see AuthService.signup)
            user = user_repo.get_by_email(session, email.lower())
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Loading profile for token subject {sub_uuid} failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Loading profile failed. Please try again.",
        )

    # No auto-provisioning: the role is only known at sign-up.
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No profile for this account. Please sign up.",
        )
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current user from a Supabase JWT.

    Returns:
        User instance if a bearer token is present, else None.

    Raises:
        HTTPException(401): if the token is present but unusable.
    """
    if credentials is None:
        return None
    return user_from_token(session, credentials.credentials)


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Returns:
        The authenticated User.

    Raises:
        HTTPException(401): if user is None.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def require_complete_profile(user: User = Depends(require_auth)) -> User:
    """
    Gate for dashboard, search, profile edit and messaging routes.

    Users who have not finished profile setup get a 403 with an
    `X-Redirect` header pointing the client to the setup page.
    """
    if not user.profile_complete:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Profile setup required",
            headers={"X-Redirect": PROFILE_SETUP_PATH},
        )
    return user
