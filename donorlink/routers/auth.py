# donorlink/routers/auth.py
from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlmodel import Session

from donorlink.core.auth import bearer_scheme, require_auth
from donorlink.core.realtime import message_broker
from donorlink.database import get_session
from donorlink.models.user import User
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.user import AuthResponse, LoginRequest, SessionRead, SignupRequest
from donorlink.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])

repo = UserRepository()
service = AuthService(repo, message_broker)


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
def signup(
    payload: SignupRequest,
    session: Session = Depends(get_session),
):
    """
    Create an account (Supabase Auth) and its profile row.

    The profile starts with profile_complete = false; the client should
    continue with profile setup.
    """
    return service.signup(session, payload)


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    session: Session = Depends(get_session),
):
    """Email/password sign-in. Provider errors are returned verbatim (400)."""
    return service.login(session, payload)


@router.get("/session", response_model=SessionRead)
def read_session(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    current_user: User = Depends(require_auth),
):
    """
    Current session: the signed-in profile and token expiry.

    Auth:
      - Requires valid Supabase JWT.
    """
    return service.current_session(current_user, credentials.credentials)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    current_user: User = Depends(require_auth),
):
    """
    Sign out: closes the user's live chat feeds and revokes the session.
    """
    service.logout(current_user, credentials.credentials)
    return None
