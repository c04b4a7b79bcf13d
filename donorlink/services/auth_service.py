# donorlink/services/auth_service.py
import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from supabase import AuthError

from donorlink.core.auth import decode_access_token
from donorlink.core.identity import AuthSession, create_account, sign_in, sign_out
from donorlink.core.realtime import MessageBroker
from donorlink.models.user import User
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.user import (
    AuthResponse,
    LoginRequest,
    SessionRead,
    SignupRequest,
    UserRead,
)

logger = logging.getLogger(__name__)


class AuthService:
    """
    Sign-up, sign-in and sign-out on top of Supabase Auth.

    Responsibilities:
      - surface provider errors verbatim (400), writing nothing locally
      - create the profile row (profile_complete = False) after sign-up
      - tear down live message subscriptions on sign-out
    """

    def __init__(self, repo: UserRepository, broker: MessageBroker):
        self.repo = repo
        self.broker = broker

    @staticmethod
    def _auth_error(exc: AuthError) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message or "Authentication failed",
        )

    @staticmethod
    def _unavailable(action: str) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{action} failed. Please try again.",
        )

    @staticmethod
    def _response(user: User, identity: AuthSession) -> AuthResponse:
        return AuthResponse(
            user=UserRead.model_validate(user),
            access_token=identity.access_token,
            refresh_token=identity.refresh_token,
            expires_at=identity.expires_at,
        )

    def signup(self, session: Session, payload: SignupRequest) -> AuthResponse:
        """
        Create the Supabase account, then the local profile row.

        Rules:
          - email must not already have a profile
          - role is stored once and never changed afterwards
        """
        email = payload.email.lower()

        try:
            existing = self.repo.get_by_email(session, email)
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Duplicate check before sign-up failed")
            raise self._unavailable("Creating account")

        if existing is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User already registered",
            )

        try:
            identity = create_account(email, payload.password)
        except AuthError as exc:
            raise self._auth_error(exc)

        user = User(
            id=uuid.UUID(identity.user_id),
            email=email,
            role=payload.role,
            profile_complete=False,
        )
        try:
            user = self.repo.create(session, user)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"Saving profile row for new account {identity.user_id} failed")
            raise self._unavailable("Creating account")

        logger.info(f"New {user.role} account {user.id}")
        return self._response(user, identity)

    def login(self, session: Session, payload: LoginRequest) -> AuthResponse:
        try:
            identity = sign_in(payload.email.lower(), payload.password)
        except AuthError as exc:
            raise self._auth_error(exc)

        try:
            user = self.repo.get_by_id(session, uuid.UUID(identity.user_id))
            if user is None:
                user = self.repo.get_by_email(session, identity.email.lower())
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"Loading profile for account {identity.user_id} failed")
            raise self._unavailable("Signing in")

        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="No profile for this account. Please sign up.",
            )
        return self._response(user, identity)

    def current_session(self, user: User, token: str) -> SessionRead:
        claims = decode_access_token(token)
        return SessionRead(
            user=UserRead.model_validate(user),
            expires_at=claims.get("exp"),
        )

    def logout(self, user: User, token: str) -> None:
        """
        End the session.

        Live subscriptions are cancelled first so no view keeps receiving
        messages for a signed-out user, then the session is revoked.
        """
        cancelled = self.broker.cancel_user(user.id)
        if cancelled:
            logger.info(f"Closed {cancelled} live subscription(s) for user {user.id}")

        try:
            sign_out(token)
        except AuthError as exc:
            raise self._auth_error(exc)
        except RuntimeError:
            # supabase_admin() refuses to start without the service role key
            logger.exception(f"Revoking session of user {user.id} failed")
            raise self._unavailable("Signing out")
