# donorlink/core/identity.py
"""
Thin wrapper around Supabase Auth.

Only the three identity operations the backend needs:
  - create_account  (email/password sign-up)
  - sign_in         (email/password sign-in)
  - sign_out        (revoke the session behind an access token)

Provider errors (bad credentials, duplicate email, weak password) are
raised as `supabase.AuthError`; callers surface the message verbatim.
"""
from dataclasses import dataclass

from donorlink.core.supabase_client import supabase_admin, supabase_auth_client


@dataclass
class AuthSession:
    """Identity returned by Supabase after sign-up / sign-in."""

    user_id: str
    email: str
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int | None = None


def _to_auth_session(response, email: str) -> AuthSession:
    user = response.user
    session = response.session
    return AuthSession(
        user_id=str(user.id),
        email=user.email or email,
        access_token=session.access_token if session else None,
        refresh_token=session.refresh_token if session else None,
        expires_at=session.expires_at if session else None,
    )


def create_account(email: str, password: str) -> AuthSession:
    """
    Create a Supabase Auth account.

    The session part is empty when the project requires email
    confirmation before the first sign-in.
    """
    client = supabase_auth_client()
    response = client.auth.sign_up({"email": email, "password": password})
    return _to_auth_session(response, email)


def sign_in(email: str, password: str) -> AuthSession:
    client = supabase_auth_client()
    response = client.auth.sign_in_with_password(
        {"email": email, "password": password}
    )
    return _to_auth_session(response, email)


def sign_out(access_token: str) -> None:
    """Revoke every refresh token issued for the user behind `access_token`."""
    supabase_admin().auth.admin.sign_out(access_token)
