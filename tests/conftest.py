import os

# Settings are read once; point them at test values before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_URL"] = "https://test-project.supabase.co"
os.environ["SUPABASE_KEY"] = "test-anon-key"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-role-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-enough-length-1234"

import time
import uuid

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session, SQLModel
from supabase import AuthError

from donorlink.core.realtime import message_broker
from donorlink.database import engine
from donorlink.main import app
from donorlink.models.user import User

API = "/api/v1"


class FakeAuthError(AuthError):
    """AuthError with a stable constructor across supabase-auth versions."""

    def __init__(self, message: str):
        Exception.__init__(self, message)
        self.message = message


def make_token(user_id, email: str, expires_in: int = 3600) -> str:
    now = int(time.time())
    claims = {
        "sub": str(user_id),
        "email": email,
        "aud": "authenticated",
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(claims, os.environ["SUPABASE_JWT_SECRET"], algorithm="HS256")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user.id, user.email)}"}


def fetch(model, pk):
    """Read a row through a fresh session (bypasses the test identity map)."""
    with Session(engine) as s:
        return s.get(model, pk)


@pytest.fixture(autouse=True)
def db():
    SQLModel.metadata.create_all(engine)
    yield
    message_broker.clear()
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(db):
    with Session(engine) as s:
        yield s


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(session):
    def _make(
        role: str = "donor",
        complete: bool = True,
        name: str = "Test User",
        location: str = "Springfield, IL",
        bio: str = "Happy to help with local causes.",
        causes: list[str] | None = None,
        email: str | None = None,
    ) -> User:
        user_id = uuid.uuid4()
        user = User(
            id=user_id,
            email=email or f"{user_id.hex[:12]}@donorlink.org",
            role=role,
            profile_complete=complete,
        )
        if complete:
            user.name = name
            user.location = location
            user.bio = bio
            user.causes = causes if causes is not None else ["food"]
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make
