# donorlink/repositories/user_repo.py
import uuid

from sqlmodel import Session, select

from donorlink.models.user import User


class UserRepository:
    """
    Data access layer for User profiles.

    Responsibilities:
      - Pure DB operations (CRUD + queries)
      - No FastAPI, no HTTP, no business logic
    """

    # ----- Basic CRUD -----

    def get_by_id(self, session: Session, user_id: uuid.UUID) -> User | None:
        """Return a User by primary key, or None if not found."""
        return session.get(User, user_id)

    def get_by_email(self, session: Session, email: str) -> User | None:
        """Return a User by unique email, or None if not found."""
        stmt = select(User).where(User.email == email)
        return session.exec(stmt).first()

    def list_by_ids(self, session: Session, user_ids: list[uuid.UUID]) -> list[User]:
        if not user_ids:
            return []
        stmt = select(User).where(User.id.in_(user_ids))
        return list(session.exec(stmt).all())

    def list_complete_by_role(self, session: Session, role: str) -> list[User]:
        """
        All users of a role who finished profile setup.

        Incomplete profiles are never returned here.
        """
        stmt = select(User).where(
            User.role == role,
            User.profile_complete == True,  # noqa: E712
        )
        return list(session.exec(stmt).all())

    def create(self, session: Session, user: User) -> User:
        """Insert a new User and return the persisted row."""
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def update(self, session: Session, user: User) -> User:
        """Persist changes to an existing User."""
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
