# donorlink/services/dashboard_service.py
from sqlmodel import Session

from donorlink.models.user import User
from donorlink.schemas.user import DashboardRead, UserRead, opposite_role
from donorlink.services.conversation_service import ConversationService


class DashboardService:
    """
    Landing data for a signed-in user with a complete profile.
    """

    def __init__(self, conversations: ConversationService):
        self.conversations = conversations

    def get_overview(self, session: Session, current_user: User) -> DashboardRead:
        # Snapshot the profile first; a failed count rolls the session back
        user = UserRead.model_validate(current_user)
        return DashboardRead(
            user=user,
            search_role=opposite_role(user.role),
            conversation_count=self.conversations.count_for_user(session, current_user),
        )
