# donorlink/routers/dashboard.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from donorlink.core.auth import require_complete_profile
from donorlink.database import get_session
from donorlink.models.user import User
from donorlink.repositories.conversation_repo import ConversationRepository
from donorlink.repositories.message_repo import MessageRepository
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.user import DashboardRead
from donorlink.services.conversation_service import ConversationService
from donorlink.services.dashboard_service import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

conversations = ConversationService(
    ConversationRepository(), UserRepository(), MessageRepository()
)
service = DashboardService(conversations)


@router.get("", response_model=DashboardRead)
def get_dashboard(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_complete_profile),
):
    """
    Dashboard overview: own profile, the role to search for, and the
    number of conversations.

    Incomplete profiles get 403 with `X-Redirect: /profile/setup`.
    """
    return service.get_overview(session, current_user)
