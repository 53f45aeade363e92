"""Calendar chat router - conversational scheduling with confirm-before-write."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from astralis.core.deps import get_current_session, get_db, require_csrf_header
from astralis.db.models import User
from astralis.schemas.agent import CalendarChatRequest, CalendarChatResponse
from astralis.schemas.auth import UserSession
from astralis.services import calendar_chat_service

router = APIRouter(tags=["Calendar Chat"])


@router.post(
    "",
    response_model=CalendarChatResponse,
    dependencies=[Depends(require_csrf_header)],
)
async def chat(
    data: CalendarChatRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Send one chat turn.

    Mutating requests come back with requires_confirmation and an action;
    resend with confirmed=true and that action as pending_action to apply it.
    """
    user = db.query(User).filter(User.id == session.user_id).first()
    return await calendar_chat_service.process_message(
        db,
        session.org_id,
        session.user_id,
        data.message,
        conversation_history=[turn.model_dump() for turn in data.conversation_history],
        confirmed=data.confirmed,
        pending_action=data.pending_action,
        tz_name=user.timezone if user else "UTC",
    )
