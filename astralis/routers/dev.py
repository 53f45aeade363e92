"""Local development helpers. Mounted under /dev only when ENV=dev."""

from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from sqlalchemy.orm import Session

from astralis.core.config import settings
from astralis.core.deps import get_db, set_session_cookie
from astralis.db.models import Membership, User
from astralis.services import auth_service


def require_dev_secret(x_dev_secret: str = Header(...)) -> None:
    if not settings.DEV_SECRET or x_dev_secret != settings.DEV_SECRET:
        raise HTTPException(status_code=403, detail="Invalid dev secret")


router = APIRouter(dependencies=[Depends(require_dev_secret)])


@router.post("/seed")
def seed(db: Session = Depends(get_db)):
    """Dev organization plus one user per role; a second call reports already_seeded."""
    return auth_service.seed_dev_data(db)


@router.post("/login-as/{user_id}")
def login_as(user_id: UUID, response: Response, db: Session = Depends(get_db)):
    """Impersonate a user: issues their session cookie, no password involved."""
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=400, detail="User is disabled")
    membership = db.query(Membership).filter(Membership.user_id == user.id).first()
    if membership is None:
        raise HTTPException(status_code=400, detail="User has no membership")

    set_session_cookie(response, user, membership)
    return {
        "status": "logged_in",
        "user_id": str(user.id),
        "email": user.email,
        "role": membership.role,
        "org_id": str(membership.organization_id),
    }
