"""Auth endpoints: register, login, current user and logout."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from astralis.core.config import settings
from astralis.core.deps import (
    COOKIE_NAME,
    get_current_session,
    get_current_user,
    get_db,
    require_csrf_header,
    set_session_cookie,
)
from astralis.core.rate_limit import limiter
from astralis.db.models import Membership, Organization, User
from astralis.schemas.auth import LoginRequest, MeResponse, RegisterRequest, UserSession
from astralis.services import auth_service

router = APIRouter()

# Credential endpoints get a tighter per-IP limit than the API default
CREDENTIAL_RATE_LIMIT = "10/minute"


def _profile(db: Session, user: User, membership: Membership) -> MeResponse:
    org = db.get(Organization, membership.organization_id)
    return MeResponse(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        timezone=user.timezone,
        org_id=org.id,
        org_name=org.name,
        org_slug=org.slug,
        role=membership.role,
        ai_enabled=settings.ai_configured,
    )


@router.post(
    "/register",
    response_model=MeResponse,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(CREDENTIAL_RATE_LIMIT)
def register(request: Request, response: Response, data: RegisterRequest, db: Session = Depends(get_db)):
    """Sign up: a new organization with the caller as its admin. Signs the caller in."""
    try:
        user, membership = auth_service.register(db, data)
    except auth_service.EmailTakenError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except auth_service.AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    set_session_cookie(response, user, membership)
    return _profile(db, user, membership)


@router.post("/login", response_model=MeResponse, dependencies=[Depends(require_csrf_header)])
@limiter.limit(CREDENTIAL_RATE_LIMIT)
def login(request: Request, response: Response, data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user, membership = auth_service.authenticate(db, data.email, data.password)
    except auth_service.InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except auth_service.AuthError as e:
        raise HTTPException(status_code=403, detail=str(e))
    set_session_cookie(response, user, membership)
    return _profile(db, user, membership)


@router.get("/me", response_model=MeResponse)
def me(session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)):
    user = db.get(User, session.user_id)
    membership = db.query(Membership).filter(Membership.user_id == user.id).one()
    return _profile(db, user, membership)


@router.post("/logout", dependencies=[Depends(require_csrf_header)])
def logout(response: Response, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Bump the user's token_version so every outstanding cookie stops working."""
    auth_service.logout(db, user)
    response.delete_cookie(COOKIE_NAME, path="/")
    return {"status": "logged_out"}
