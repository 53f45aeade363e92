"""Request dependencies: database session, cookie auth, roles and CSRF."""

from typing import Generator, Iterable
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from astralis.core.config import settings
from astralis.core.security import create_session_token, decode_session_token
from astralis.db.enums import Role
from astralis.db.models import Membership, User
from astralis.db.session import SessionLocal
from astralis.schemas.auth import UserSession


COOKIE_NAME = "astralis_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """Yield a session bound to the request lifetime."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def _token_claims(request: Request) -> dict:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise _unauthorized("Not authenticated")
    try:
        claims = decode_session_token(token)
        claims["sub"] = UUID(claims["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise _unauthorized("Invalid session") from exc
    return claims


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Load the active user named by the session cookie.

    A token minted before the user's last logout carries a stale
    token_version and is rejected.
    """
    claims = _token_claims(request)
    user = db.get(User, claims["sub"])
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("Account disabled")
    if user.token_version != claims.get("token_version"):
        raise _unauthorized("Session revoked")
    return user


def get_current_session(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserSession:
    """Primary auth dependency: the caller plus their organization and role."""
    membership = db.query(Membership).filter(Membership.user_id == user.id).first()
    if membership is None:
        raise HTTPException(status_code=403, detail="No organization membership")
    if not Role.has_value(membership.role):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{membership.role}'. Contact administrator.",
        )
    return UserSession(
        user_id=user.id,
        org_id=membership.organization_id,
        role=Role(membership.role),
        email=user.email,
        display_name=user.display_name,
    )


def require_roles(allowed_roles: Iterable[Role]):
    """
    Build a dependency that admits only the given roles.

    Returns the UserSession, so it can stand in for get_current_session.
    """
    allowed = frozenset(allowed_roles)

    def dependency(session: UserSession = Depends(get_current_session)) -> UserSession:
        if session.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action",
            )
        return session

    return dependency


def require_csrf_header(request: Request) -> None:
    """Reject cookie-authenticated mutations lacking the XHR header."""
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def resolve_target_user(db: Session, session: UserSession, user_id: UUID | None) -> User:
    """
    Resolve the user an agent request acts on.

    Defaults to the caller. Another user must exist (404) and belong
    to the caller's organization (403).
    """
    target_id = user_id or session.user_id
    user = db.get(User, target_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if target_id == session.user_id:
        return user
    same_org = (
        db.query(Membership.id)
        .filter(
            Membership.user_id == target_id,
            Membership.organization_id == session.org_id,
        )
        .first()
    )
    if same_org is None:
        raise HTTPException(status_code=403, detail="User belongs to a different organization")
    return user


def set_session_cookie(response: Response, user: User, membership: Membership) -> None:
    """Issue the httponly session cookie for this user and membership."""
    token = create_session_token(
        user.id, membership.organization_id, membership.role, user.token_version
    )
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )
