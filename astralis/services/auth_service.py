"""Auth service - registration, password login, logout and dev seeding."""

from __future__ import annotations

import logging
import re

from sqlalchemy import func
from sqlalchemy.orm import Session

from astralis.core.security import hash_password, verify_password
from astralis.db.enums import Role
from astralis.db.models import Membership, Organization, User
from astralis.schemas.auth import RegisterRequest
from astralis.utils.time_windows import get_zone, utcnow

logger = logging.getLogger(__name__)

DEV_ORG_SLUG = "dev-org"
DEV_ORG_NAME = "Dev Organization"
DEV_PASSWORD = "devpassword"
SEED_USERS: list[tuple[str, str, Role]] = [
    ("admin@dev.astralis.one", "Dev Admin", Role.ADMIN),
    ("manager@dev.astralis.one", "Dev Manager", Role.MANAGER),
    ("member@dev.astralis.one", "Dev Member", Role.MEMBER),
    ("developer@dev.astralis.one", "Dev Developer", Role.DEVELOPER),
]


class AuthError(Exception):
    """Base exception for auth operations."""
    pass


class EmailTakenError(AuthError):
    def __init__(self):
        super().__init__("Email already registered")


class InvalidCredentialsError(AuthError):
    def __init__(self):
        super().__init__("Invalid email or password")


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:80] or "org"


def _unique_slug(db: Session, name: str) -> str:
    base = _slugify(name)
    slug = base
    suffix = 2
    while db.query(Organization).filter(Organization.slug == slug).first():
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def register(db: Session, data: RegisterRequest) -> tuple[User, Membership]:
    """Create an organization with its first (admin) user."""
    if find_user_by_email(db, data.email):
        raise EmailTakenError()
    tz_name = get_zone(data.timezone).key

    org = Organization(
        name=data.org_name,
        slug=_unique_slug(db, data.org_name),
        timezone=tz_name,
    )
    user = User(
        email=data.email.lower(),
        display_name=data.display_name,
        password_hash=hash_password(data.password),
        timezone=tz_name,
    )
    db.add_all([org, user])
    db.flush()
    membership = Membership(user_id=user.id, organization_id=org.id, role=Role.ADMIN.value)
    db.add(membership)
    db.commit()
    db.refresh(user)
    db.refresh(membership)
    logger.info("Registered org %s with admin %s", org.id, user.id)
    return user, membership


def authenticate(db: Session, email: str, password: str) -> tuple[User, Membership]:
    """Check credentials; the same error covers unknown email and bad password."""
    user = find_user_by_email(db, email)
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()
    membership = db.query(Membership).filter(Membership.user_id == user.id).first()
    if not membership:
        raise AuthError("No organization membership")
    user.last_login_at = utcnow()
    db.commit()
    return user, membership


def logout(db: Session, user: User) -> None:
    """Revoke every outstanding session token for the user."""
    user.token_version += 1
    db.commit()


# =============================================================================
# Dev seeding
# =============================================================================

def seed_dev_data(db: Session) -> dict:
    """Create/repair the dev org and its users (idempotent)."""
    org = db.query(Organization).filter(Organization.slug == DEV_ORG_SLUG).first()
    changed = False
    if not org:
        org = Organization(name=DEV_ORG_NAME, slug=DEV_ORG_SLUG)
        db.add(org)
        db.flush()
        changed = True

    users_payload: list[dict[str, str]] = []
    for email, name, role in SEED_USERS:
        user = find_user_by_email(db, email)
        if not user:
            user = User(
                email=email,
                display_name=name,
                password_hash=hash_password(DEV_PASSWORD),
            )
            db.add(user)
            db.flush()
            changed = True

        membership = db.query(Membership).filter(Membership.user_id == user.id).first()
        if not membership:
            db.add(Membership(user_id=user.id, organization_id=org.id, role=role.value))
            changed = True
        elif membership.organization_id != org.id or membership.role != role.value:
            membership.organization_id = org.id
            membership.role = role.value
            changed = True

        users_payload.append({"email": email, "user_id": str(user.id), "role": role.value})

    db.commit()
    return {
        "status": "seeded" if changed else "already_seeded",
        "org_id": str(org.id),
        "org_slug": DEV_ORG_SLUG,
        "password": DEV_PASSWORD,
        "users": users_payload,
    }
