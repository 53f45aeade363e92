"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from astralis.db.enums import Role


class UserSession(BaseModel):
    """
    Full session context for authenticated requests.

    Returned by the get_current_session dependency and carries
    everything needed for authorization.
    """
    user_id: UUID
    org_id: UUID
    role: Role
    email: str
    display_name: str


class RegisterRequest(BaseModel):
    org_name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    timezone: str = "UTC"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class MeResponse(BaseModel):
    """Response schema for GET /auth/me endpoint."""
    user_id: UUID
    email: str
    display_name: str
    timezone: str
    org_id: UUID
    org_name: str
    org_slug: str
    role: Role
    ai_enabled: bool = False
