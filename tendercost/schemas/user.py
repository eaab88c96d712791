# tendercost/schemas/user.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import SQLModel

# App-level access levels. New profiles always start at the base level.
AccessLevel = Literal["Tender Lead", "Manager", "Admin"]

BASE_ACCESS_LEVEL: AccessLevel = "Tender Lead"
ADMIN_ACCESS_LEVEL: AccessLevel = "Admin"


class Principal(BaseModel):
    """
    Authenticated identity issued by Supabase Auth (may be anonymous).

    The application never mutates a principal; it only asks the auth
    service to sign in or out and observes the result.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    email: str | None = None
    is_anonymous: bool = False

    @field_validator("email")
    @classmethod
    def blank_email_is_none(cls, v: str | None) -> str | None:
        # Supabase reports anonymous users with an empty email string
        if v is not None and not v.strip():
            return None
        return v


class UserProfile(SQLModel):
    """
    Profile record mirrored by the client session.

    Validated from raw rows coming back from PostgREST / Realtime, so
    unknown columns are ignored rather than rejected.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    full_name: str
    email: str | None = None
    access_level: AccessLevel = BASE_ACCESS_LEVEL
    is_deletable: bool = True
    is_anonymous: bool = False
    created_at: datetime | None = None


def _default_name_from_email(email: str) -> str:
    """
    Derive a default display name from email if the user has not
    completed their profile yet.
    """
    if "@" in email:
        return email.split("@", 1)[0]
    return email


def default_profile_row(principal: Principal, anonymous_name: str) -> dict:
    """
    Row written the first time a principal is seen.

    created_at is not part of the payload; the database assigns it.
    """
    if principal.email and not principal.is_anonymous:
        full_name = _default_name_from_email(principal.email)
    else:
        full_name = anonymous_name
    return {
        "id": principal.id,
        "full_name": full_name,
        "email": principal.email,
        "access_level": BASE_ACCESS_LEVEL,
        "is_deletable": True,
        "is_anonymous": principal.is_anonymous,
    }


class UserRead(UserProfile):
    """Response schema returned to admin clients."""

    is_admin: bool = False


class AccessLevelUpdate(SQLModel):
    """
    Admin-only access level update schema.
    """

    model_config = ConfigDict(extra="forbid")
    access_level: AccessLevel


class AdminFlagUpdate(SQLModel):
    """
    Admin-only administrator flag toggle.

    Clearing the flag removes the admin_users row entirely.
    """

    model_config = ConfigDict(extra="forbid")
    is_admin: bool

