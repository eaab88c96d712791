# tendercost/models/user.py
from datetime import datetime

from sqlalchemy import func
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Persistent user profile for the costing app.

    Identity:
      - id: MUST match Supabase auth.users.id (JWT "sub"), including
        anonymous users

    Access level:
      - "Tender Lead" | "Manager" | "Admin"
      - new rows always start as "Tender Lead"

    created_at is assigned by the database so that concurrent
    create-if-absent writers agree on a single creation time.
    """

    __tablename__ = "users"

    id: str = Field(
        primary_key=True,
        index=True,
        description="Matches Supabase auth.users.id",
    )

    full_name: str = Field(
        max_length=200,
        description="Display name; 'Anonymous User' for anonymous principals",
    )

    email: str | None = Field(
        default=None,
        index=True,
        description="Email from Supabase auth.users; null for anonymous users",
    )

    access_level: str = Field(
        default="Tender Lead",
        index=True,
        description="Application access level: Tender Lead | Manager | Admin",
    )

    # Only the seeded administrator is protected from deletion
    is_deletable: bool = Field(default=True)

    is_anonymous: bool = Field(default=False)

    created_at: datetime | None = Field(
        default=None,
        sa_column_kwargs={"server_default": func.now()},
        description="Creation timestamp, assigned by the database",
    )


class AdminUser(SQLModel, table=True):
    """
    Administrator flag keyed by user id.

    A row with is_admin=True grants admin access regardless of the
    profile's access level. Revoking deletes the row.
    """

    __tablename__ = "admin_users"

    id: str = Field(primary_key=True, description="Matches users.id")
    is_admin: bool = Field(default=True)
