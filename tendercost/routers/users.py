# tendercost/routers/users.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from tendercost.core.auth import require_auth, require_admin
from tendercost.database import get_session
from tendercost.models.user import User
from tendercost.repositories.user_repo import UserRepository
from tendercost.schemas.user import (
    AccessLevelUpdate,
    AdminFlagUpdate,
    UserRead,
)
from tendercost.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])

repo = UserRepository()
service = UserService(repo)


# -------- Self profile --------


@router.get("/me", response_model=UserRead)
def read_me(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Return the authenticated user's profile.

    The profile row is created on the first authenticated request,
    for anonymous sessions too.

    Auth:
      - Requires valid Supabase JWT.
    """
    return service.get_me(session, current_user)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[UserRead],
    dependencies=[Depends(require_admin)],
)
def list_users(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
):
    """
    List all users with their admin flag (admin only).

    Pagination via skip/limit.
    """
    return service.list_users(session, skip, limit)


@router.get(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_admin)],
)
def get_user(
    user_id: str,
    session: Session = Depends(get_session),
):
    """
    Get a specific user by id (admin only).
    """
    return service.get_user(session, user_id)


@router.patch(
    "/{user_id}/access-level",
    response_model=UserRead,
    dependencies=[Depends(require_admin)],
)
def change_access_level(
    user_id: str,
    payload: AccessLevelUpdate,
    session: Session = Depends(get_session),
):
    """
    Update a user's access level (admin only).

    Allowed levels: Tender Lead, Manager, Admin.
    """
    return service.update_access_level(session, user_id, payload)


@router.put(
    "/{user_id}/admin",
    response_model=UserRead,
    dependencies=[Depends(require_admin)],
)
def set_admin_flag(
    user_id: str,
    payload: AdminFlagUpdate,
    session: Session = Depends(get_session),
):
    """
    Grant or revoke the administrator flag (admin only).
    """
    return service.set_admin_flag(session, user_id, payload)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_user(
    user_id: str,
    session: Session = Depends(get_session),
):
    """
    Delete a user profile (admin only).

    The seeded administrator is protected and cannot be deleted.
    """
    service.delete_user(session, user_id)
