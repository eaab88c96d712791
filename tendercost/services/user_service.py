# tendercost/services/user_service.py
from typing import Any

from fastapi import HTTPException, status
from sqlmodel import Session

from tendercost.models.user import User
from tendercost.repositories.user_repo import UserRepository
from tendercost.schemas.user import (
    ADMIN_ACCESS_LEVEL,
    AccessLevelUpdate,
    AdminFlagUpdate,
    UserRead,
)


class UserService:
    """
    Business logic for User profiles.

    Responsibilities:
      - enforce app rules (protected accounts, access levels)
      - orchestrate repository operations
      - map domain errors to HTTP errors
    """

    AUTH_PAGE_SIZE = 1000

    def __init__(self, repo: UserRepository):
        self.repo = repo

    # ---- internal helpers ----

    def _to_read(self, user: User, is_admin: bool) -> UserRead:
        return UserRead.model_validate({**user.model_dump(), "is_admin": is_admin})

    # ----- Self profile -----

    def get_me(self, session: Session, current_user: User) -> UserRead:
        """Return the current authenticated user's profile."""
        return self._to_read(current_user, self.repo.is_admin(session, current_user.id))

    # ----- Admin operations -----

    def list_users(self, session: Session, skip: int, limit: int) -> list[UserRead]:
        """List users with pagination and their admin flag (admin only)."""
        admins = self.repo.admin_ids(session)
        return [
            self._to_read(user, user.id in admins)
            for user in self.repo.list(session, skip=skip, limit=limit)
        ]

    def _get_user(self, session: Session, user_id: str) -> User:
        user = self.repo.get_by_id(session, user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        return user

    def get_user(self, session: Session, user_id: str) -> UserRead:
        """
        Get a user by id (admin only).

        Raises:
            HTTPException(404): if not found.
        """
        user = self._get_user(session, user_id)
        return self._to_read(user, self.repo.is_admin(session, user_id))

    def update_access_level(
        self,
        session: Session,
        user_id: str,
        payload: AccessLevelUpdate,
    ) -> UserRead:
        """
        Change a user's access level (admin only).

        The protected account always stays an administrator.
        """
        user = self._get_user(session, user_id)
        if not user.is_deletable and payload.access_level != ADMIN_ACCESS_LEVEL:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Protected account must remain Admin",
            )
        user.access_level = payload.access_level
        user = self.repo.update(session, user)
        return self._to_read(user, self.repo.is_admin(session, user_id))

    def set_admin_flag(
        self,
        session: Session,
        user_id: str,
        payload: AdminFlagUpdate,
    ) -> UserRead:
        """Grant or revoke the administrator flag (admin only)."""
        user = self._get_user(session, user_id)
        self.repo.set_admin(session, user_id, payload.is_admin)
        # the flag commit expires the loaded profile
        session.refresh(user)
        return self._to_read(user, payload.is_admin)

    def delete_user(self, session: Session, user_id: str) -> None:
        """
        Delete a user profile (admin only).

        Raises:
            HTTPException(403): if the profile is protected.
        """
        user = self._get_user(session, user_id)
        if not user.is_deletable:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="This user cannot be deleted",
            )
        self.repo.delete(session, user)

    # ----- Startup -----

    def seed_initial_admin(
        self,
        session: Session,
        admin_client: Any,
        email: str,
        password: str,
        full_name: str,
    ) -> User:
        """
        Ensure the protected administrator exists. Safe to run on every boot.

        Steps:
          1. Find the Supabase auth user by email, creating it (confirmed)
             through the service-role admin API if missing.
          2. Create its profile if absent; force Admin + not deletable.
          3. Set its administrator flag.
        """
        auth_user = self._find_auth_user(admin_client, email)
        if auth_user is None:
            response = admin_client.auth.admin.create_user(
                {"email": email, "password": password, "email_confirm": True}
            )
            auth_user = response.user

        user = self.repo.create_if_absent(
            session,
            User(
                id=str(auth_user.id),
                full_name=full_name,
                email=email,
                access_level=ADMIN_ACCESS_LEVEL,
                is_deletable=False,
                is_anonymous=False,
            ),
        )
        if user.access_level != ADMIN_ACCESS_LEVEL or user.is_deletable:
            user.access_level = ADMIN_ACCESS_LEVEL
            user.is_deletable = False
            user = self.repo.update(session, user)

        self.repo.set_admin(session, user.id, True)
        session.refresh(user)
        return user

    def _find_auth_user(self, admin_client: Any, email: str) -> Any | None:
        """Page through Supabase auth users looking for `email`."""
        wanted = email.lower()
        page = 1
        while True:
            users = admin_client.auth.admin.list_users(
                page=page, per_page=self.AUTH_PAGE_SIZE
            )
            for u in users:
                if (u.email or "").lower() == wanted:
                    return u
            if len(users) < self.AUTH_PAGE_SIZE:
                return None
            page += 1
