# tendercost/repositories/user_repo.py
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from tendercost.models.user import AdminUser, User


class UserRepository:
    """
    Data access layer for User profiles and the administrator flag.

    Responsibilities:
      - Pure DB operations (CRUD + queries)
      - No FastAPI, no HTTP, no business logic
    """

    # ----- Profiles -----

    def get_by_id(self, session: Session, user_id: str) -> User | None:
        """Return a User by primary key, or None if not found."""
        return session.get(User, user_id)

    def list(self, session: Session, skip: int = 0, limit: int = 50) -> list[User]:
        """
        Paginated user listing, oldest first.

        Args:
            skip: offset rows (for paging)
            limit: max number of rows returned
        """
        stmt = select(User).order_by(User.created_at, User.id).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def create_if_absent(self, session: Session, user: User) -> User:
        """
        Insert `user` unless a row with the same id exists.

        Returns the stored row either way. A concurrent insert that wins
        the race surfaces as IntegrityError; we roll back and read the
        winner instead of overwriting it.
        """
        existing = session.get(User, user.id)
        if existing is not None:
            return existing
        # created_at is left to the column default
        values = user.model_dump(exclude={"created_at"})
        try:
            session.execute(insert(User).values(**values))
            session.commit()
        except IntegrityError:
            session.rollback()
        return session.get(User, user.id)

    def update(self, session: Session, user: User) -> User:
        """Persist changes to an existing User."""
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def delete(self, session: Session, user: User) -> None:
        """Delete a User and its administrator flag."""
        flag = session.get(AdminUser, user.id)
        if flag is not None:
            session.delete(flag)
        session.delete(user)
        session.commit()

    # ----- Administrator flag -----

    def is_admin(self, session: Session, user_id: str) -> bool:
        flag = session.get(AdminUser, user_id)
        return bool(flag and flag.is_admin)

    def admin_ids(self, session: Session) -> set[str]:
        stmt = select(AdminUser.id).where(AdminUser.is_admin == True)  # noqa: E712
        return set(session.exec(stmt).all())

    def set_admin(self, session: Session, user_id: str, is_admin: bool) -> None:
        """
        Grant or revoke the flag. Revoking deletes the row.
        """
        flag = session.get(AdminUser, user_id)
        if is_admin:
            if flag is None:
                session.add(AdminUser(id=user_id, is_admin=True))
            else:
                flag.is_admin = True
                session.add(flag)
        elif flag is not None:
            session.delete(flag)
        session.commit()
