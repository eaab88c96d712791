# tendercost/core/session_auth.py
import logging
from typing import Any, Callable

from supabase import AsyncClient

from tendercost.core.ports import PrincipalListener
from tendercost.schemas.user import Principal

logger = logging.getLogger(__name__)


def principal_from_user(user: Any) -> Principal | None:
    """
    Build a Principal from a Supabase auth user object (or None).

    `is_anonymous` is only reported by recent Auth servers; older ones
    leave it out, which we read as a regular account.
    """
    if user is None:
        return None
    return Principal(
        id=str(user.id),
        email=getattr(user, "email", None),
        is_anonymous=bool(getattr(user, "is_anonymous", False)),
    )


class SupabaseAuthService:
    """
    Client-side Supabase Auth, seen as a principal source.

    Uses the anon key client; every session change (sign-in, token
    refresh, sign-out) is forwarded to listeners as the current principal.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    async def current_principal(self) -> Principal | None:
        session = await self.client.auth.get_session()
        if session is None:
            return None
        return principal_from_user(session.user)

    def on_principal_changed(self, listener: PrincipalListener) -> Callable[[], None]:
        def handle(event: Any, session: Any) -> None:
            logger.debug("Auth state change: %s", event)
            listener(principal_from_user(session.user) if session else None)

        subscription = self.client.auth.on_auth_state_change(handle)
        return subscription.unsubscribe

    async def sign_in_anonymously(self) -> None:
        await self.client.auth.sign_in_anonymously()

    async def sign_out(self) -> None:
        await self.client.auth.sign_out()
