# tendercost/services/identity_bootstrap.py
import asyncio
import contextlib
import logging
from typing import Callable

from tendercost.core.errors import AnonymousSignInError, AuthUnavailableError
from tendercost.core.ports import AuthServicePort
from tendercost.schemas.user import Principal
from tendercost.services.state import BootstrapState, StateHolder

logger = logging.getLogger(__name__)


class IdentityBootstrap(StateHolder[BootstrapState]):
    """
    Guarantees the session has a principal, signing in anonymously if needed.

    Flow:
      1. Subscribe to the auth service's session-change notifications.
      2. Feed the current principal through the same handler.
      3. On a notification with a principal: bootstrap is complete.
      4. On a notification without one: request anonymous sign-in, unless
         a request is already in flight. Success shows up as the next
         notification, never through the request's return value.

    A rejected sign-in ends bootstrapping with `principal=None` and the
    error captured in state. It is not retried.
    """

    def __init__(self, auth: AuthServicePort | None):
        super().__init__(BootstrapState())
        self._auth = auth
        self._unsubscribe: Callable[[], None] | None = None
        self._sign_in_task: asyncio.Task | None = None
        self._failed = False
        self._notified = False

    @property
    def sign_in_pending(self) -> bool:
        return self._sign_in_task is not None and not self._sign_in_task.done()

    async def start(self) -> None:
        if self._auth is None:
            logger.error("Identity bootstrap started without an auth service")
            self._publish(BootstrapState(None, False, AuthUnavailableError()))
            return
        if self._unsubscribe is not None:
            return

        self._unsubscribe = self._auth.on_principal_changed(self._handle_notification)

        try:
            principal = await self._auth.current_principal()
        except Exception as exc:
            logger.exception("Could not read the current principal")
            self._failed = True
            self._publish(BootstrapState(None, False, exc))
            return

        # A notification that arrived while we were reading is newer.
        if not self._notified:
            self._on_principal(principal)

    async def aclose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.sign_in_pending:
            self._sign_in_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sign_in_task
        self._sign_in_task = None

    # ---- internal helpers ----

    def _handle_notification(self, principal: Principal | None) -> None:
        self._notified = True
        self._on_principal(principal)

    def _on_principal(self, principal: Principal | None) -> None:
        if principal is not None:
            if principal != self.state.principal or self.state.is_bootstrapping:
                logger.info(
                    "Principal available (id=%s, anonymous=%s)",
                    principal.id,
                    principal.is_anonymous,
                )
            self._failed = False
            self._publish(BootstrapState(principal, False, None))
            return

        if self._failed:
            return
        if self.sign_in_pending:
            logger.debug("Anonymous sign-in already in flight; not issuing another")
            return

        self._publish(BootstrapState(None, True, None))
        self._sign_in_task = asyncio.get_running_loop().create_task(self._sign_in())

    async def _sign_in(self) -> None:
        logger.info("No principal; requesting anonymous sign-in")
        try:
            await self._auth.sign_in_anonymously()
        except Exception as exc:
            logger.error("Anonymous sign-in failed: %s", exc)
            self._failed = True
            error = AnonymousSignInError(f"Anonymous sign-in failed: {exc}")
            error.__cause__ = exc
            if self.state.principal is None:
                self._publish(BootstrapState(None, False, error))
