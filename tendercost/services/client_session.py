# tendercost/services/client_session.py
import asyncio
import logging

from tendercost.core.ports import AuthServicePort, ProfileStorePort
from tendercost.services.identity_bootstrap import IdentityBootstrap
from tendercost.services.profile_sync import ProfileSynchronizer
from tendercost.services.state import (
    BootstrapState,
    SessionState,
    StateHolder,
    SyncState,
)

logger = logging.getLogger(__name__)


class ClientSession(StateHolder[SessionState]):
    """
    Identity bootstrap and profile sync wired together.

    The bootstrap's principal drives the synchronizer; the combined
    (principal, profile, is_loading, error) tuple is what the rest of the
    application consumes. Nothing here raises into the caller: failures
    show up in `state.error`.
    """

    def __init__(
        self,
        auth: AuthServicePort | None,
        store: ProfileStorePort | None,
        anonymous_name: str = "Anonymous User",
    ):
        super().__init__(SessionState())
        self._auth = auth
        self.bootstrap = IdentityBootstrap(auth)
        self.profile_sync = ProfileSynchronizer(store, anonymous_name=anonymous_name)
        self._changed = asyncio.Event()
        self._detach = [
            self.bootstrap.add_listener(self._on_bootstrap),
            self.profile_sync.add_listener(self._on_sync),
        ]

    async def start(self) -> None:
        await self.bootstrap.start()

    async def aclose(self) -> None:
        for detach in self._detach:
            detach()
        self._detach = []
        await self.bootstrap.aclose()
        await self.profile_sync.aclose()

    async def sign_out(self) -> None:
        """
        Ask the auth service to end the session.

        The principal change arrives through the bootstrap like any other.
        """
        if self._auth is None:
            return
        await self._auth.sign_out()

    async def wait_ready(self, timeout: float | None = None) -> SessionState:
        """
        Wait until the session stops loading.

        Raises asyncio.TimeoutError if `timeout` elapses first; there is no
        timeout by default.
        """

        async def _wait() -> SessionState:
            while self.state.is_loading:
                self._changed.clear()
                await self._changed.wait()
            return self.state

        return await asyncio.wait_for(_wait(), timeout)

    # ---- internal helpers ----

    def _on_bootstrap(self, state: BootstrapState) -> None:
        # A lost principal releases the profile watch right away, even while
        # a replacement anonymous sign-in is still in flight.
        self.profile_sync.set_principal(state.principal)
        self._recompute()

    def _on_sync(self, state: SyncState) -> None:
        self._recompute()

    def _recompute(self) -> None:
        boot = self.bootstrap.state
        sync = self.profile_sync.state
        if boot.is_bootstrapping or boot.error is not None:
            principal, profile = boot.principal, None
        else:
            principal, profile = sync.principal, sync.profile
        combined = SessionState(
            principal=principal,
            profile=profile,
            is_loading=boot.is_bootstrapping or sync.is_loading,
            error=boot.error or sync.error,
        )
        if combined != self.state:
            self._publish(combined)
            self._changed.set()


async def create_client_session(settings=None) -> ClientSession:
    """
    Build a ClientSession backed by Supabase Auth, PostgREST and Realtime.

    The session is returned unstarted; call `start()` to begin bootstrap.
    """
    from tendercost.core.config import get_settings
    from tendercost.core.session_auth import SupabaseAuthService
    from tendercost.core.supabase_client import supabase_session_client
    from tendercost.repositories.profile_store import SupabaseProfileStore

    settings = settings or get_settings()
    client = await supabase_session_client()
    return ClientSession(
        SupabaseAuthService(client),
        SupabaseProfileStore(client, table=settings.PROFILE_TABLE),
        anonymous_name=settings.ANONYMOUS_FULL_NAME,
    )
