# tendercost/services/profile_sync.py
import asyncio
import contextlib
import logging
from dataclasses import replace

from pydantic import ValidationError

from tendercost.core.errors import StoreUnavailableError
from tendercost.core.ports import ProfileStorePort, Row, Unsubscribe
from tendercost.schemas.user import Principal, UserProfile, default_profile_row
from tendercost.services.state import StateHolder, SyncState

logger = logging.getLogger(__name__)


class ProfileSynchronizer(StateHolder[SyncState]):
    """
    Keeps a live local copy of the current principal's profile row.

    Per principal id:
      Idle -> Reading -> Creating (only if the row is missing) -> Subscribed

    Any step may end in an error, which is stored in state with
    is_loading=False. An errored principal is not retried; a new
    principal (or the same one after a switch) starts a fresh run.

    Every run gets a generation number. Results and subscription events
    from an older generation, or for a key other than the active one,
    are dropped.
    """

    def __init__(
        self,
        store: ProfileStorePort | None,
        anonymous_name: str = "Anonymous User",
    ):
        super().__init__(SyncState())
        self._store = store
        self._anonymous_name = anonymous_name
        self._principal: Principal | None = None
        self._active_key: str | None = None
        self._generation = 0
        self._events_seen = 0
        self._setup_task: asyncio.Task | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._background: set[asyncio.Task] = set()
        self._email_patch_pending = False

    @property
    def active_key(self) -> str | None:
        return self._active_key

    def set_principal(self, principal: Principal | None) -> None:
        """
        Point the synchronizer at a new principal (or none).

        Must be called from the event loop. Switching ids releases the old
        subscription; the same id with a changed email only refreshes the
        principal and may patch the stored email.
        """
        key = principal.id if principal is not None else None

        if key == self._active_key:
            if principal is not None and principal != self._principal:
                self._principal = principal
                self._publish(replace(self.state, principal=principal))
                self._maybe_patch_email()
            return

        self._generation += 1
        self._release_subscription()
        self._principal = principal
        self._active_key = key
        self._email_patch_pending = False

        if principal is None:
            self._publish(SyncState())
            return

        if self._store is None:
            logger.error("Profile sync started without a profile store")
            self._publish(SyncState(principal, None, False, StoreUnavailableError()))
            return

        self._publish(SyncState(principal, None, True, None))
        self._setup_task = self._spawn(self._setup(principal, self._generation))

    async def wait_idle(self) -> None:
        """Wait until setup, releases and patches started so far are finished."""
        while True:
            pending = [t for t in self._pending_tasks() if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        self._generation += 1
        self._active_key = None
        self._principal = None
        if self._setup_task is not None and not self._setup_task.done():
            self._setup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._setup_task
        self._setup_task = None
        self._release_subscription()
        await self.wait_idle()

    # ---- internal helpers ----

    def _pending_tasks(self) -> list[asyncio.Task]:
        tasks = list(self._background)
        if self._setup_task is not None:
            tasks.append(self._setup_task)
        return tasks

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _is_current(self, key: str, generation: int) -> bool:
        return generation == self._generation and key == self._active_key

    def _release_subscription(self) -> None:
        if self._unsubscribe is None:
            return
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        self._spawn(self._run_unsubscribe(unsubscribe))

    async def _run_unsubscribe(self, unsubscribe: Unsubscribe) -> None:
        try:
            await unsubscribe()
        except Exception:
            logger.exception("Failed to release profile subscription")

    async def _setup(self, principal: Principal, generation: int) -> None:
        key = principal.id
        store = self._store
        try:
            row = await store.get(key)
            if not self._is_current(key, generation):
                return

            if row is None:
                logger.info("No profile for %s; creating one", key)
                data = default_profile_row(principal, self._anonymous_name)
                created = await store.create_if_absent(key, data)
                if not self._is_current(key, generation):
                    return
                if not created:
                    logger.info("Profile for %s was created concurrently", key)

            self._events_seen = 0
            unsubscribe = await store.subscribe(
                key,
                lambda k, r: self._on_row(generation, k, r),
                lambda k, e: self._on_store_error(generation, k, e),
            )
            if not self._is_current(key, generation) or self.state.error is not None:
                # superseded, or the watch already failed while opening
                await unsubscribe()
                return
            self._unsubscribe = unsubscribe

            # The watch is live but does not deliver the current row.
            snapshot = await store.get(key)
            if not self._is_current(key, generation):
                return
            if self._events_seen == 0 and self.state.error is None:
                self._apply_row(key, snapshot)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._is_current(key, generation):
                self._fail(key, exc)

    def _on_row(self, generation: int, key: str, row: Row | None) -> None:
        if not self._is_current(key, generation):
            logger.debug("Discarding stale profile event for %s", key)
            return
        if self.state.error is not None:
            return
        self._events_seen += 1
        self._apply_row(key, row)

    def _on_store_error(self, generation: int, key: str, error: BaseException) -> None:
        if not self._is_current(key, generation):
            return
        self._fail(key, error)

    def _apply_row(self, key: str, row: Row | None) -> None:
        if row is None:
            logger.warning("Profile %s does not exist", key)
            self._publish(SyncState(self._principal, None, False, None))
            return
        try:
            profile = UserProfile.model_validate(row)
        except ValidationError as exc:
            self._fail(key, exc)
            return
        self._publish(SyncState(self._principal, profile, False, None))
        self._maybe_patch_email()

    def _fail(self, key: str, error: BaseException) -> None:
        logger.error("Profile sync for %s failed: %s", key, error)
        self._release_subscription()
        self._publish(SyncState(self._principal, None, False, error))

    def _maybe_patch_email(self) -> None:
        principal = self._principal
        profile = self.state.profile
        if principal is None or profile is None or self._store is None:
            return
        if not principal.email or profile.email or self._email_patch_pending:
            return
        self._email_patch_pending = True
        self._spawn(self._patch_email(principal, self._generation))

    async def _patch_email(self, principal: Principal, generation: int) -> None:
        # Landing of the patch is observed through the subscription.
        logger.info("Recording email for upgraded principal %s", principal.id)
        try:
            await self._store.merge(
                principal.id,
                {"email": principal.email, "is_anonymous": principal.is_anonymous},
            )
        except Exception as exc:
            logger.error("Email patch for %s failed: %s", principal.id, exc)
        finally:
            if generation == self._generation:
                self._email_patch_pending = False
