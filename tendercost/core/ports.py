# tendercost/core/ports.py
"""
Collaborators consumed by the client session flow.

The session never touches a vendor SDK directly: it is handed an auth
service and a profile store that satisfy these protocols. The Supabase
implementations live in `tendercost.core.auth` and
`tendercost.repositories.profile_store`; tests substitute in-memory fakes.
"""

from typing import Any, Awaitable, Callable, Protocol

from tendercost.schemas.user import Principal

# Raw profile row as stored (column name -> value)
Row = dict[str, Any]

PrincipalListener = Callable[[Principal | None], None]
RowListener = Callable[[str, Row | None], None]
ErrorListener = Callable[[str, BaseException], None]
Unsubscribe = Callable[[], Awaitable[None]]


class AuthServicePort(Protocol):
    async def current_principal(self) -> Principal | None:
        """Return the signed-in principal, or None."""
        ...

    def on_principal_changed(self, listener: PrincipalListener) -> Callable[[], None]:
        """
        Register a listener for session changes.

        Returns a callable that removes the listener.
        """
        ...

    async def sign_in_anonymously(self) -> None:
        """
        Request an anonymous session.

        The resulting principal is delivered through the listener, not
        through this call's return value.
        """
        ...

    async def sign_out(self) -> None:
        ...


class ProfileStorePort(Protocol):
    async def get(self, key: str) -> Row | None:
        """Point read of the profile row for `key`."""
        ...

    async def create_if_absent(self, key: str, data: Row) -> bool:
        """
        Insert `data` at `key` unless a row already exists.

        Returns True if this call created the row. Never overwrites.
        """
        ...

    async def merge(self, key: str, data: Row) -> None:
        """Patch the given columns of an existing row."""
        ...

    async def subscribe(
        self,
        key: str,
        on_change: RowListener,
        on_error: ErrorListener,
    ) -> Unsubscribe:
        """
        Watch the row at `key`.

        Returns once the watch is live. `on_change(key, row)` receives
        every later write (row is None on delete), in write order.
        `on_error` may fire at any point, even before this returns. The
        returned coroutine function releases the watch.
        """
        ...
