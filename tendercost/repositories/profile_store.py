# tendercost/repositories/profile_store.py
import asyncio
import logging
from typing import Any

from supabase import AsyncClient

from tendercost.core.ports import ErrorListener, Row, RowListener, Unsubscribe

logger = logging.getLogger(__name__)

# Realtime subscribe states that mean the watch is not delivering events
_FAILED_CHANNEL_STATES = {"CHANNEL_ERROR", "TIMED_OUT"}


def _record_from_payload(payload: dict[str, Any]) -> tuple[str, Row | None]:
    """
    Extract (event type, new row) from a Realtime postgres_changes payload.

    Realtime wraps the change in a "data" envelope; the row is under
    "record" (older servers send "new"). DELETE events carry no new row.
    """
    data = payload.get("data", payload)
    event_type = str(data.get("type") or data.get("eventType") or "").upper()
    if event_type == "DELETE":
        return event_type, None
    record = data.get("record") or data.get("new")
    return event_type, record or None


class SupabaseProfileStore:
    """
    Profile rows in Supabase Postgres, read and written through PostgREST
    and watched through Realtime.

    Responsibilities:
      - point reads by id
      - create-if-absent (INSERT ... ON CONFLICT DO NOTHING)
      - partial updates
      - per-row change subscriptions

    Requires Realtime to be enabled for the table
    (`alter publication supabase_realtime add table users`).
    """

    def __init__(self, client: AsyncClient, table: str = "users"):
        self.client = client
        self.table = table

    async def get(self, key: str) -> Row | None:
        response = (
            await self.client.table(self.table)
            .select("*")
            .eq("id", key)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    async def create_if_absent(self, key: str, data: Row) -> bool:
        """
        Insert the row unless one already exists for `key`.

        ignore_duplicates maps to ON CONFLICT DO NOTHING, so a concurrent
        creator never gets its row overwritten. Only inserted rows come back.
        """
        payload = {**data, "id": key}
        response = (
            await self.client.table(self.table)
            .upsert(payload, on_conflict="id", ignore_duplicates=True)
            .execute()
        )
        return bool(response.data)

    async def merge(self, key: str, data: Row) -> None:
        await self.client.table(self.table).update(data).eq("id", key).execute()

    async def subscribe(
        self,
        key: str,
        on_change: RowListener,
        on_error: ErrorListener,
    ) -> Unsubscribe:
        """
        Open a Realtime channel filtered to the row at `key`.

        Returns once the server has confirmed the join. A join that fails
        or times out removes the channel and raises; later channel
        failures go to `on_error`.
        """
        channel = self.client.channel(f"{self.table}:{key}")
        joined: asyncio.Future = asyncio.get_running_loop().create_future()

        def handle_change(payload: dict[str, Any]) -> None:
            event_type, record = _record_from_payload(payload)
            logger.debug("Realtime %s event for %s", event_type, key)
            on_change(key, record)

        def handle_status(status: Any, error: Exception | None = None) -> None:
            status_name = str(getattr(status, "value", status))
            if status_name == "SUBSCRIBED":
                if not joined.done():
                    joined.set_result(None)
            elif status_name in _FAILED_CHANNEL_STATES:
                failure = error or RuntimeError(f"Realtime channel {status_name}")
                if not joined.done():
                    joined.set_exception(failure)
                else:
                    on_error(key, failure)

        channel.on_postgres_changes(
            "*",
            schema="public",
            table=self.table,
            filter=f"id=eq.{key}",
            callback=handle_change,
        )
        await channel.subscribe(handle_status)
        try:
            await joined
        except BaseException:
            await self.client.remove_channel(channel)
            raise

        async def unsubscribe() -> None:
            await self.client.remove_channel(channel)

        return unsubscribe
