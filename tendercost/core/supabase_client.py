# tendercost/core/supabase_client.py
from functools import lru_cache
from supabase import AsyncClient, Client, acreate_client, create_client

from tendercost.core.config import get_settings

settings = get_settings()


async def supabase_session_client() -> AsyncClient:
    """
    Create an async Supabase client with the anon/public key.

    Use cases:
      - client sessions (anonymous sign-in, profile sync over Realtime)

    Not cached: each client session owns its own auth state.
    Note: This client respects RLS.
    """
    return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


@lru_cache
def supabase_admin() -> Client:
    """
    Create a Supabase client with the service role key.

    Use cases:
      - admin Auth operations (seeding the initial administrator)
      - any operation that needs to bypass RLS

    WARNING:
      - Never expose service role key to frontend.
      - Only backend should call this.

    Raises:
        RuntimeError: if SUPABASE_SERVICE_ROLE_KEY is not set.
    """
    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("Missing SUPABASE_SERVICE_ROLE_KEY in .env")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
