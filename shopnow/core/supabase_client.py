# shopnow/core/supabase_client.py
from supabase import AsyncClient, acreate_client

from shopnow.core.config import Settings, get_settings


async def supabase_public(settings: Settings | None = None) -> AsyncClient:
    """
    Create an async Supabase client with the anon/public key.

    Use cases:
      - email/password auth for the signed-in shopper
      - reading the product catalog
      - reading/writing the shopper's own cart rows
      - Realtime postgres_changes subscriptions

    Note: This client respects RLS, so cart rows are only visible to
    their owner. One client is created per app by the composition root
    (shopnow.main) and injected into the adapters.
    """
    settings = settings or get_settings()
    return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
