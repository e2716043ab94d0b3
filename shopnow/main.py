# shopnow/main.py
import logging

from shopnow.core.config import Settings, get_settings
from shopnow.core.supabase_client import supabase_public
from shopnow.repositories.supabase_store import SupabaseRemoteStore
from shopnow.services.auth_session import SupabaseAuthSession
from shopnow.services.cart_sync import CartSynchronizer
from shopnow.services.catalog_cache import CatalogCache
from shopnow.services.storefront import Storefront

logger = logging.getLogger("shopnow")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def build_storefront(settings: Settings | None = None) -> Storefront:
    """
    Composition root.

    Steps:
      1. Load settings and configure logging.
      2. Create one async Supabase client (anon key).
      3. Build the Supabase-backed store and auth session.
      4. Restore a persisted auth session, if any.
      5. Wire catalog + cart around the shared store/auth.

    The caller owns the lifecycle: `await storefront.start()` opens the
    catalog listener (and the cart listener once someone signs in),
    `await storefront.stop()` closes them.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    logger.info("🔄 Startup: Connecting to Supabase...")
    try:
        client = await supabase_public(settings)
    except Exception as e:
        logger.error(f"❌ Startup: Supabase client FAILED: {e}")
        raise

    store = SupabaseRemoteStore(
        client,
        products_table=settings.PRODUCTS_TABLE,
        cart_table=settings.CART_TABLE,
    )
    auth = SupabaseAuthSession(client)
    await auth.start()
    logger.info("✅ Startup: Supabase client ready.")

    return Storefront(
        auth=auth,
        catalog=CatalogCache(store),
        cart=CartSynchronizer(store, auth),
    )
