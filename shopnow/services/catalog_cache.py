# shopnow/services/catalog_cache.py
import logging
import threading
from collections.abc import Callable

from shopnow.core.errors import SubscriptionError
from shopnow.core.observable import Listeners, Unsubscribe
from shopnow.models.product import Product, parse_documents
from shopnow.repositories.remote_store import (
    PRODUCTS_PATH,
    Document,
    RemoteStore,
    Subscription,
)

logger = logging.getLogger(__name__)


class CatalogCache:
    """
    Latest snapshot of the product catalog.

    Responsibilities:
      - keep one live subscription to `products` (outlives sign-in/out)
      - replace the catalog wholesale on every snapshot
      - local search / category filtering (no remote calls)
      - degrade to an empty catalog on listener failure (no retry)
    """

    def __init__(self, store: RemoteStore, path: str = PRODUCTS_PATH):
        self.store = store
        self.path = path
        self.last_error: SubscriptionError | None = None
        self._products: list[Product] = []
        self._subscription: Subscription | None = None
        self._listeners: Listeners[list[Product]] = Listeners("catalog")
        self._lock = threading.Lock()

    # ---- lifecycle ----

    async def start(self) -> None:
        """Open the persistent remote listener (no-op if already open)."""
        if self._subscription is not None:
            return
        try:
            self._subscription = await self.store.subscribe(
                self.path, self._on_snapshot, self._on_error
            )
        except Exception as e:
            self._on_error(e)

    async def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    # ---- remote callbacks ----

    def _on_snapshot(self, docs: list[Document]) -> None:
        products = parse_documents(docs, Product)
        with self._lock:
            self._products = products
            self.last_error = None
        logger.info("Fetched %d products", len(products))
        self._listeners.notify(list(products))

    def _on_error(self, error: Exception) -> None:
        if not isinstance(error, SubscriptionError):
            error = SubscriptionError(self.path, error)
        logger.warning("Error fetching products: %s", error.cause)
        with self._lock:
            self._products = []
            self.last_error = error
        self._listeners.notify([])

    # ---- public operations ----

    def subscribe(self, callback: Callable[[list[Product]], None]) -> Unsubscribe:
        """
        Register a listener for full catalog snapshots.

        The listener is called right away with the current catalog,
        then on every remote change.
        """
        unsubscribe = self._listeners.add(callback)
        callback(self.current_catalog())
        return unsubscribe

    def current_catalog(self) -> list[Product]:
        with self._lock:
            return list(self._products)

    def get(self, product_id: str) -> Product | None:
        with self._lock:
            for product in self._products:
                if product.id == product_id:
                    return product
        return None

    def search(self, query: str) -> list[Product]:
        """
        Case-insensitive substring match on product name.
        Empty query returns the full catalog unfiltered.
        """
        needle = query.strip().lower()
        products = self.current_catalog()
        if not needle:
            return products
        return [p for p in products if needle in p.name.lower()]

    def filter_by_category(self, category: str | None) -> list[Product]:
        """
        Products whose category matches (case-insensitive).
        Empty category returns the full catalog.
        """
        wanted = (category or "").strip().lower()
        products = self.current_catalog()
        if not wanted:
            return products
        return [p for p in products if (p.category or "").strip().lower() == wanted]

    def categories(self) -> list[str]:
        """Distinct categories in catalog order."""
        seen: dict[str, None] = {}
        for product in self.current_catalog():
            if product.category:
                seen.setdefault(product.category, None)
        return list(seen)
