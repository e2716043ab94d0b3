# shopnow/repositories/remote_store.py
"""
Remote document store interface.

Logical layout (document keys are product ids):

    products                    global catalog, read-only for the app
    users/{uid}/cart            one shopper's cart
    users/{uid}/cart/{pid}      one cart line
"""
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

PRODUCTS_PATH = "products"

Document = dict[str, Any]
SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[Exception], None]


def cart_path(user_id: str) -> str:
    return f"users/{user_id}/cart"


def cart_line_path(user_id: str, product_id: str) -> str:
    return f"{cart_path(user_id)}/{product_id}"


class Subscription(ABC):
    """Handle for a live collection listener."""

    @abstractmethod
    async def close(self) -> None:
        """Stop delivering snapshots and release the remote listener."""


class RemoteStore(ABC):
    """
    Data access layer for the remote document store.

    - Pure remote operations (live snapshots + per-document writes).
    - No cart/catalog business logic.
    """

    @abstractmethod
    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """
        Open a live listener on a collection.

        `on_snapshot` receives the full collection on every change
        (including once right after subscribing). `on_error` receives
        listener failures; the subscription is not retried.
        """

    @abstractmethod
    async def upsert(self, path: str, doc: Document) -> None:
        """Replace the whole document at `path`."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete the document at `path` (no error if already absent)."""
