# shopnow/services/cart_sync.py
import asyncio
import logging
import threading
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any

from shopnow.core.errors import (
    NotAuthenticatedError,
    ShopNowError,
    SubscriptionError,
    WriteError,
)
from shopnow.core.observable import Listeners, Unsubscribe
from shopnow.models.product import CartLine, ProductBase, parse_documents
from shopnow.repositories.remote_store import (
    Document,
    RemoteStore,
    Subscription,
    cart_line_path,
    cart_path,
)
from shopnow.schemas.cart import CartSummary, CheckoutReport
from shopnow.services.auth_session import AuthSession

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Lifecycle of the cart for the current session."""

    UNBOUND = "unbound"  # nobody signed in
    LOADING = "loading"  # signed in, first snapshot pending
    SYNCED = "synced"  # mirrors last snapshot + optimistic edits


class CartSynchronizer:
    """
    Keeps the local cart consistent with users/{uid}/cart.

    Two-speed model:
      - commands (add / update / remove / buy) change local state
        immediately and fire the matching remote write in the background
      - every remote snapshot replaces local state entirely
        (remote is authoritative; a failed write is never rolled back,
        the next snapshot heals it)

    Commands and snapshot application run under one lock, so they never
    interleave on the local state. Commands must be called from the
    event loop thread (remote writes are scheduled as asyncio tasks).
    """

    def __init__(self, store: RemoteStore, auth: AuthSession):
        self.store = store
        self.auth = auth
        self.last_error: ShopNowError | None = None

        self._lock = threading.RLock()
        self._lines: dict[str, CartLine] = {}
        self._state = SyncState.UNBOUND
        self._user_id: str | None = None
        # Bumped on every bind/unbind; snapshots from older
        # subscriptions carry a stale generation and are dropped.
        self._generation = 0
        self._subscription: Subscription | None = None

        self._tasks: set[asyncio.Task] = set()
        self._listeners: Listeners[CartSummary] = Listeners("cart")
        self._write_error_listeners: Listeners[WriteError] = Listeners("cart write errors")
        self._unsubscribe_auth: Unsubscribe | None = None

    # ---- lifecycle ----

    def start(self) -> None:
        """
        Follow the auth session; binds right away if a user is signed in.

        Binding schedules the cart listener on the running event loop, so
        with a signed-in user this must be called from inside that loop.
        Otherwise RuntimeError is raised and nothing changes.
        """
        if self._unsubscribe_auth is not None:
            return
        self._on_user_changed(self.auth.current_user())
        self._unsubscribe_auth = self.auth.on_change(self._on_user_changed)

    async def stop(self) -> None:
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        with self._lock:
            self._unbind_locked()
        await self.flush()

    async def flush(self) -> None:
        """Wait for in-flight remote writes and subscription changes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---- observers ----

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def subscribe(self, callback: Callable[[CartSummary], None]) -> Unsubscribe:
        """
        Register a cart listener. Called right away with the current
        cart, then after every command or snapshot.
        """
        unsubscribe = self._listeners.add(callback)
        callback(self.current_cart())
        return unsubscribe

    def on_write_error(self, callback: Callable[[WriteError], None]) -> Unsubscribe:
        return self._write_error_listeners.add(callback)

    def current_cart(self) -> CartSummary:
        with self._lock:
            return self._summary_locked()

    def item_count(self) -> int:
        with self._lock:
            return sum(line.quantity for line in self._lines.values())

    def total_price(self) -> float:
        with self._lock:
            return sum(line.line_total for line in self._lines.values())

    # ---- commands ----

    def add_to_cart(self, product: ProductBase, quantity: int = 1) -> CartSummary:
        """
        Add `quantity` units of a product.

        Rules:
          - requires a signed-in user (NotAuthenticatedError otherwise)
          - existing line => quantities are summed, never replaced
          - the merged line is upserted as a whole document
        """
        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        with self._lock:
            user_id = self._require_user("add to cart")
            existing = self._lines.get(product.id)
            new_qty = quantity + (existing.quantity if existing else 0)
            line = CartLine.from_product(product, new_qty)
            self._lines[line.id] = line
            self._upsert_locked(user_id, line)
            summary = self._summary_locked()

        if existing:
            logger.debug("Updated %s to quantity %d", line.name, line.quantity)
        else:
            logger.debug("Added %s with quantity %d", line.name, line.quantity)
        self._listeners.notify(summary)
        return summary

    def update_quantity(self, product_id: str, quantity: int) -> CartSummary:
        """
        Set the quantity of a line already in the cart.

        quantity <= 0 removes the line. Unknown ids are a no-op.
        """
        if quantity <= 0:
            return self.remove_from_cart(product_id)

        with self._lock:
            user_id = self._require_user("update the cart")
            existing = self._lines.get(product_id)
            if existing is None or existing.quantity == quantity:
                return self._summary_locked()
            line = existing.with_quantity(quantity)
            self._lines[product_id] = line
            self._upsert_locked(user_id, line)
            summary = self._summary_locked()

        logger.debug("Set %s to quantity %d", line.name, quantity)
        self._listeners.notify(summary)
        return summary

    def remove_from_cart(self, product_id: str) -> CartSummary:
        """
        Remove a whole line. Removing an absent id is a no-op.
        """
        with self._lock:
            user_id = self._require_user("remove from cart")
            if self._lines.pop(product_id, None) is None:
                return self._summary_locked()
            path = cart_line_path(user_id, product_id)
            self._spawn(self._write("delete", path, self.store.delete(path)))
            summary = self._summary_locked()

        logger.debug("Removed %s from cart", product_id)
        self._listeners.notify(summary)
        return summary

    def buy_cart(self) -> CheckoutReport:
        """
        Check out: clear the local cart now, then delete every remote
        line that was in the cart at checkout time.

        Not transactional. Failed deletes end up in
        `report.failed_ids` (once `report.settled`), are logged and sent
        to write-error listeners; the next snapshot brings those lines
        back. An empty cart is a no-op.

        Only lines known locally are deleted. While the cart is still
        LOADING, remote lines whose first snapshot has not arrived yet are
        left in place and show up again once it does.
        """
        with self._lock:
            user_id = self._require_user("check out")
            if not self._lines:
                logger.info("Cart is empty, nothing to buy")
                return CheckoutReport(settled=True)

            purchased = self._summary_locked()
            self._lines = {}
            report = CheckoutReport(
                purchased=purchased.lines,
                total_quantity=purchased.total_quantity,
                total_price=purchased.total_price,
            )
            self._spawn(self._delete_purchased(user_id, report))
            summary = self._summary_locked()

        logger.info("Buying cart with %d items", len(report.purchased))
        self._listeners.notify(summary)
        return report

    # ---- auth-driven state machine ----

    def _on_user_changed(self, user_id: str | None) -> None:
        if user_id is not None:
            # fail before touching state when there is no loop to bind on
            asyncio.get_running_loop()

        with self._lock:
            if user_id == self._user_id:
                return
            self._unbind_locked()
            if user_id is not None:
                self._user_id = user_id
                self._state = SyncState.LOADING
                self._generation += 1
                self._spawn(self._bind(user_id, self._generation))
            summary = self._summary_locked()

        logger.info("Cart %s for %s", self._state.value, user_id or "anonymous")
        self._listeners.notify(summary)

    def _unbind_locked(self) -> None:
        """Drop local cart state. Never deletes anything remotely."""
        subscription, self._subscription = self._subscription, None
        self._lines = {}
        self._user_id = None
        self._state = SyncState.UNBOUND
        self._generation += 1
        self.last_error = None
        if subscription is not None:
            self._spawn(self._close(subscription))

    async def _bind(self, user_id: str, generation: int) -> None:
        path = cart_path(user_id)
        try:
            subscription = await self.store.subscribe(
                path,
                lambda docs: self._apply_snapshot(generation, docs),
                lambda error: self._on_subscription_error(generation, error),
            )
        except Exception as e:
            self._on_subscription_error(generation, e)
            return

        with self._lock:
            stale = generation != self._generation
            if not stale:
                self._subscription = subscription

        if stale:
            # signed out (or switched user) while subscribing
            await self._close(subscription)

    async def _close(self, subscription: Subscription) -> None:
        try:
            await subscription.close()
        except Exception as e:
            logger.warning("Failed to close cart subscription: %s", e)

    # ---- remote callbacks ----

    def _apply_snapshot(self, generation: int, docs: list[Document]) -> None:
        lines = parse_documents(docs, CartLine)
        with self._lock:
            if generation != self._generation:
                logger.debug("Ignoring cart snapshot from a closed subscription")
                return
            self._lines = {line.id: line for line in lines}
            self._state = SyncState.SYNCED
            self.last_error = None
            summary = self._summary_locked()

        logger.debug("Loaded cart with %d items", len(lines))
        self._listeners.notify(summary)

    def _on_subscription_error(self, generation: int, error: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if not isinstance(error, SubscriptionError):
                error = SubscriptionError(cart_path(self._user_id or ""), error)
            self.last_error = error
            # degrade to an empty snapshot
            self._lines = {}
            self._state = SyncState.SYNCED
            summary = self._summary_locked()

        logger.warning("Error loading cart: %s", error.cause)
        self._listeners.notify(summary)

    # ---- internal helpers ----

    def _require_user(self, action: str) -> str:
        if self._user_id is None:
            logger.warning("No user logged in, cannot %s", action)
            raise NotAuthenticatedError(action)
        return self._user_id

    def _summary_locked(self) -> CartSummary:
        return CartSummary.from_lines(list(self._lines.values()))

    def _upsert_locked(self, user_id: str, line: CartLine) -> None:
        path = cart_line_path(user_id, line.id)
        self._spawn(self._write("upsert", path, self.store.upsert(path, line.to_document())))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self, operation: str, path: str, coro: Coroutine[Any, Any, Any]) -> bool:
        """
        Await one remote write. Failures are reported, not rolled back.
        """
        try:
            await coro
        except Exception as e:
            error = WriteError(operation, path, e)
            logger.error("Remote %s at %s failed: %s", operation, path, e)
            self.last_error = error
            self._write_error_listeners.notify(error)
            return False
        return True

    async def _delete_purchased(self, user_id: str, report: CheckoutReport) -> None:
        paths = {line.id: cart_line_path(user_id, line.id) for line in report.purchased}
        results = await asyncio.gather(
            *(self._write("delete", path, self.store.delete(path)) for path in paths.values())
        )

        report.failed_ids = [pid for pid, ok in zip(paths, results) if not ok]
        report.settled = True
        if report.failed_ids:
            logger.warning(
                "Checkout left %d lines in the remote cart: %s",
                len(report.failed_ids),
                ", ".join(report.failed_ids),
            )
