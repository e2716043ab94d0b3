"""Shared pytest fixtures: in-memory remote store and auth session."""
from __future__ import annotations

from typing import Any

import pytest

from shopnow.core.errors import AuthError, AuthFailure
from shopnow.core.observable import Listeners
from shopnow.repositories.remote_store import RemoteStore, Subscription
from shopnow.services.auth_session import AuthOutcome, AuthSession
from shopnow.services.cart_sync import CartSynchronizer
from shopnow.services.catalog_cache import CatalogCache


class FakeSubscription(Subscription):
    def __init__(self, store: "FakeRemoteStore", path: str, on_snapshot, on_error):
        self.store = store
        self.path = path
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeRemoteStore(RemoteStore):
    """
    In-memory document store.

    Snapshots are only delivered when a test calls push(), so tests
    control exactly when the "network round trip" completes.
    """

    def __init__(self):
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.subscriptions: list[FakeSubscription] = []
        self.upserts: list[tuple[str, dict[str, Any]]] = []
        self.deletes: list[str] = []
        self.failing_paths: set[str] = set()
        self.subscribe_error: Exception | None = None

    @staticmethod
    def _split(path: str) -> tuple[str, str]:
        collection, _, key = path.rpartition("/")
        return collection, key

    def seed(self, path: str, docs: list[dict[str, Any]]) -> None:
        self.collections[path] = {doc["id"]: dict(doc) for doc in docs}

    def documents(self, path: str) -> list[dict[str, Any]]:
        return [dict(doc) for doc in self.collections.get(path, {}).values()]

    def open_subscriptions(self, path: str) -> list[FakeSubscription]:
        return [s for s in self.subscriptions if s.path == path and not s.closed]

    def push(self, path: str, docs: list[dict[str, Any]] | None = None) -> None:
        """Deliver a snapshot (default: current stored docs) to open listeners."""
        snapshot = self.documents(path) if docs is None else docs
        for subscription in self.open_subscriptions(path):
            subscription.on_snapshot(list(snapshot))

    def fail(self, path: str, error: Exception) -> None:
        for subscription in self.open_subscriptions(path):
            subscription.on_error(error)

    # ---- RemoteStore ----

    async def subscribe(self, path, on_snapshot, on_error) -> Subscription:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        subscription = FakeSubscription(self, path, on_snapshot, on_error)
        self.subscriptions.append(subscription)
        return subscription

    async def upsert(self, path: str, doc: dict[str, Any]) -> None:
        self.upserts.append((path, dict(doc)))
        if path in self.failing_paths:
            raise ConnectionError(f"upsert refused: {path}")
        collection, key = self._split(path)
        self.collections.setdefault(collection, {})[key] = dict(doc)

    async def delete(self, path: str) -> None:
        self.deletes.append(path)
        if path in self.failing_paths:
            raise ConnectionError(f"delete refused: {path}")
        collection, key = self._split(path)
        self.collections.get(collection, {}).pop(key, None)


class FakeAuthSession(AuthSession):
    """Accepts any email with password 'secret'; user id = email local part."""

    def __init__(self, user_id: str | None = None):
        self.user_id = user_id
        self.listeners: Listeners[str | None] = Listeners("fake auth")

    def set_user(self, user_id: str | None) -> None:
        if user_id != self.user_id:
            self.user_id = user_id
            self.listeners.notify(user_id)

    def current_user(self) -> str | None:
        return self.user_id

    def on_change(self, callback):
        return self.listeners.add(callback)

    async def sign_in(self, email: str, password: str) -> AuthOutcome:
        if password != "secret":
            return AuthOutcome.failed(AuthError(AuthFailure.INVALID_CREDENTIALS))
        user_id = email.strip().split("@", 1)[0]
        self.set_user(user_id)
        return AuthOutcome.ok(user_id)

    async def sign_up(self, email: str, password: str) -> AuthOutcome:
        return await self.sign_in(email, password)

    async def sign_out(self) -> None:
        self.set_user(None)


@pytest.fixture()
def store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def auth() -> FakeAuthSession:
    return FakeAuthSession()


@pytest.fixture()
def cart(store: FakeRemoteStore, auth: FakeAuthSession) -> CartSynchronizer:
    sync = CartSynchronizer(store, auth)
    sync.start()
    return sync


@pytest.fixture()
def catalog(store: FakeRemoteStore) -> CatalogCache:
    return CatalogCache(store)


@pytest.fixture()
def sample_products() -> list[dict[str, Any]]:
    return [
        {"id": "p1", "name": "Shoe", "price": 10.0, "image_url": "", "category": "Footwear"},
        {"id": "p2", "name": "Shirt", "price": 15.5, "image_url": "", "category": "Clothing"},
        {"id": "p3", "name": "Hat", "price": 7.25, "image_url": "", "category": "clothing"},
    ]
