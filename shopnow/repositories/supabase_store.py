# shopnow/repositories/supabase_store.py
import asyncio
import logging
from dataclasses import dataclass, field

from supabase import AsyncClient

from shopnow.core.errors import InvalidPathError, SubscriptionError
from shopnow.repositories.remote_store import (
    Document,
    ErrorCallback,
    RemoteStore,
    SnapshotCallback,
    Subscription,
)

logger = logging.getLogger(__name__)

# Column holding the document key (product id) in every table
KEY_COLUMN = "id"

# Realtime channel states that mean the listener is dead
_FAILED_CHANNEL_STATES = {"CHANNEL_ERROR", "TIMED_OUT"}


@dataclass
class TableRef:
    """
    A logical path resolved to a Postgres table.

    - filters: column -> value scoping the collection (e.g. user_id)
    - key: document id when the path points at a single document
    """

    table: str
    filters: dict[str, str] = field(default_factory=dict)
    key: str | None = None

    @property
    def conflict_columns(self) -> str:
        return ",".join([*self.filters, KEY_COLUMN])


class SupabaseRemoteStore(RemoteStore):
    """
    RemoteStore backed by Supabase Postgres tables + Realtime.

    Path mapping:
      - products                  -> <products_table>
      - users/{uid}/cart          -> <cart_table> where user_id = uid
      - users/{uid}/cart/{pid}    -> <cart_table> row (user_id, id=pid)

    Supabase has no document snapshots, so every postgres_changes event
    on the table triggers a refetch of the whole (filtered) collection,
    which is then pushed to the subscriber.
    """

    def __init__(
        self,
        client: AsyncClient,
        products_table: str = "products",
        cart_table: str = "cart_items",
    ):
        self.client = client
        self.products_table = products_table
        self.cart_table = cart_table

    # ---- internal helpers ----

    def resolve(self, path: str) -> TableRef:
        parts = [p for p in path.strip("/").split("/") if p]

        if parts and parts[0] == "products" and len(parts) <= 2:
            return TableRef(
                table=self.products_table,
                key=parts[1] if len(parts) == 2 else None,
            )

        if len(parts) in (3, 4) and parts[0] == "users" and parts[2] == "cart":
            return TableRef(
                table=self.cart_table,
                filters={"user_id": parts[1]},
                key=parts[3] if len(parts) == 4 else None,
            )

        raise InvalidPathError(path)

    def _resolve_document(self, path: str) -> TableRef:
        ref = self.resolve(path)
        if ref.key is None:
            raise InvalidPathError(path)
        return ref

    # ---- reads ----

    async def fetch(self, path: str) -> list[Document]:
        """
        Read the full collection at `path` once.

        Scope columns (user_id) are stripped so documents look the same
        as the ones written through upsert().
        """
        ref = self.resolve(path)
        query = self.client.table(ref.table).select("*")
        for column, value in ref.filters.items():
            query = query.eq(column, value)
        if ref.key is not None:
            query = query.eq(KEY_COLUMN, ref.key)

        response = await query.execute()
        rows = response.data or []
        return [
            {k: v for k, v in row.items() if k not in ref.filters}
            for row in rows
        ]

    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        ref = self.resolve(path)
        if ref.key is not None:
            raise InvalidPathError(path)

        subscription = RealtimeSubscription(self, path, ref, on_snapshot, on_error)
        await subscription.open()
        return subscription

    # ---- writes ----

    async def upsert(self, path: str, doc: Document) -> None:
        ref = self._resolve_document(path)
        row = {**doc, **ref.filters, KEY_COLUMN: ref.key}
        await (
            self.client.table(ref.table)
            .upsert(row, on_conflict=ref.conflict_columns)
            .execute()
        )

    async def delete(self, path: str) -> None:
        ref = self._resolve_document(path)
        query = self.client.table(ref.table).delete()
        for column, value in ref.filters.items():
            query = query.eq(column, value)
        await query.eq(KEY_COLUMN, ref.key).execute()


class RealtimeSubscription(Subscription):
    """
    One Realtime channel listening to postgres_changes on a table.
    """

    def __init__(
        self,
        store: SupabaseRemoteStore,
        path: str,
        ref: TableRef,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ):
        self.store = store
        self.path = path
        self.ref = ref
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.channel = None
        self.closed = False
        self._tasks: set[asyncio.Task] = set()

    async def open(self) -> None:
        channel = self.store.client.channel(f"snapshot:{self.path}")

        options = {"schema": "public", "table": self.ref.table}
        if self.ref.filters:
            # Realtime accepts a single equality filter
            column, value = next(iter(self.ref.filters.items()))
            options["filter"] = f"{column}=eq.{value}"

        channel.on_postgres_changes("*", callback=self._on_change, **options)
        if "filter" in options:
            # DELETE events cannot be filtered, so a filtered channel never
            # sees them; listen unfiltered and let the refetch scope rows
            channel.on_postgres_changes(
                "DELETE",
                callback=self._on_change,
                schema="public",
                table=self.ref.table,
            )
        await channel.subscribe(self._on_status)
        self.channel = channel
        logger.info("Listening to %s (table %s)", self.path, self.ref.table)

        # Initial snapshot
        await self.push_snapshot()

    def _on_change(self, payload: dict) -> None:
        if self.closed:
            return
        logger.debug("Change on %s: %s", self.path, payload.get("eventType"))
        task = asyncio.get_running_loop().create_task(self.push_snapshot())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_status(self, status, error: Exception | None = None) -> None:
        state = str(getattr(status, "value", status))
        if state in _FAILED_CHANNEL_STATES and not self.closed:
            self.on_error(SubscriptionError(self.path, error or RuntimeError(state)))

    async def push_snapshot(self) -> None:
        try:
            docs = await self.store.fetch(self.path)
        except Exception as e:
            if not self.closed:
                self.on_error(SubscriptionError(self.path, e))
            return

        if not self.closed:
            self.on_snapshot(docs)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True

        for task in list(self._tasks):
            task.cancel()

        if self.channel is not None:
            await self.store.client.remove_channel(self.channel)
            self.channel = None
        logger.info("Stopped listening to %s", self.path)
