"""
Tests for CatalogCache.

Tests:
- Live subscription and wholesale replacement
- search / filter_by_category / get
- Degrading to an empty catalog on listener failure
"""
import pytest

from shopnow.core.errors import SubscriptionError


async def load(store, catalog, docs):
    await catalog.start()
    store.push("products", docs)


def names(products) -> list[str]:
    return [p.name for p in products]


class TestSubscription:
    """Tests for the products listener."""

    def test_empty_before_first_snapshot(self, catalog):
        assert catalog.current_catalog() == []

    @pytest.mark.asyncio
    async def test_start_subscribes_once(self, store, catalog):
        await catalog.start()
        await catalog.start()

        assert len(store.open_subscriptions("products")) == 1

    @pytest.mark.asyncio
    async def test_snapshot_replaces_catalog(self, store, catalog, sample_products):
        await load(store, catalog, sample_products)
        assert names(catalog.current_catalog()) == ["Shoe", "Shirt", "Hat"]

        store.push("products", [{"id": "p9", "name": "Scarf", "price": 4}])
        assert names(catalog.current_catalog()) == ["Scarf"]

    @pytest.mark.asyncio
    async def test_listener_gets_current_then_updates(self, store, catalog, sample_products):
        received = []
        catalog.subscribe(received.append)
        await load(store, catalog, sample_products)

        assert received[0] == []
        assert names(received[1]) == ["Shoe", "Shirt", "Hat"]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_updates(self, store, catalog, sample_products):
        received = []
        unsubscribe = catalog.subscribe(received.append)
        unsubscribe()

        await load(store, catalog, sample_products)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_invalid_products_are_skipped(self, store, catalog):
        await load(store, catalog, [
            {"id": "p1", "name": "Shoe", "price": 10},
            {"id": "p2", "name": "Broken", "price": -5},
        ])

        assert names(catalog.current_catalog()) == ["Shoe"]

    @pytest.mark.asyncio
    async def test_error_emits_empty_catalog(self, store, catalog, sample_products):
        received = []
        catalog.subscribe(received.append)
        await load(store, catalog, sample_products)

        store.fail("products", ConnectionError("socket closed"))

        assert catalog.current_catalog() == []
        assert received[-1] == []
        assert isinstance(catalog.last_error, SubscriptionError)

    @pytest.mark.asyncio
    async def test_subscribe_failure_emits_empty_catalog(self, store, catalog):
        store.subscribe_error = ConnectionError("offline")

        await catalog.start()

        assert catalog.current_catalog() == []
        assert isinstance(catalog.last_error, SubscriptionError)

    @pytest.mark.asyncio
    async def test_stop_closes_listener(self, store, catalog):
        await catalog.start()
        await catalog.stop()

        assert store.open_subscriptions("products") == []


class TestQueries:
    """Tests for local catalog queries (no remote calls)."""

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive_substring(self, store, catalog, sample_products):
        await load(store, catalog, sample_products)

        assert names(catalog.search("sho")) == ["Shoe"]
        assert names(catalog.search("SH")) == ["Shoe", "Shirt"]
        assert names(catalog.search("hat")) == ["Hat"]
        assert catalog.search("boots") == []

    @pytest.mark.asyncio
    async def test_search_prefix_matches_all_candidates(self, store, catalog):
        await load(store, catalog, [
            {"id": "1", "name": "Shoe", "price": 1},
            {"id": "2", "name": "Shirt", "price": 1},
            {"id": "3", "name": "Hat", "price": 1},
        ])

        # "sho" matches Shoe only; "sh" covers both Shoe and Shirt
        assert names(catalog.search("sho")) == ["Shoe"]
        assert names(catalog.search("sh")) == ["Shoe", "Shirt"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_empty_search_returns_everything(self, store, catalog, sample_products, query):
        await load(store, catalog, sample_products)

        assert names(catalog.search(query)) == ["Shoe", "Shirt", "Hat"]

    @pytest.mark.asyncio
    async def test_search_makes_no_remote_calls(self, store, catalog, sample_products):
        await load(store, catalog, sample_products)

        catalog.search("s")

        assert len(store.subscriptions) == 1
        assert store.upserts == [] and store.deletes == []

    @pytest.mark.asyncio
    async def test_filter_by_category(self, store, catalog, sample_products):
        await load(store, catalog, sample_products)

        assert names(catalog.filter_by_category("clothing")) == ["Shirt", "Hat"]
        assert names(catalog.filter_by_category("Footwear")) == ["Shoe"]
        assert len(catalog.filter_by_category(None)) == 3
        assert catalog.filter_by_category("toys") == []

    @pytest.mark.asyncio
    async def test_get_and_categories(self, store, catalog, sample_products):
        await load(store, catalog, sample_products)

        assert catalog.get("p2").name == "Shirt"
        assert catalog.get("nope") is None
        assert catalog.categories() == ["Footwear", "Clothing", "clothing"]
