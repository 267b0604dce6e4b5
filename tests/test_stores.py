"""
Tests for the document stores.

Both the in-memory and the SQLAlchemy store (on in-memory SQLite) run the
same behavioural tests:
- Path reads and writes, including nested paths and removal
- Atomic transactions and clamped increments
- Subscriptions: immediate delivery, change delivery, cancellation
- Push key ordering
"""

import os
import threading
from unittest.mock import patch

import pytest

from spoonful.db import create_store, db_is_enabled
from spoonful.stores.base import ABORT, StoreError, Subscription, join_path, split_path
from spoonful.stores.memory_store import MemoryDocumentStore
from spoonful.stores.sql_store import SqlDocumentStore


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        instance = MemoryDocumentStore()
    else:
        instance = SqlDocumentStore("sqlite://")
    yield instance
    instance.close()


class TestPaths:
    def test_split_path(self):
        assert split_path("/recipes/r1/") == ("recipes", "r1")

    @pytest.mark.parametrize("path", ["", "/", "recipes//r1"])
    def test_invalid_paths(self, path):
        with pytest.raises(StoreError):
            split_path(path)

    def test_join_path(self):
        assert join_path("users", "u1", "favorites") == "users/u1/favorites"


class TestReadWrite:
    def test_missing_value_is_none(self, store):
        assert store.get("recipes/unknown") is None
        assert store.get("recipes") is None

    def test_set_and_get_document(self, store):
        store.set("recipes/r1", {"title": "Soup", "favoriteCounter": 0})
        assert store.get("recipes/r1") == {"title": "Soup", "favoriteCounter": 0}

    def test_nested_field(self, store):
        store.set("recipes/r1", {"title": "Soup"})
        store.set("recipes/r1/favoriteCounter", 3)
        assert store.get("recipes/r1/favoriteCounter") == 3
        assert store.get("recipes/r1")["title"] == "Soup"

    def test_nested_write_creates_parents(self, store):
        store.set("users/u1/favorites/r1", "r1")
        assert store.get("users/u1") == {"favorites": {"r1": "r1"}}

    def test_collection_read(self, store):
        store.set("recipes/a", {"title": "A"})
        store.set("recipes/b", {"title": "B"})
        assert store.get("recipes") == {"a": {"title": "A"}, "b": {"title": "B"}}

    def test_remove_prunes_empty_parents(self, store):
        store.set("users/u1/favorites/r1", "r1")
        store.remove("users/u1/favorites/r1")
        assert store.get("users/u1/favorites") is None
        assert store.get("users/u1") is None

    def test_remove_missing_is_noop(self, store):
        store.remove("recipes/never-existed")
        assert store.get("recipes/never-existed") is None

    def test_reads_are_copies(self, store):
        store.set("recipes/r1", {"categories": ["Soups"]})
        snapshot = store.get("recipes/r1")
        snapshot["categories"].append("Vegan")
        assert store.get("recipes/r1") == {"categories": ["Soups"]}


class TestTransactions:
    def test_transaction_commits(self, store):
        store.set("recipes/r1", {"favoriteCounter": 1})
        result = store.transaction("recipes/r1/favoriteCounter", lambda current: current + 1)
        assert result == 2
        assert store.get("recipes/r1/favoriteCounter") == 2

    def test_transaction_abort_keeps_value(self, store):
        store.set("recipes/r1", {"favoriteCounter": 1})
        result = store.transaction("recipes/r1/favoriteCounter", lambda current: ABORT)
        assert result == 1
        assert store.get("recipes/r1/favoriteCounter") == 1

    def test_increment_missing_value(self, store):
        assert store.increment("recipes/r1/favoriteCounter") == 1
        assert store.get("recipes/r1/favoriteCounter") == 1

    def test_decrement_clamped_at_floor(self, store):
        store.set("users/u1/recipesCreated", 0)
        assert store.increment("users/u1/recipesCreated", -1) == 0
        assert store.get("users/u1/recipesCreated") == 0

    def test_decrement_missing_value_stays_missing(self, store):
        assert store.increment("users/u1/recipesCreated", -1) == 0
        assert store.get("users/u1/recipesCreated") is None

    def test_decrement_without_floor(self, store):
        assert store.increment("recipes/r1/score", -2, floor=None) == -2

    def test_concurrent_increments(self, store):
        def worker():
            for _ in range(25):
                store.increment("recipes/r1/favoriteCounter")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get("recipes/r1/favoriteCounter") == 100


class TestSubscriptions:
    def test_immediate_delivery(self, store):
        store.set("recipes/r1", {"title": "Soup"})
        received = []
        store.subscribe("recipes", received.append)
        assert received == [{"r1": {"title": "Soup"}}]

    def test_change_below_path_is_delivered(self, store):
        received = []
        store.subscribe("recipes", received.append)
        store.set("recipes/r1/favoriteCounter", 2)
        assert received[-1] == {"r1": {"favoriteCounter": 2}}

    def test_change_above_path_is_delivered(self, store):
        store.set("users/u1/favorites/r1", "r1")
        received = []
        store.subscribe("users/u1/favorites", received.append)
        store.remove("users/u1")
        assert received[-1] is None

    def test_unrelated_change_not_delivered(self, store):
        received = []
        store.subscribe("users/u1/favorites", received.append)
        store.set("recipes/r1", {"title": "Soup"})
        assert received == [None]

    def test_cancel_stops_delivery(self, store):
        received = []
        subscription = store.subscribe("recipes", received.append)
        subscription.cancel()
        store.set("recipes/r1", {"title": "Soup"})
        assert received == [None]
        assert subscription.cancelled
        assert store.listener_count() == 0

    def test_subscription_context_manager(self, store):
        with store.subscribe("recipes", lambda snapshot: None) as subscription:
            assert isinstance(subscription, Subscription)
            assert store.listener_count() == 1
        assert store.listener_count() == 0

    def test_failing_callback_does_not_break_writes(self, store):
        def explode(snapshot):
            if snapshot:
                raise RuntimeError("boom")

        store.subscribe("recipes", explode)
        store.set("recipes/r1", {"title": "Soup"})
        assert store.get("recipes/r1") == {"title": "Soup"}

    def test_close_drops_listeners(self, store):
        store.subscribe("recipes", lambda snapshot: None)
        store.close()
        assert store.listener_count() == 0


class TestPushKey:
    def test_keys_are_unique_and_ordered(self, store):
        keys = [store.push_key("recipes") for _ in range(200)]
        assert len(set(keys)) == 200
        assert keys == sorted(keys)
        assert all(len(key) == 20 for key in keys)


class TestMemoryStore:
    def test_initial_tree_is_copied(self):
        initial = {"recipes": {"r1": {"title": "Soup"}}}
        store = MemoryDocumentStore(initial)
        initial["recipes"]["r1"]["title"] = "Changed"
        assert store.get("recipes/r1/title") == "Soup"

    def test_snapshot(self):
        store = MemoryDocumentStore()
        store.set("recipes/r1/title", "Soup")
        assert store.snapshot() == {"recipes": {"r1": {"title": "Soup"}}}


class TestSqlStore:
    def test_requires_url(self):
        with pytest.raises(StoreError):
            SqlDocumentStore("")

    def test_transaction_on_collection_rejected(self):
        store = SqlDocumentStore("sqlite://")
        with pytest.raises(StoreError):
            store.transaction("recipes", lambda current: {})

    def test_data_survives_reopen(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'spoonful.db'}"
        first = SqlDocumentStore(url)
        first.set("recipes/r1", {"title": "Soup"})
        first.close()

        second = SqlDocumentStore(url)
        assert second.get("recipes/r1") == {"title": "Soup"}
        second.close()


class TestCreateStore:
    """Tests for store selection from DATABASE_URL."""

    @patch.dict(os.environ, {}, clear=True)
    def test_memory_store_without_url(self):
        assert not db_is_enabled()
        assert isinstance(create_store(), MemoryDocumentStore)

    @patch.dict(os.environ, {"DATABASE_URL": "sqlite://"})
    def test_sql_store_from_environment(self):
        assert db_is_enabled()
        store = create_store()
        assert isinstance(store, SqlDocumentStore)
        store.close()

    @patch("spoonful.stores.sql_store.SqlDocumentStore", side_effect=StoreError("connection refused"))
    def test_falls_back_to_memory_when_database_fails(self, mock_sql_store):
        store = create_store("postgresql://spoonful@db/spoonful")
        assert isinstance(store, MemoryDocumentStore)
        mock_sql_store.assert_called_once_with("postgresql://spoonful@db/spoonful")
