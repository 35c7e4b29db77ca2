"""
Tests for the storage layer.

The in-memory store is tested directly. The Firestore adapter is tested
against a fake client, so no Google Cloud project is needed.
"""

import asyncio
import threading
from datetime import datetime
from decimal import Decimal

import pytest
from google.api_core import exceptions as google_exceptions
from tenacity import wait_none

from expense_tracker.services.storage import (
    CollectionSnapshot,
    DocumentNotFoundError,
    DocumentSnapshot,
    FieldEquals,
    FirestoreDocumentStore,
    MemoryDocumentStore,
    StorageError,
    StreamError,
)
from expense_tracker.services.storage.firestore import encode_value
from expense_tracker.services.storage.interface import (
    document_id,
    is_collection_path,
    parent_path,
)
from expense_tracker.services.storage.paths import (
    budget_path,
    expense_path,
    expenses_path,
    user_root,
)


async def next_item(subscription):
    return await asyncio.wait_for(subscription.__anext__(), timeout=1)


async def attached_listener(store, db, path):
    """Wait for the adapter's pending listener attachments."""
    await asyncio.wait_for(asyncio.gather(*list(store._pending)), timeout=1)
    return db.listeners[path]


class TestPaths:
    """Tests for path helpers."""

    def test_collection_and_document_paths(self):
        """Test segment parity."""
        assert is_collection_path("users/u1/expenses") is True
        assert is_collection_path("users/u1/expenses/e1") is False
        assert parent_path("users/u1/expenses/e1") == "users/u1/expenses"
        assert document_id("users/u1/expenses/e1") == "e1"

    def test_user_paths(self):
        """Test the per-user layout."""
        assert expense_path("u1", "e1") == "users/u1/expenses/e1"
        assert budget_path("u1") == "users/u1/settings/budget"

    @pytest.mark.parametrize("user_id", ["", "a/b"])
    def test_invalid_user_id(self, user_id):
        """Test that user ids cannot escape their root."""
        with pytest.raises(ValueError):
            user_root(user_id)


class TestMemoryDocumentStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_subscribe_delivers_current_state_first(self):
        """Test the initial snapshot."""
        store = MemoryDocumentStore()
        await store.write("users/u1/expenses/e1", {"amount": 1})
        subscription = store.subscribe("users/u1/expenses")

        snapshot = await next_item(subscription)
        assert isinstance(snapshot, CollectionSnapshot)
        assert [doc.id for doc in snapshot.documents] == ["e1"]
        subscription.cancel()

    @pytest.mark.asyncio
    async def test_document_subscription(self):
        """Test a document path subscription."""
        store = MemoryDocumentStore()
        subscription = store.subscribe("users/u1/settings/budget")

        first = await next_item(subscription)
        assert isinstance(first, DocumentSnapshot)
        assert first.exists is False

        await store.write("users/u1/settings/budget", {"amount": 10})
        second = await next_item(subscription)
        assert second.data == {"amount": 10}
        subscription.cancel()

    @pytest.mark.asyncio
    async def test_other_collections_do_not_notify(self):
        """Test that only the subscribed collection is delivered."""
        store = MemoryDocumentStore()
        subscription = store.subscribe("users/u1/expenses")
        await next_item(subscription)

        await store.write("users/u2/expenses/e1", {"amount": 1})
        await store.write("users/u1/expenses/e1", {"amount": 2})
        snapshot = await next_item(subscription)
        assert [doc.path for doc in snapshot.documents] == ["users/u1/expenses/e1"]
        subscription.cancel()

    @pytest.mark.asyncio
    async def test_cancel_suppresses_queued_items(self):
        """Test that nothing is yielded after cancel."""
        store = MemoryDocumentStore()
        subscription = store.subscribe("users/u1/expenses")
        await store.write("users/u1/expenses/e1", {"amount": 1})
        subscription.cancel()

        items = [item async for item in subscription]
        assert items == []
        assert store.active_subscriptions == 0

    @pytest.mark.asyncio
    async def test_update_requires_existing_document(self):
        """Test update semantics."""
        store = MemoryDocumentStore()
        with pytest.raises(DocumentNotFoundError):
            await store.update("users/u1/expenses/e1", {"amount": 1})

        await store.write("users/u1/expenses/e1", {"amount": 1, "note": "x"})
        await store.update("users/u1/expenses/e1", {"amount": 2})
        assert store.get("users/u1/expenses/e1") == {"amount": 2, "note": "x"}

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self):
        """Test idempotent delete."""
        store = MemoryDocumentStore()
        await store.delete("users/u1/expenses/e1")
        assert store.get("users/u1/expenses/e1") is None

    @pytest.mark.asyncio
    async def test_query(self):
        """Test equality queries."""
        store = MemoryDocumentStore()
        await store.write("users/u1/expenses/e1", {"categoryId": "food"})
        await store.write("users/u1/expenses/e2", {"categoryId": "rent"})
        await store.write("users/u1/expenses/e3", {"category": "food"})

        found = await store.query("users/u1/expenses", FieldEquals(field="categoryId", value="food"))
        assert [doc.id for doc in found] == ["e1"]

    @pytest.mark.asyncio
    async def test_records_are_copied(self):
        """Test that callers cannot mutate stored data."""
        store = MemoryDocumentStore()
        record = {"amount": 1}
        await store.write("users/u1/expenses/e1", record)
        record["amount"] = 99
        store.get("users/u1/expenses/e1")["amount"] = 50
        assert store.get("users/u1/expenses/e1") == {"amount": 1}

    @pytest.mark.asyncio
    async def test_collection_path_rejected_for_write(self):
        """Test that writes need a document path."""
        store = MemoryDocumentStore()
        with pytest.raises(ValueError):
            await store.write("users/u1/expenses", {"amount": 1})


# =============================================================================
# FIRESTORE FAKES
# =============================================================================

class FakeReference:
    def __init__(self, path):
        self.path = path


class FakeDocumentSnapshot:
    def __init__(self, path, data):
        self.id = path.rsplit("/", 1)[-1]
        self.reference = FakeReference(path)
        self._data = data
        self.exists = data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeWatch:
    def __init__(self):
        self.unsubscribed = False

    def unsubscribe(self):
        self.unsubscribed = True


class FakeDocumentReference:
    def __init__(self, db, path):
        self._db = db
        self.path = path

    def set(self, data):
        self._db.raise_pending()
        self._db.documents[self.path] = data

    def update(self, data):
        self._db.raise_pending()
        if self.path not in self._db.documents:
            raise google_exceptions.NotFound("no document")
        self._db.documents[self.path].update(data)

    def delete(self):
        self._db.raise_pending()
        self._db.documents.pop(self.path, None)

    def on_snapshot(self, callback):
        self._db.listeners[self.path] = callback
        return self._db.watch


class FakeQuery:
    def __init__(self, db, path, field_filter=None):
        self._db = db
        self._path = path
        self._filter = field_filter

    def where(self, filter=None):
        self._db.filters.append(filter)
        return FakeQuery(self._db, self._path, filter)

    def stream(self):
        self._db.raise_pending()
        for path, data in self._db.documents.items():
            if path.rsplit("/", 1)[0] != self._path:
                continue
            if self._filter is not None and data.get(self._filter.field_path) != self._filter.value:
                continue
            yield FakeDocumentSnapshot(path, data)

    def on_snapshot(self, callback):
        self._db.listeners[self._path] = callback
        return self._db.watch


class FakeDatabase:
    def __init__(self):
        self.documents = {}
        self.listeners = {}
        self.filters = []
        self.failures = []
        self.watch = FakeWatch()

    def raise_pending(self):
        if self.failures:
            raise self.failures.pop(0)

    def document(self, path):
        return FakeDocumentReference(self, path)

    def collection(self, path):
        return FakeQuery(self, path)


class FakeFirestoreClient:
    def __init__(self):
        self.db = FakeDatabase()

    def connect(self):
        return self.db


@pytest.fixture
def fake_client():
    return FakeFirestoreClient()


@pytest.fixture
def firestore_store(fake_client):
    return FirestoreDocumentStore(fake_client)


class TestFirestoreDocumentStore:
    """Tests for the Firestore adapter against a fake client."""

    def test_encode_value(self):
        """Test Decimal and naive datetime conversion."""
        encoded = encode_value({"amount": Decimal("12.5"), "date": datetime(2024, 3, 1, 9, 0)})
        assert encoded["amount"] == 12.5
        assert encoded["date"].tzinfo is not None
        assert encoded["date"].replace(tzinfo=None) == datetime(2024, 3, 1, 9, 0)

    @pytest.mark.asyncio
    async def test_write_encodes_record(self, firestore_store, fake_client):
        """Test that writes reach the client encoded."""
        await firestore_store.write("users/u1/expenses/e1", {"amount": Decimal("3.25")})
        assert fake_client.db.documents["users/u1/expenses/e1"] == {"amount": 3.25}

    @pytest.mark.asyncio
    async def test_update_missing_document(self, firestore_store):
        """Test NotFound translation."""
        with pytest.raises(DocumentNotFoundError):
            await firestore_store.update("users/u1/expenses/e1", {"amount": 1})

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, firestore_store, fake_client):
        """Test that NotFound on delete is ignored."""
        fake_client.db.failures.append(google_exceptions.NotFound("gone"))
        await firestore_store.delete("users/u1/expenses/e1")

    @pytest.mark.asyncio
    async def test_permanent_error_is_wrapped(self, firestore_store, fake_client):
        """Test that non-transient errors become StorageError without retry."""
        fake_client.db.failures.append(google_exceptions.PermissionDenied("no access"))
        fake_client.db.failures.append(google_exceptions.PermissionDenied("no access"))
        with pytest.raises(StorageError, match="no access"):
            await firestore_store.write("users/u1/expenses/e1", {"amount": 1})
        # Second failure was not consumed: no retry happened
        assert len(fake_client.db.failures) == 1

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, firestore_store, fake_client, monkeypatch):
        """Test tenacity retry on ServiceUnavailable."""
        monkeypatch.setattr(FirestoreDocumentStore._call.retry, "wait", wait_none())
        fake_client.db.failures.append(google_exceptions.ServiceUnavailable("busy"))

        await firestore_store.write("users/u1/expenses/e1", {"amount": 1})
        assert fake_client.db.documents["users/u1/expenses/e1"] == {"amount": 1}

    @pytest.mark.asyncio
    async def test_query_uses_field_filter(self, firestore_store, fake_client):
        """Test equality queries."""
        fake_client.db.documents = {
            "users/u1/expenses/e1": {"categoryId": "food"},
            "users/u1/expenses/e2": {"categoryId": "rent"},
        }
        found = await firestore_store.query(
            "users/u1/expenses", FieldEquals(field="categoryId", value="food")
        )
        assert [doc.id for doc in found] == ["e1"]
        assert found[0].path == "users/u1/expenses/e1"
        assert fake_client.db.filters[0].field_path == "categoryId"

    @pytest.mark.asyncio
    async def test_collection_listener(self, firestore_store, fake_client):
        """Test that listener callbacks become collection snapshots."""
        subscription = firestore_store.subscribe(expenses_path("u1"))
        callback = await attached_listener(firestore_store, fake_client.db, "users/u1/expenses")

        callback(
            [FakeDocumentSnapshot("users/u1/expenses/e1", {"amount": 1})],
            [],
            None,
        )
        snapshot = await next_item(subscription)
        assert isinstance(snapshot, CollectionSnapshot)
        assert snapshot.documents[0].data == {"amount": 1}

        subscription.cancel()
        assert fake_client.db.watch.unsubscribed is True

    @pytest.mark.asyncio
    async def test_document_listener_missing_document(self, firestore_store, fake_client):
        """Test a listener on a document that does not exist."""
        subscription = firestore_store.subscribe(budget_path("u1"))
        callback = await attached_listener(firestore_store, fake_client.db, "users/u1/settings/budget")

        callback([FakeDocumentSnapshot("users/u1/settings/budget", None)], [], None)
        snapshot = await next_item(subscription)
        assert isinstance(snapshot, DocumentSnapshot)
        assert snapshot.exists is False
        subscription.cancel()

    @pytest.mark.asyncio
    async def test_listener_attach_failure_is_stream_error(self):
        """Test that a listener that cannot attach reports a stream error."""

        class BrokenClient:
            def connect(self):
                raise StorageError("no credentials")

        subscription = FirestoreDocumentStore(BrokenClient()).subscribe("users/u1/expenses")
        item = await next_item(subscription)
        assert isinstance(item, StreamError)
        assert "no credentials" in item.message
        subscription.cancel()

    @pytest.mark.asyncio
    async def test_subscribe_connects_off_the_event_loop(self, firestore_store, fake_client):
        """Test that a slow connect never runs on the loop thread."""
        loop_thread = threading.get_ident()
        connect_threads = []
        connect = fake_client.connect

        def recording_connect():
            connect_threads.append(threading.get_ident())
            return connect()

        fake_client.connect = recording_connect
        subscription = firestore_store.subscribe(expenses_path("u1"))
        assert connect_threads == []

        await attached_listener(firestore_store, fake_client.db, "users/u1/expenses")
        assert connect_threads and loop_thread not in connect_threads
        subscription.cancel()

    @pytest.mark.asyncio
    async def test_cancel_before_attach_unsubscribes(self, firestore_store, fake_client):
        """Test that a listener attached after cancel is removed at once."""
        subscription = firestore_store.subscribe(expenses_path("u1"))
        subscription.cancel()

        await attached_listener(firestore_store, fake_client.db, "users/u1/expenses")
        assert fake_client.db.watch.unsubscribed is True
