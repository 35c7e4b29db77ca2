"""
Cloud Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because:
1. It pushes real-time snapshots, which the tracker mirrors directly
2. Per-user subcollections (users/{uid}/...) map onto its data model
3. Built-in offline replay and backup (Google's infrastructure)

TRADEOFFS:
- The Python client is synchronous; calls run in a worker thread
- Listener callbacks arrive on a background thread and are handed to the
  event loop with call_soon_threadsafe
- No multi-document transactions here (rename propagation is best effort)

Retries for transient failures live here, at the storage boundary, not in
the tracker core.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_tracker.config import FirestoreSettings, get_settings
from expense_tracker.services.storage.interface import (
    CollectionSnapshot,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStoreInterface,
    FieldEquals,
    StorageConnectionError,
    StorageError,
    StoredDocument,
    StreamError,
    Subscription,
    is_collection_path,
)


SCOPES = [
    "https://www.googleapis.com/auth/datastore",
    "https://www.googleapis.com/auth/cloud-platform",
]

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.TooManyRequests,
)


def encode_value(value: Any) -> Any:
    """Convert tracker values into types the Firestore client accepts."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime) and value.tzinfo is None:
        # Firestore reads naive datetimes as UTC; ours are local time
        return value.astimezone()
    if isinstance(value, dict):
        return {key: encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]
    return value


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles authentication and lazy connection.
    """

    def __init__(self, settings: Optional[FirestoreSettings] = None):
        self._client: Optional[firestore.Client] = None
        self._settings = settings or get_settings().firestore

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> firestore.Client:
        """
        Establish connection to Firestore.

        Uses service account credentials when a path is configured,
        application default credentials otherwise.
        """
        if self._client is None:
            try:
                credentials = None
                if self._settings.credentials_path:
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path,
                        scopes=SCOPES,
                    )
                self._client = firestore.Client(
                    project=self._settings.project_id,
                    credentials=credentials,
                    database=self._settings.database,
                )
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Firestore credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Firestore: {e}")

        return self._client


class FirestoreDocumentStore(DocumentStoreInterface):
    """
    Firestore implementation of the document store.

    Documents are stored as-is under their slash-separated paths.
    Decimals are written as floats and naive datetimes as local time.
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()
        self._logger = structlog.get_logger(__name__)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, path: str) -> Subscription:
        """
        Attach a snapshot listener to a collection or document.

        Must be called from the event loop that consumes the subscription.
        Connecting and attaching run in a worker thread, so the listener is
        live shortly after this returns, not when it returns.
        """
        loop = asyncio.get_running_loop()
        watches: list = []

        def stop(_subscription: Subscription) -> None:
            for watch in watches:
                watch.unsubscribe()

        subscription = Subscription(path, on_cancel=stop)

        def deliver(item) -> None:
            try:
                loop.call_soon_threadsafe(subscription.push, item)
            except RuntimeError as e:
                # Event loop already closed; nobody is left to consume the item
                self._logger.warning("snapshot_dropped", path=path, error=str(e))

        if is_collection_path(path):
            def on_snapshot(documents, changes, read_time) -> None:
                try:
                    deliver(CollectionSnapshot(
                        path=path,
                        documents=tuple(self._stored(doc) for doc in documents),
                    ))
                except Exception as e:
                    deliver(StreamError(path=path, message=str(e)))
        else:
            def on_snapshot(documents, changes, read_time) -> None:
                try:
                    doc = documents[0] if documents else None
                    data = doc.to_dict() if doc is not None and doc.exists else None
                    deliver(DocumentSnapshot(path=path, data=data))
                except Exception as e:
                    deliver(StreamError(path=path, message=str(e)))

        def attach():
            db = self._client.connect()
            reference = db.collection(path) if is_collection_path(path) else db.document(path)
            return reference.on_snapshot(on_snapshot)

        async def start() -> None:
            try:
                watch = await asyncio.to_thread(attach)
            except Exception as e:
                self._logger.error("listener_failed", path=path, error=str(e))
                subscription.push(StreamError(path=path, message=f"Failed to listen to {path}: {e}"))
                return
            if not subscription.active:
                watch.unsubscribe()
                return
            watches.append(watch)
            self._logger.info("listener_attached", path=path)

        task = loop.create_task(start())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return subscription

    async def write(self, path: str, record: dict[str, Any]) -> None:
        """Create or replace a document."""
        try:
            await self._call(lambda: self._client.connect().document(path).set(encode_value(record)))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        try:
            await self._call(lambda: self._client.connect().document(path).update(encode_value(fields)))
        except google_exceptions.NotFound:
            raise DocumentNotFoundError(f"Document not found: {path}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {path}: {e}") from e

    async def delete(self, path: str) -> None:
        """Delete a document (no error if it is already gone)."""
        try:
            await self._call(lambda: self._client.connect().document(path).delete())
        except google_exceptions.NotFound:
            return
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    async def query(
        self,
        collection_path: str,
        predicate: FieldEquals,
    ) -> list[StoredDocument]:
        """Run an equality query against a collection."""
        def run() -> list:
            query = self._client.connect().collection(collection_path).where(
                filter=FieldFilter(predicate.field, "==", encode_value(predicate.value))
            )
            return list(query.stream())

        try:
            documents = await self._call(run)
            return [self._stored(doc) for doc in documents]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to query {collection_path}: {e}") from e

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _call(self, operation: Callable[[], Any]) -> Any:
        return await asyncio.to_thread(operation)

    @staticmethod
    def _stored(doc) -> StoredDocument:
        return StoredDocument(
            id=doc.id,
            path=doc.reference.path,
            data=doc.to_dict() or {},
        )
