"""
Storage Services Package

Provides the abstract document store interface and its implementations.
Cloud Firestore backs production; the in-memory store backs tests and local runs.
"""

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
)
from expense_tracker.services.storage.memory import MemoryDocumentStore
from expense_tracker.services.storage.firestore import (
    FirestoreClient,
    FirestoreDocumentStore,
)

__all__ = [
    # Interface
    "DocumentStoreInterface",
    "Subscription",
    # Stream items and queries
    "CollectionSnapshot",
    "DocumentSnapshot",
    "FieldEquals",
    "StoredDocument",
    "StreamError",
    # Exceptions
    "DocumentNotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Implementations
    "FirestoreClient",
    "FirestoreDocumentStore",
    "MemoryDocumentStore",
]
