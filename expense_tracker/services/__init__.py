"""Services package."""

from expense_tracker.services.storage import (
    DocumentNotFoundError,
    DocumentStoreInterface,
    FirestoreClient,
    FirestoreDocumentStore,
    MemoryDocumentStore,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    "DocumentNotFoundError",
    "DocumentStoreInterface",
    "FirestoreClient",
    "FirestoreDocumentStore",
    "MemoryDocumentStore",
    "StorageConnectionError",
    "StorageError",
]
