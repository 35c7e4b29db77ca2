"""
Abstract Document Store Interface

DESIGN DECISION: We define an abstract interface for the remote document store.
This allows us to:
1. Run against Cloud Firestore in production
2. Use in-memory storage for testing and local development
3. Inject failures to test every error path
4. Keep the ledger, registry and budget logic decoupled from storage

The interface is intentionally small - it is not an ORM.
Just the operations the tracker needs: live subscriptions, upsert,
partial update, delete and equality queries.

Paths are slash-separated. An odd number of segments names a collection
(users/u1/expenses), an even number names a document (users/u1/expenses/e1).
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict


# =============================================================================
# PATHS
# =============================================================================

def split_path(path: str) -> list[str]:
    segments = [segment for segment in path.strip("/").split("/") if segment]
    if not segments:
        raise ValueError("Empty document path")
    return segments


def is_collection_path(path: str) -> bool:
    return len(split_path(path)) % 2 == 1


def parent_path(document_path: str) -> str:
    """Collection that holds a document."""
    return "/".join(split_path(document_path)[:-1])


def document_id(document_path: str) -> str:
    return split_path(document_path)[-1]


# =============================================================================
# STREAM ITEMS
# =============================================================================

class StoredDocument(BaseModel):
    """One document as read from the store."""
    model_config = ConfigDict(frozen=True)

    id: str
    path: str
    data: dict[str, Any]


class CollectionSnapshot(BaseModel):
    """Every document of a collection at one point in time."""
    model_config = ConfigDict(frozen=True)

    path: str
    documents: tuple[StoredDocument, ...] = ()


class DocumentSnapshot(BaseModel):
    """A single document at one point in time. `data` is None when it does not exist."""
    model_config = ConfigDict(frozen=True)

    path: str
    data: Optional[dict[str, Any]] = None

    @property
    def exists(self) -> bool:
        return self.data is not None


class StreamError(BaseModel):
    """The store could not deliver an update for a subscribed path."""
    model_config = ConfigDict(frozen=True)

    path: str
    message: str


StreamItem = Union[CollectionSnapshot, DocumentSnapshot, StreamError]


class FieldEquals(BaseModel):
    """Equality predicate used by `query`."""
    model_config = ConfigDict(frozen=True)

    field: str
    value: Any

    def matches(self, record: dict[str, Any]) -> bool:
        return field_present(record, self.field) and record[self.field] == self.value


def field_present(record: dict[str, Any], field: str) -> bool:
    return field in record and record[field] is not None


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

_CLOSED = object()


class Subscription:
    """
    A cancelable stream of snapshots for one path.

    Iterate with `async for`. Once `cancel()` returns, the iterator yields
    nothing more, including items that were queued before cancellation.
    """

    def __init__(
        self,
        path: str,
        on_cancel: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.path = path
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False
        self._on_cancel = on_cancel

    @property
    def active(self) -> bool:
        return not self._cancelled

    def push(self, item: StreamItem) -> None:
        """Queue an item for the consumer. Ignored after cancellation."""
        if not self._cancelled:
            self._queue.put_nowait(item)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._queue.put_nowait(_CLOSED)
        if self._on_cancel is not None:
            self._on_cancel(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> StreamItem:
        item = await self._queue.get()
        if item is _CLOSED or self._cancelled:
            raise StopAsyncIteration
        return item


# =============================================================================
# STORE
# =============================================================================

class DocumentStoreInterface(ABC):
    """
    Abstract interface for the remote document store.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    def subscribe(self, path: str) -> Subscription:
        """
        Start receiving snapshots for a collection or document path.

        The current state is delivered first, then one snapshot per change.

        Args:
            path: Collection or document path

        Returns:
            A live Subscription. Cancel it to stop updates.
        """
        pass

    @abstractmethod
    async def write(self, path: str, record: dict[str, Any]) -> None:
        """
        Create or replace a document.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document doesn't exist
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        """
        Delete a document. Deleting a missing document is a no-op.

        Raises:
            StorageError: If the delete fails
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection_path: str,
        predicate: FieldEquals,
    ) -> list[StoredDocument]:
        """
        Find the documents of a collection matching a predicate.

        Raises:
            StorageError: If the query fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DocumentNotFoundError(StorageError):
    """Document not found in storage."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
