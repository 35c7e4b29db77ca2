"""
In-Memory Document Store

A process-local implementation of the document store interface.
Used for tests and for running the tracker without a cloud project.

Behaves like the real store where the tracker can tell the difference:
- subscribers get the current state first, then a snapshot per change
- writes are upserts, updates require an existing document
- deleting a missing document is a no-op
- callers never share dicts with the store (everything is copied)
"""

import copy
from typing import Any, Optional

import structlog

from expense_tracker.services.storage.interface import (
    CollectionSnapshot,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStoreInterface,
    FieldEquals,
    StoredDocument,
    Subscription,
    document_id,
    is_collection_path,
    parent_path,
    split_path,
)


def normalize_path(path: str) -> str:
    return "/".join(split_path(path))


class MemoryDocumentStore(DocumentStoreInterface):
    """Document store that keeps everything in a dict keyed by path."""

    def __init__(self):
        self._documents: dict[str, dict[str, Any]] = {}
        self._subscriptions: list[Subscription] = []
        self._logger = structlog.get_logger(__name__)

    @property
    def active_subscriptions(self) -> int:
        return sum(1 for sub in self._subscriptions if sub.active)

    def get(self, path: str) -> Optional[dict[str, Any]]:
        """Current contents of a document (a copy), or None."""
        data = self._documents.get(normalize_path(path))
        return copy.deepcopy(data) if data is not None else None

    def subscribe(self, path: str) -> Subscription:
        path = normalize_path(path)
        subscription = Subscription(path, on_cancel=self._forget)
        self._subscriptions.append(subscription)
        subscription.push(self._snapshot(path))
        self._logger.debug("subscription_started", path=path)
        return subscription

    async def write(self, path: str, record: dict[str, Any]) -> None:
        path = self._document_path(path)
        self._documents[path] = copy.deepcopy(record)
        self._notify(path)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        path = self._document_path(path)
        if path not in self._documents:
            raise DocumentNotFoundError(f"Document not found: {path}")
        self._documents[path].update(copy.deepcopy(fields))
        self._notify(path)

    async def delete(self, path: str) -> None:
        path = self._document_path(path)
        if self._documents.pop(path, None) is not None:
            self._notify(path)

    async def query(
        self,
        collection_path: str,
        predicate: FieldEquals,
    ) -> list[StoredDocument]:
        collection_path = normalize_path(collection_path)
        return [
            document
            for document in self._collection(collection_path)
            if predicate.matches(document.data)
        ]

    def _document_path(self, path: str) -> str:
        path = normalize_path(path)
        if is_collection_path(path):
            raise ValueError(f"Expected a document path, got collection path: {path}")
        return path

    def _collection(self, collection_path: str) -> tuple[StoredDocument, ...]:
        return tuple(
            StoredDocument(
                id=document_id(path),
                path=path,
                data=copy.deepcopy(data),
            )
            for path, data in self._documents.items()
            if parent_path(path) == collection_path
        )

    def _snapshot(self, path: str):
        if is_collection_path(path):
            return CollectionSnapshot(path=path, documents=self._collection(path))
        return DocumentSnapshot(path=path, data=self.get(path))

    def _notify(self, document_path: str) -> None:
        collection_path = parent_path(document_path)
        for subscription in list(self._subscriptions):
            if subscription.path in (document_path, collection_path):
                subscription.push(self._snapshot(subscription.path))

    def _forget(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        self._logger.debug("subscription_cancelled", path=subscription.path)
