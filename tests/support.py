"""
Test helpers shared across modules.

No test talks to a real document store: the in-memory store is used
directly, and FlakyDocumentStore injects failures where needed.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from expense_tracker.models.expense import Expense
from expense_tracker.services.storage import (
    FieldEquals,
    MemoryDocumentStore,
    StorageError,
    StoredDocument,
    StreamError,
)


USER_ID = "user-1"

# Wednesday in the middle of March
NOW = datetime(2024, 3, 13, 12, 0, 0)


class FlakyDocumentStore(MemoryDocumentStore):
    """In-memory store that fails chosen operations on chosen paths."""

    def __init__(self):
        super().__init__()
        self._failures: list[tuple[str, str, Exception]] = []
        self.calls: list[tuple[str, str]] = []

    def fail(
        self,
        operation: str,
        path_contains: str = "",
        error: Optional[Exception] = None,
    ) -> None:
        """Make every `operation` on a path containing `path_contains` raise."""
        self._failures.append(
            (operation, path_contains, error or StorageError(f"{operation} unavailable"))
        )

    def heal(self) -> None:
        self._failures.clear()

    def emit_error(self, path: str, message: str) -> None:
        """Push a stream error to every live subscription on `path`."""
        for subscription in list(self._subscriptions):
            if subscription.path == path:
                subscription.push(StreamError(path=path, message=message))

    def _check(self, operation: str, path: str) -> None:
        self.calls.append((operation, path))
        for failing_operation, fragment, error in self._failures:
            if failing_operation == operation and fragment in path:
                raise error

    async def write(self, path: str, record: dict[str, Any]) -> None:
        self._check("write", path)
        await super().write(path, record)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        self._check("update", path)
        await super().update(path, fields)

    async def delete(self, path: str) -> None:
        self._check("delete", path)
        await super().delete(path)

    async def query(self, collection_path: str, predicate: FieldEquals) -> list[StoredDocument]:
        self._check("query", collection_path)
        return await super().query(collection_path, predicate)


async def settle(rounds: int = 20) -> None:
    """Let consumer tasks drain their subscriptions."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_expense(
    amount: str = "10",
    category_id: str = "food",
    category_name: str = "Food",
    date: datetime = NOW,
    note: Optional[str] = None,
    expense_id: Optional[str] = None,
) -> Expense:
    values: dict[str, Any] = dict(
        amount=Decimal(amount),
        category_id=category_id,
        category_name=category_name,
        date=date,
        note=note,
    )
    if expense_id:
        values["id"] = expense_id
    return Expense(**values)


