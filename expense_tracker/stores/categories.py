"""
Category Registry

Live mirror of users/{uid}/categories, ordered by creation time.

Renames return as soon as the category document is updated. Copying the
new name onto existing expenses runs in the background; its outcome is
published on `propagation_reports` and written to the audit log.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional

from expense_tracker.audit import AuditLogger
from expense_tracker.consistency.coordinator import ConsistencyCoordinator
from expense_tracker.consistency.decoder import decode_category
from expense_tracker.errors import (
    CategoryInUseError,
    PersistenceError,
    TrackerError,
    ValidationError,
)
from expense_tracker.models.expense import Category
from expense_tracker.models.results import OperationResult, PropagationReport
from expense_tracker.services.storage import (
    CollectionSnapshot,
    DocumentStoreInterface,
    StorageError,
)
from expense_tracker.services.storage.interface import StreamItem
from expense_tracker.services.storage.paths import categories_path, category_path
from expense_tracker.session import UserSession
from expense_tracker.stores.base import LiveStore, Observable, storage_failure


def validate_name(name: Optional[str]) -> str:
    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("Category name cannot be empty", field="name")
    return trimmed


class CategoryRegistry(LiveStore[tuple[Category, ...]]):
    """The user's categories."""

    entity_type = "category"

    def __init__(
        self,
        storage: DocumentStoreInterface,
        session: UserSession,
        coordinator: ConsistencyCoordinator,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(storage, session, audit_logger)
        self._coordinator = coordinator
        self._clock = clock
        self._categories: tuple[Category, ...] = ()
        self._propagations: set[asyncio.Task] = set()
        self._latest_propagation: dict[str, asyncio.Task] = {}
        self.propagation_reports: Observable[PropagationReport] = Observable(
            "category.propagation_reports"
        )

    # -------------------------------------------------------------------------
    # Mirror
    # -------------------------------------------------------------------------

    def _subscription_path(self, user_id: str) -> str:
        return categories_path(user_id)

    def _reset(self) -> None:
        self._categories = ()

    def _apply(self, item: StreamItem) -> None:
        if not isinstance(item, CollectionSnapshot):
            self._logger.warning("unexpected_snapshot", kind=type(item).__name__)
            return

        categories = []
        for document in item.documents:
            category = decode_category(document.id, document.data)
            if category is None:
                self._logger.warning("category_unreadable", document_id=document.id)
                continue
            categories.append(category)

        # sorted() is stable, so equal timestamps keep snapshot order
        self._categories = tuple(sorted(categories, key=lambda c: c.created_at))
        self._logger.debug("categories_synced", count=len(self._categories))

    def snapshot(self) -> tuple[Category, ...]:
        return self._categories

    def get(self, category_id: str) -> Optional[Category]:
        for category in self._categories:
            if category.id == category_id:
                return category
        return None

    def find_name(self, category_id: str) -> Optional[str]:
        category = self.get(category_id)
        return category.name if category else None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def add(self, name: str) -> OperationResult:
        """Create a category. The name is stored trimmed."""
        try:
            user_id = self._session.require_user_id()
            category = Category(name=validate_name(name), created_at=self._clock())
        except TrackerError as e:
            return await self._failed("add_category", e)

        try:
            await self._storage.write(
                category_path(user_id, category.id), category.to_record()
            )
        except StorageError as e:
            return await self._failed("add_category", storage_failure(e), category.id)

        await self._audit.log_category_added(user_id, category.id, category.name)
        return OperationResult.ok(category.id)

    async def rename(self, category_id: str, new_name: str) -> OperationResult:
        """
        Rename a category and start propagating the name to its expenses.

        The result reflects the category document only. Use
        `wait_for_propagation()` or `propagation_reports` to follow the rest.
        """
        try:
            user_id = self._session.require_user_id()
            name = validate_name(new_name)
        except TrackerError as e:
            return await self._failed("rename_category", e, category_id)

        old_name = self.find_name(category_id)
        try:
            await self._storage.update(category_path(user_id, category_id), {"name": name})
        except StorageError as e:
            return await self._failed("rename_category", storage_failure(e), category_id)

        self._start_propagation(user_id, category_id, name)
        await self._audit.log_category_renamed(user_id, category_id, old_name, name)
        return OperationResult.ok(category_id)

    def _start_propagation(self, user_id: str, category_id: str, name: str) -> None:
        # Propagations of one category run in rename order so the last name wins
        previous = self._latest_propagation.get(category_id)
        task = asyncio.get_running_loop().create_task(
            self._propagate(user_id, category_id, name, previous)
        )
        self._latest_propagation[category_id] = task
        self._propagations.add(task)

        def finished(done: asyncio.Task) -> None:
            self._propagations.discard(done)
            if self._latest_propagation.get(category_id) is done:
                del self._latest_propagation[category_id]

        task.add_done_callback(finished)

    async def _propagate(
        self,
        user_id: str,
        category_id: str,
        name: str,
        previous: Optional[asyncio.Task] = None,
    ) -> PropagationReport:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        report = await self._coordinator.propagate_rename(category_id, name, user_id)
        if not report.succeeded:
            self._logger.warning("propagation_incomplete", summary=report.summary())
        await self._audit.log_propagation(user_id, report)
        self.propagation_reports.publish(report)
        return report

    async def wait_for_propagation(self) -> list[PropagationReport]:
        """Wait for every rename propagation started so far."""
        if not self._propagations:
            return []
        return list(await asyncio.gather(*list(self._propagations)))

    async def delete(self, category_id: str) -> OperationResult:
        """
        Delete a category that no expense references.

        If the usage check cannot be completed the category is kept.
        """
        try:
            user_id = self._session.require_user_id()
            if not category_id:
                raise ValidationError("Category id is required", field="category_id")
            in_use = await self._coordinator.is_in_use(category_id, user_id)
        except TrackerError as e:
            return await self._failed("delete_category", e, category_id)

        if in_use:
            await self._audit.log_category_delete_blocked(user_id, category_id)
            return await self._failed(
                "delete_category", CategoryInUseError(category_id), category_id
            )

        try:
            await self._storage.delete(category_path(user_id, category_id))
        except StorageError as e:
            return await self._failed(
                "delete_category", PersistenceError(str(e)), category_id
            )

        await self._audit.log_category_deleted(user_id, category_id)
        return OperationResult.ok(category_id)
