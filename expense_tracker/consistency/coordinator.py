"""
Consistency Coordinator

Keeps the category name copied onto each expense in line with the live
category, and guards category deletion.

DESIGN DECISION: Propagation is best effort, not transactional.
- Each referencing expense is updated independently and concurrently
- Updates that landed are kept even if others fail
- The caller gets a PropagationReport listing both sides

Lookups go through the same decode chain as the live ledger, so an expense
written by an older schema counts as a reference exactly when the ledger
would show it under that category.
"""

import asyncio
from typing import Iterable, Optional

import structlog

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.consistency.decoder import Unparseable, decode_expense
from expense_tracker.errors import PersistenceError
from expense_tracker.models.expense import Category, Expense
from expense_tracker.models.results import PropagationReport
from expense_tracker.services.storage import (
    DocumentStoreInterface,
    FieldEquals,
    StorageError,
    StoredDocument,
)
from expense_tracker.services.storage.paths import expense_path, expenses_path
from expense_tracker.session import UserSession


logger = structlog.get_logger(__name__)

# Fields an expense may reference its category through, newest schema first
REFERENCE_FIELDS = ("categoryId", "category", "categoryName")


class ConsistencyCoordinator:
    """Rename propagation, usage guard and drift reconciliation."""

    def __init__(
        self,
        storage: DocumentStoreInterface,
        session: UserSession,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._session = session
        self._settings = settings or get_settings().app

    def _references(self, document: StoredDocument, category_id: str) -> bool:
        result = decode_expense(
            document.id,
            document.data,
            uncategorized_id=self._settings.uncategorized_category_id,
            uncategorized_name=self._settings.uncategorized_category_name,
        )
        if isinstance(result, Unparseable):
            # Unreadable records still block deletion if they name the category
            return (
                document.data.get("categoryId") == category_id
                or document.data.get("category") == category_id
            )
        return result.expense.category_id == category_id

    async def _referencing_documents(
        self,
        user_id: str,
        category_id: str,
    ) -> list[StoredDocument]:
        """
        All expense documents referencing a category.

        Raises:
            StorageError: If any lookup fails
        """
        found: dict[str, StoredDocument] = {}
        for field in REFERENCE_FIELDS:
            documents = await self._storage.query(
                expenses_path(user_id), FieldEquals(field=field, value=category_id)
            )
            for document in documents:
                if document.id not in found and self._references(document, category_id):
                    found[document.id] = document
        return list(found.values())

    async def is_in_use(self, category_id: str, user_id: Optional[str] = None) -> bool:
        """
        Check whether any expense references the category.

        Raises:
            PersistenceError: If the lookup fails; the answer is unknown
            NotAuthenticatedError: If no user is given and nobody is signed in
        """
        user_id = user_id or self._session.require_user_id()
        try:
            for field in REFERENCE_FIELDS:
                documents = await self._storage.query(
                    expenses_path(user_id), FieldEquals(field=field, value=category_id)
                )
                if any(self._references(document, category_id) for document in documents):
                    return True
        except StorageError as e:
            logger.error("usage_check_failed", category_id=category_id, error=str(e))
            raise PersistenceError(f"Could not check usage of category {category_id}: {e}")
        return False

    async def propagate_rename(
        self,
        category_id: str,
        new_name: str,
        user_id: Optional[str] = None,
    ) -> PropagationReport:
        """
        Copy a category's new name onto every expense that references it.

        Legacy records are upgraded to the current schema on the way.
        Never raises for storage problems; they end up in the report.
        """
        user_id = user_id or self._session.require_user_id()
        report = PropagationReport(category_id=category_id, new_name=new_name)

        try:
            documents = await self._referencing_documents(user_id, category_id)
        except StorageError as e:
            report.query_error = str(e)
            logger.error("propagation_query_failed", category_id=category_id, error=str(e))
            return report

        report.matched = len(documents)
        fields = {"categoryId": category_id, "categoryName": new_name}
        outcomes = await asyncio.gather(
            *(
                self._storage.update(expense_path(user_id, document.id), fields)
                for document in documents
            ),
            return_exceptions=True,
        )

        for document, outcome in zip(documents, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                report.failures[document.id] = str(outcome)
            else:
                report.updated_ids.append(document.id)

        log = logger.info if report.succeeded else logger.warning
        log(
            "rename_propagated",
            category_id=category_id,
            matched=report.matched,
            updated=len(report.updated_ids),
            failed=len(report.failures),
        )
        return report

    # -------------------------------------------------------------------------
    # Drift
    # -------------------------------------------------------------------------

    @staticmethod
    def find_drift(
        expenses: Iterable[Expense],
        categories: Iterable[Category],
    ) -> dict[str, list[str]]:
        """
        Expenses whose copied name differs from their live category's name.

        Returns category id -> expense ids. Expenses pointing at categories
        that no longer exist are not drift and are left out.
        """
        names = {category.id: category.name for category in categories}
        drift: dict[str, list[str]] = {}
        for expense in expenses:
            live_name = names.get(expense.category_id)
            if live_name is not None and live_name != expense.category_name:
                drift.setdefault(expense.category_id, []).append(expense.id)
        return drift

    async def reconcile(
        self,
        expenses: Iterable[Expense],
        categories: Iterable[Category],
        user_id: Optional[str] = None,
    ) -> list[PropagationReport]:
        """Re-run propagation for every category with drifted expenses."""
        categories = list(categories)
        names = {category.id: category.name for category in categories}
        drift = self.find_drift(expenses, categories)
        reports = []
        for category_id in drift:
            reports.append(
                await self.propagate_rename(category_id, names[category_id], user_id)
            )
        if reports:
            logger.info("drift_reconciled", categories=len(reports))
        return reports
