"""
Expense Ledger

Live mirror of users/{uid}/expenses and the monthly views derived from it.

Monthly views are computed from the clock at call time, never cached, so a
ledger left open across midnight at the end of a month rolls over correctly.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from expense_tracker.audit import AuditLogger
from expense_tracker.config import AppSettings, get_settings
from expense_tracker.consistency.decoder import (
    DecodeError,
    LegacyDecoded,
    Unparseable,
    decode_expense,
    to_amount,
    to_local_datetime,
)
from expense_tracker.errors import TrackerError, ValidationError
from expense_tracker.models.expense import CategorySummary, Expense
from expense_tracker.models.results import OperationResult
from expense_tracker.services.storage import (
    CollectionSnapshot,
    DocumentNotFoundError,
    DocumentStoreInterface,
    StorageError,
)
from expense_tracker.services.storage.interface import StreamItem
from expense_tracker.services.storage.paths import expense_path, expenses_path
from expense_tracker.session import UserSession
from expense_tracker.stores.base import LiveStore, storage_failure


def validate_amount(amount: Any) -> Decimal:
    """Amounts entered by the user must be positive numbers."""
    try:
        value = to_amount(amount)
    except DecodeError:
        raise ValidationError(f"Amount is not a number: {amount!r}", field="amount")
    if value <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    return value


def validate_date(moment: Any) -> datetime:
    if not isinstance(moment, (datetime, date)):
        raise ValidationError(f"Date is required, got {moment!r}", field="date")
    return to_local_datetime(moment)


class ExpenseLedger(LiveStore[tuple[Expense, ...]]):
    """
    The user's expenses.

    Add and delete are submitted to the document store; the mirror only
    reflects them once the store's next snapshot arrives.
    """

    entity_type = "expense"

    def __init__(
        self,
        storage: DocumentStoreInterface,
        session: UserSession,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
        settings: Optional[AppSettings] = None,
    ):
        super().__init__(storage, session, audit_logger)
        self._clock = clock
        self._settings = settings or get_settings().app
        self._expenses: dict[str, Expense] = {}
        self._reported_issues: set[str] = set()
        self.decode_issues: tuple[Unparseable, ...] = ()
        self.legacy_records = 0

    # -------------------------------------------------------------------------
    # Mirror
    # -------------------------------------------------------------------------

    def _subscription_path(self, user_id: str) -> str:
        return expenses_path(user_id)

    def _reset(self) -> None:
        self._expenses = {}
        self._reported_issues = set()
        self.decode_issues = ()
        self.legacy_records = 0

    def _apply(self, item: StreamItem) -> None:
        if not isinstance(item, CollectionSnapshot):
            self._logger.warning("unexpected_snapshot", kind=type(item).__name__)
            return

        expenses: dict[str, Expense] = {}
        issues: list[Unparseable] = []
        legacy = 0
        for document in item.documents:
            result = decode_expense(
                document.id,
                document.data,
                uncategorized_id=self._settings.uncategorized_category_id,
                uncategorized_name=self._settings.uncategorized_category_name,
            )
            if isinstance(result, Unparseable):
                issues.append(result)
                continue
            if isinstance(result, LegacyDecoded):
                legacy += 1
            expenses[result.expense.id] = result.expense

        self._expenses = expenses
        self.decode_issues = tuple(issues)
        self.legacy_records = legacy
        self._logger.debug(
            "expenses_synced",
            count=len(expenses),
            legacy=legacy,
            unparseable=len(issues),
        )

    async def _after_apply(self) -> None:
        for issue in self.decode_issues:
            if issue.document_id in self._reported_issues:
                continue
            self._reported_issues.add(issue.document_id)
            await self._audit.log_decode_failed(
                self._listening_user, issue.document_id, issue.reason
            )

    def snapshot(self) -> tuple[Expense, ...]:
        return tuple(self._expenses.values())

    def get(self, expense_id: str) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    def __len__(self) -> int:
        return len(self._expenses)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def add(
        self,
        amount: Any,
        category_id: str,
        category_name: str,
        date: datetime,
        note: Optional[str] = None,
    ) -> OperationResult:
        """
        Record a new expense.

        Invalid input is rejected before anything is sent to the store.
        On success, `entity_id` carries the new expense's id.
        """
        try:
            user_id = self._session.require_user_id()
            value = validate_amount(amount)
            moment = validate_date(date)
            if not category_id or not category_id.strip():
                raise ValidationError("Category is required", field="category_id")
            if not category_name or not category_name.strip():
                raise ValidationError("Category name is required", field="category_name")
            note = note.strip() if note and note.strip() else None
            try:
                expense = Expense(
                    amount=value,
                    category_id=category_id,
                    category_name=category_name,
                    date=moment,
                    note=note,
                )
            except PydanticValidationError as e:
                raise ValidationError(str(e))
        except TrackerError as e:
            return await self._failed("add_expense", e)

        try:
            await self._storage.write(expense_path(user_id, expense.id), expense.to_record())
        except StorageError as e:
            return await self._failed("add_expense", storage_failure(e), expense.id)

        self._logger.info("expense_submitted", expense_id=expense.id, amount=str(value))
        await self._audit.log_expense_added(
            user_id=user_id,
            expense_id=expense.id,
            amount=str(value),
            category_name=expense.category_name,
        )
        return OperationResult.ok(expense.id)

    async def delete(self, expense_id: str) -> OperationResult:
        """Remove an expense. Removing an id that is already gone succeeds."""
        try:
            user_id = self._session.require_user_id()
            if not expense_id:
                raise ValidationError("Expense id is required", field="expense_id")
        except TrackerError as e:
            return await self._failed("delete_expense", e, expense_id)

        try:
            await self._storage.delete(expense_path(user_id, expense_id))
        except DocumentNotFoundError:
            self._logger.info("expense_already_deleted", expense_id=expense_id)
        except StorageError as e:
            return await self._failed("delete_expense", storage_failure(e), expense_id)

        await self._audit.log_expense_deleted(user_id, expense_id)
        return OperationResult.ok(expense_id)

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    def expenses_in_month(self, year: int, month: int) -> list[Expense]:
        return [
            expense
            for expense in self._expenses.values()
            if expense.date.year == year and expense.date.month == month
        ]

    def monthly_total_for(self, year: int, month: int) -> Decimal:
        return sum(
            (expense.amount for expense in self.expenses_in_month(year, month)),
            Decimal("0"),
        )

    def monthly_total(self) -> Decimal:
        """Total spent in the current calendar month."""
        now = self._clock()
        return self.monthly_total_for(now.year, now.month)

    def monthly_category_summaries(self) -> list[CategorySummary]:
        """
        Current month's spending per category name, largest first.

        Grouping uses the name stored on each expense, so a category that
        was renamed but not yet reconciled shows up under both names.
        Equal totals keep the order in which the names were first seen.
        """
        now = self._clock()
        totals: dict[str, Decimal] = {}
        for expense in self.expenses_in_month(now.year, now.month):
            totals[expense.category_name] = (
                totals.get(expense.category_name, Decimal("0")) + expense.amount
            )

        summaries = [
            CategorySummary.build(name, total, self._settings.default_summary_color)
            for name, total in totals.items()
        ]
        return sorted(summaries, key=lambda summary: summary.total, reverse=True)
