"""
Budget Tracker

Live mirror of the single budget document at users/{uid}/settings/budget.
A missing document means no budget (amount 0).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from expense_tracker.audit import AuditLogger
from expense_tracker.consistency.decoder import DecodeError, decode_budget, to_amount
from expense_tracker.errors import TrackerError, ValidationError
from expense_tracker.models.expense import Budget, BudgetStatus
from expense_tracker.models.results import OperationResult
from expense_tracker.services.storage import (
    DocumentSnapshot,
    DocumentStoreInterface,
    StorageError,
)
from expense_tracker.services.storage.interface import StreamItem
from expense_tracker.services.storage.paths import budget_path
from expense_tracker.session import UserSession
from expense_tracker.stores.base import LiveStore, storage_failure


class BudgetTracker(LiveStore[Budget]):
    """The user's monthly budget and comparisons against it."""

    entity_type = "budget"

    def __init__(
        self,
        storage: DocumentStoreInterface,
        session: UserSession,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(storage, session, audit_logger)
        self._clock = clock
        self._budget = Budget()

    def _subscription_path(self, user_id: str) -> str:
        return budget_path(user_id)

    def _reset(self) -> None:
        self._budget = Budget()

    def _apply(self, item: StreamItem) -> None:
        if not isinstance(item, DocumentSnapshot):
            self._logger.warning("unexpected_snapshot", kind=type(item).__name__)
            return
        self._budget = decode_budget(item.data)
        self._logger.debug("budget_synced", amount=str(self._budget.amount))

    def snapshot(self) -> Budget:
        return self._budget

    @property
    def monthly_budget(self) -> Decimal:
        return self._budget.amount

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def set_budget(self, amount: Any) -> OperationResult:
        """Set the monthly budget. Zero clears it; negative amounts are rejected."""
        try:
            user_id = self._session.require_user_id()
            try:
                value = to_amount(amount)
            except DecodeError:
                raise ValidationError(f"Budget is not a number: {amount!r}", field="amount")
            if value < 0:
                raise ValidationError("Budget cannot be negative", field="amount")
        except TrackerError as e:
            return await self._failed("set_budget", e)

        budget = Budget(amount=value, updated_at=self._clock())
        try:
            await self._storage.write(budget_path(user_id), budget.to_record())
        except StorageError as e:
            return await self._failed("set_budget", storage_failure(e))

        await self._audit.log_budget_set(user_id, str(value))
        return OperationResult.ok()

    async def clear_budget(self) -> OperationResult:
        return await self.set_budget(Decimal("0"))

    # -------------------------------------------------------------------------
    # Comparisons
    # -------------------------------------------------------------------------

    def remaining_budget(self, total: Decimal) -> Decimal:
        """Budget minus spending. Negative when overspent."""
        return self.monthly_budget - total

    def is_over_budget(self, total: Decimal) -> bool:
        """Only a set budget can be exceeded."""
        return total > self.monthly_budget and self.monthly_budget > 0

    def status(self, total: Decimal) -> BudgetStatus:
        return BudgetStatus(
            budget=self.monthly_budget,
            spent=total,
            remaining=self.remaining_budget(total),
            is_set=self._budget.is_set,
            is_over_budget=self.is_over_budget(total),
        )
