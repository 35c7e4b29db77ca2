"""
Filter Engine

Narrows a list of expenses by date preset and category selection and totals
what is left. Pure: the only input besides its arguments is the clock.

DESIGN DECISION: Preset ranges are half-open ([first of month, first of next
month)), custom ranges are closed and run through 23:59:59 of the last day.
An expense stamped at 23:59:59.5 on a custom end date is therefore excluded.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

import structlog

from expense_tracker.models.expense import Expense
from expense_tracker.models.filters import FilterResult, FilterState


logger = structlog.get_logger(__name__)


class FilterEngine:
    """Applies a FilterState to expenses."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    def apply(self, expenses: Iterable[Expense], state: FilterState) -> FilterResult:
        """
        Filter, sort and total.

        Output is newest first; expenses with equal dates keep their input
        order. A custom range whose end precedes its start matches nothing.
        """
        date_range = state.effective_date_range(self._clock())
        selected = state.selected_category_ids

        kept = [
            expense
            for expense in expenses
            if (date_range is None or date_range.contains(expense.date))
            and (not selected or expense.category_id in selected)
        ]
        kept.sort(key=lambda expense: expense.date, reverse=True)

        total = sum((expense.amount for expense in kept), Decimal("0"))
        logger.debug(
            "filter_applied",
            preset=state.preset.value,
            categories=len(selected),
            matched=len(kept),
        )
        return FilterResult(expenses=tuple(kept), total=total)


def apply_filter(
    expenses: Iterable[Expense],
    state: FilterState,
    now: Optional[datetime] = None,
) -> FilterResult:
    """One-off filter against a fixed `now` (defaults to the current time)."""
    moment = now or datetime.now()
    return FilterEngine(clock=lambda: moment).apply(expenses, state)
