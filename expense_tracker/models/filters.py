"""
Filter Models

A FilterState is what the user picked on screen: a date preset and a set of
categories. The concrete date range is resolved against "now" every time
it is needed and never stored.
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from expense_tracker.models.expense import Expense


class FilterPreset(str, Enum):
    """Date range presets offered to the user."""
    ALL = "all"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    CUSTOM = "custom"


END_OF_DAY = time(23, 59, 59)


def start_of_month(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, 1)


def shift_month(month_start: datetime, months: int) -> datetime:
    """First day of the month `months` away from `month_start`."""
    index = month_start.year * 12 + (month_start.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1)


class DateRange(BaseModel):
    """
    A resolved date interval.

    Preset ranges are half-open (end excluded). Custom ranges are closed and
    run through 23:59:59 of their last day.
    """
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    end_inclusive: bool

    def contains(self, moment: datetime) -> bool:
        if moment < self.start:
            return False
        if self.end_inclusive:
            return moment <= self.end
        return moment < self.end


class FilterState(BaseModel):
    """The user's current filter selection."""
    model_config = ConfigDict(frozen=True)

    preset: FilterPreset = FilterPreset.ALL
    start_date: Optional[date] = Field(
        default=None,
        description="First day of a custom range"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="Last day of a custom range (inclusive)"
    )
    selected_category_ids: frozenset[str] = Field(
        default_factory=frozenset,
        description="Categories to keep. Empty means every category."
    )

    @model_validator(mode='after')
    def validate_custom_range(self) -> 'FilterState':
        if self.preset == FilterPreset.CUSTOM:
            if self.start_date is None or self.end_date is None:
                raise ValueError("Custom range needs both a start and an end date")
        return self

    def effective_date_range(self, now: datetime) -> Optional[DateRange]:
        """Resolve the preset against `now`. None means no date restriction."""
        if self.preset == FilterPreset.ALL:
            return None

        this_month = start_of_month(now)
        if self.preset == FilterPreset.THIS_MONTH:
            return DateRange(
                start=this_month,
                end=shift_month(this_month, 1),
                end_inclusive=False,
            )
        if self.preset == FilterPreset.LAST_MONTH:
            return DateRange(
                start=shift_month(this_month, -1),
                end=this_month,
                end_inclusive=False,
            )

        return DateRange(
            start=datetime.combine(self.start_date, time.min),
            end=datetime.combine(self.end_date, END_OF_DAY),
            end_inclusive=True,
        )

    # model_copy() skips validators, so changed states are rebuilt
    def with_preset(self, preset: FilterPreset) -> 'FilterState':
        return FilterState.model_validate({**self.model_dump(), "preset": preset})

    def with_categories(self, category_ids: set[str]) -> 'FilterState':
        return FilterState.model_validate(
            {**self.model_dump(), "selected_category_ids": frozenset(category_ids)}
        )


class FilterResult(BaseModel):
    """The displayed subset and its own total."""
    model_config = ConfigDict(frozen=True)

    expenses: tuple[Expense, ...] = ()
    total: Decimal = Decimal("0")

    @property
    def count(self) -> int:
        return len(self.expenses)
