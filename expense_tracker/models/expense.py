"""
Core Data Models for Expense Tracker

These models define the strict schemas for the records mirrored from the
document store and for the views derived from them.

DESIGN DECISION: Expenses carry a denormalized copy of their category's name.
Reading a list of expenses never needs a category lookup, at the price of
explicit propagation when a category is renamed.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# Fixed color keys for well-known category names. Anything else gets the
# configured default.
CATEGORY_COLORS: dict[str, str] = {
    "Rent": "DDA0DD",
    "Food": "FFEAA7",
    "Transport": "45B7D1",
    "Shopping": "96CEB4",
    "Entertainment": "FF6B6B",
    "Medical": "4ECDC4",
    "Other": "98D8C8",
    "Uncategorized": "FF6B6B",
    # Names used by the first releases of the mobile client
    "飲食": "FFEAA7",
    "交通": "45B7D1",
    "購物": "96CEB4",
    "娛樂": "FF6B6B",
    "醫療": "4ECDC4",
    "其他": "98D8C8",
    "未分類": "FF6B6B",
}

DEFAULT_SUMMARY_COLOR = "85C1E9"


def color_for(category_name: str, default: str = DEFAULT_SUMMARY_COLOR) -> str:
    """Deterministic color key for a category name."""
    return CATEGORY_COLORS.get(category_name, default)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# PERSISTED RECORDS
# =============================================================================

class Expense(BaseModel):
    """
    A single spending entry.

    Immutable once created; only `category_name` is ever rewritten, and only
    by rename propagation in the store.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Opaque unique identifier"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount spent"
    )
    category_id: str = Field(
        ...,
        min_length=1,
        description="Id of the referenced category"
    )
    category_name: str = Field(
        ...,
        description="Category name copied at write time"
    )
    date: datetime = Field(
        ...,
        description="When the money was spent (local time)"
    )
    note: Optional[str] = Field(
        default=None,
        description="Optional free-text annotation"
    )

    def to_record(self) -> dict[str, Any]:
        """Document fields as stored under users/{uid}/expenses/{id}."""
        record: dict[str, Any] = {
            "id": self.id,
            "amount": self.amount,
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "date": self.date,
        }
        if self.note is not None:
            record["note"] = self.note
        return record


class Category(BaseModel):
    """A named spending category owned by one user."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id, min_length=1)
    name: str = Field(..., description="Display name")
    created_at: datetime = Field(default_factory=datetime.now)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
        }


class Budget(BaseModel):
    """
    The user's monthly budget.

    An amount of 0 means no budget has been set.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(default=Decimal("0"), ge=0)
    updated_at: Optional[datetime] = None

    @property
    def is_set(self) -> bool:
        return self.amount > 0

    def to_record(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "updatedAt": self.updated_at or datetime.now(),
        }


# =============================================================================
# DERIVED VIEWS (never persisted)
# =============================================================================

class CategorySummary(BaseModel):
    """Total spent under one category name within a period."""
    model_config = ConfigDict(frozen=True)

    category_name: str
    total: Decimal
    color_key: str

    @classmethod
    def build(
        cls,
        category_name: str,
        total: Decimal,
        default_color: str = DEFAULT_SUMMARY_COLOR,
    ) -> "CategorySummary":
        return cls(
            category_name=category_name,
            total=total,
            color_key=color_for(category_name, default_color),
        )


class BudgetStatus(BaseModel):
    """Budget-vs-actual comparison for one period."""
    model_config = ConfigDict(frozen=True)

    budget: Decimal
    spent: Decimal
    remaining: Decimal = Field(
        ...,
        description="budget - spent, negative when overspent"
    )
    is_set: bool
    is_over_budget: bool
