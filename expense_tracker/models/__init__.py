"""
Data Models Package

This package contains all Pydantic models used by the expense tracker core.
All data flowing through the system must conform to these schemas.
"""

from expense_tracker.models.expense import (
    CATEGORY_COLORS,
    Budget,
    BudgetStatus,
    Category,
    CategorySummary,
    Expense,
    color_for,
)
from expense_tracker.models.filters import (
    DateRange,
    FilterPreset,
    FilterResult,
    FilterState,
)
from expense_tracker.models.results import (
    OperationResult,
    PropagationReport,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records and derived views
    "CATEGORY_COLORS",
    "Budget",
    "BudgetStatus",
    "Category",
    "CategorySummary",
    "Expense",
    "color_for",
    # Filters
    "DateRange",
    "FilterPreset",
    "FilterResult",
    "FilterState",
    # Results
    "OperationResult",
    "PropagationReport",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
