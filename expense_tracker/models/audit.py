"""
Audit Models for Expense Tracker

Every user action against the ledger, the category list or the budget is
recorded. This provides:
1. A history the user can look back at
2. Debugging information when a sync goes wrong
3. A record of partial rename propagations that need a manual retry

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Expenses
    EXPENSE_ADDED = "expense_added"
    EXPENSE_DELETED = "expense_deleted"

    # Categories
    CATEGORY_ADDED = "category_added"
    CATEGORY_RENAMED = "category_renamed"
    CATEGORY_DELETED = "category_deleted"
    CATEGORY_DELETE_BLOCKED = "category_delete_blocked"
    RENAME_PROPAGATED = "rename_propagated"
    RENAME_PROPAGATION_FAILED = "rename_propagation_failed"

    # Budget
    BUDGET_SET = "budget_set"

    # Sync
    SUBSCRIPTION_ERROR = "subscription_error"
    RECORD_DECODE_FAILED = "record_decode_failed"

    # Failures
    OPERATION_FAILED = "operation_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    user_id: Optional[str] = Field(
        default=None,
        description="Signed-in user the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'category', 'budget')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    description: str = Field(
        ...,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_record(self) -> dict:
        """Document fields as stored under users/{uid}/audit/{event_id}."""
        return {
            "eventId": str(self.event_id),
            "timestamp": self.timestamp,
            "eventType": self.event_type.value,
            "severity": self.severity.value,
            "entityType": self.entity_type or "",
            "entityId": self.entity_id or "",
            "description": self.description,
            "details": self.details,
            "errorKind": self.error_kind or "",
            "errorMessage": self.error_message or "",
            "isUserAction": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(user_id, expense_id, amount, category)
        event = AuditEventBuilder.category_delete_blocked(user_id, category_id)
    """

    @staticmethod
    def expense_added(
        user_id: str,
        expense_id: str,
        amount: str,
        category_name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            user_id=user_id,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense added: {amount} in {category_name}",
            details={
                "amount": amount,
                "category_name": category_name,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(user_id: str, expense_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            user_id=user_id,
            entity_type="expense",
            entity_id=expense_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def category_added(user_id: str, category_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_ADDED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category added: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def category_renamed(
        user_id: str,
        category_id: str,
        old_name: Optional[str],
        new_name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_RENAMED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category renamed to {new_name}",
            details={
                "old_name": old_name,
                "new_name": new_name,
            },
            is_user_action=True,
        )

    @staticmethod
    def category_deleted(user_id: str, category_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description="Category deleted",
            is_user_action=True,
        )

    @staticmethod
    def category_delete_blocked(user_id: str, category_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETE_BLOCKED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description="Category is still used by expenses and was not deleted",
            error_kind="category_in_use",
            is_user_action=True,
        )

    @staticmethod
    def rename_propagated(
        user_id: str,
        category_id: str,
        new_name: str,
        updated: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RENAME_PROPAGATED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category name '{new_name}' copied to {updated} expenses",
            details={
                "new_name": new_name,
                "updated": updated,
            },
        )

    @staticmethod
    def rename_propagation_failed(
        user_id: str,
        category_id: str,
        new_name: str,
        updated_ids: list[str],
        failures: dict[str, str],
        query_error: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RENAME_PROPAGATION_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description=(
                f"Category name '{new_name}' reached {len(updated_ids)} expenses, "
                f"{len(failures)} failed"
            ),
            details={
                "new_name": new_name,
                "updated_ids": updated_ids,
                "failures": failures,
            },
            error_kind="persistence",
            error_message=query_error,
        )

    @staticmethod
    def budget_set(user_id: str, amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SET,
            user_id=user_id,
            entity_type="budget",
            description=f"Monthly budget set to {amount}" if amount != "0" else "Monthly budget cleared",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def subscription_error(
        user_id: Optional[str],
        path: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"Live updates failed for {path}",
            details={"path": path},
            error_kind="persistence",
            error_message=error_message,
        )

    @staticmethod
    def record_decode_failed(
        user_id: Optional[str],
        document_id: str,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DECODE_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="expense",
            entity_id=document_id,
            description="Stored expense could not be read",
            error_message=reason,
        )

    @staticmethod
    def operation_failed(
        user_id: Optional[str],
        operation: str,
        error_kind: str,
        error_message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_FAILED,
            severity=AuditSeverity.WARNING if error_kind == "validation" else AuditSeverity.ERROR,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{operation} failed",
            details={"operation": operation},
            error_kind=error_kind,
            error_message=error_message,
            is_user_action=True,
        )
