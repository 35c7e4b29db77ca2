"""
Audit Logger

DESIGN DECISION: Every user action on expenses, categories and the budget
is logged. This provides:
1. A history of what changed and when
2. Debugging capability for sync problems
3. A visible record of partial rename propagations

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Optionally persists events next to the user's data
"""

from collections import deque
from typing import Callable, Optional

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder
from expense_tracker.models.results import OperationResult, PropagationReport
from expense_tracker.services.storage import DocumentStoreInterface
from expense_tracker.services.storage.paths import audit_path


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The document store under users/{uid}/audit (when enabled)
    """

    def __init__(
        self,
        storage: Optional[DocumentStoreInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()
        self.recent_events: deque[AuditEvent] = deque(maxlen=1000)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available and the
        event belongs to a user.

        Returns True if storage write succeeded (or no storage configured).
        """
        self.recent_events.append(event)

        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage and event.user_id:
            try:
                await self._storage.write(
                    audit_path(event.user_id, str(event.event_id)),
                    event.to_record(),
                )
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def _emit(self, build: Callable[..., AuditEvent], *args, **kwargs) -> bool:
        """Build an event and log it. A builder failure is logged, never raised."""
        try:
            event = build(*args, **kwargs)
        except Exception as e:
            self._logger.error(
                "audit_event_invalid",
                builder=getattr(build, "__name__", repr(build)),
                error=str(e),
            )
            return False
        return await self.log(event)

    async def log_expense_added(
        self,
        user_id: str,
        expense_id: str,
        amount: str,
        category_name: str,
    ) -> None:
        await self._emit(
            AuditEventBuilder.expense_added,
            user_id=user_id,
            expense_id=expense_id,
            amount=amount,
            category_name=category_name,
        )

    async def log_expense_deleted(self, user_id: str, expense_id: str) -> None:
        await self._emit(AuditEventBuilder.expense_deleted, user_id, expense_id)

    async def log_category_added(self, user_id: str, category_id: str, name: str) -> None:
        await self._emit(AuditEventBuilder.category_added, user_id, category_id, name)

    async def log_category_renamed(
        self,
        user_id: str,
        category_id: str,
        old_name: Optional[str],
        new_name: str,
    ) -> None:
        await self._emit(
            AuditEventBuilder.category_renamed,
            user_id=user_id,
            category_id=category_id,
            old_name=old_name,
            new_name=new_name,
        )

    async def log_category_deleted(self, user_id: str, category_id: str) -> None:
        await self._emit(AuditEventBuilder.category_deleted, user_id, category_id)

    async def log_category_delete_blocked(self, user_id: str, category_id: str) -> None:
        await self._emit(AuditEventBuilder.category_delete_blocked, user_id, category_id)

    async def log_propagation(self, user_id: str, report: PropagationReport) -> None:
        """Log the outcome of a rename propagation, success or not."""
        if report.succeeded:
            await self._emit(
                AuditEventBuilder.rename_propagated,
                user_id=user_id,
                category_id=report.category_id,
                new_name=report.new_name,
                updated=len(report.updated_ids),
            )
        else:
            await self._emit(
                AuditEventBuilder.rename_propagation_failed,
                user_id=user_id,
                category_id=report.category_id,
                new_name=report.new_name,
                updated_ids=report.updated_ids,
                failures=report.failures,
                query_error=report.query_error,
            )

    async def log_budget_set(self, user_id: str, amount: str) -> None:
        await self._emit(AuditEventBuilder.budget_set, user_id, amount)

    async def log_subscription_error(
        self,
        user_id: Optional[str],
        path: str,
        error_message: str,
    ) -> None:
        await self._emit(AuditEventBuilder.subscription_error, user_id, path, error_message)

    async def log_decode_failed(
        self,
        user_id: Optional[str],
        document_id: str,
        reason: str,
    ) -> None:
        await self._emit(AuditEventBuilder.record_decode_failed, user_id, document_id, reason)

    async def log_operation_failed(
        self,
        user_id: Optional[str],
        operation: str,
        result: OperationResult,
        entity_type: Optional[str] = None,
    ) -> None:
        """Log a failed OperationResult."""
        await self._emit(
            AuditEventBuilder.operation_failed,
            user_id=user_id,
            operation=operation,
            error_kind=result.error_kind.value if result.error_kind else "persistence",
            error_message=result.error_message or "",
            entity_type=entity_type,
            entity_id=result.entity_id,
        )
