"""
Operation Result Models

Every mutating operation completes with one of these instead of raising,
so failures reach the caller through the same channel as success.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from expense_tracker.errors import (
    ERROR_CLASSES,
    CategoryInUseError,
    ErrorKind,
    TrackerError,
)


class OperationResult(BaseModel):
    """Outcome of one user action against the document store."""

    success: bool
    entity_id: Optional[str] = Field(
        default=None,
        description="Id of the record the operation touched"
    )
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    completed_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def ok(cls, entity_id: Optional[str] = None) -> "OperationResult":
        return cls(success=True, entity_id=entity_id)

    @classmethod
    def fail(
        cls,
        error: TrackerError,
        entity_id: Optional[str] = None,
    ) -> "OperationResult":
        return cls(
            success=False,
            entity_id=entity_id,
            error_kind=error.kind,
            error_message=str(error),
        )

    def raise_for_error(self) -> None:
        """Re-raise the failure as the matching TrackerError subclass."""
        if self.success:
            return
        kind = self.error_kind or ErrorKind.PERSISTENCE
        if kind == ErrorKind.CATEGORY_IN_USE:
            raise CategoryInUseError(self.entity_id or "", self.error_message)
        raise ERROR_CLASSES[kind](self.error_message or kind.value)


class PropagationReport(BaseModel):
    """
    Outcome of pushing a category's new name into its expenses.

    Updates are not transactional: ids in `updated_ids` keep the new name
    even when other ids ended up in `failures`.
    """

    category_id: str
    new_name: str
    matched: int = Field(default=0, ge=0)
    updated_ids: list[str] = Field(default_factory=list)
    failures: dict[str, str] = Field(
        default_factory=dict,
        description="expense id -> error message"
    )
    query_error: Optional[str] = Field(
        default=None,
        description="Set when the referencing expenses could not be looked up"
    )

    @property
    def succeeded(self) -> bool:
        return self.query_error is None and not self.failures

    @property
    def is_partial(self) -> bool:
        return bool(self.updated_ids) and bool(self.failures)

    def summary(self) -> str:
        if self.query_error:
            return f"Could not look up expenses for category {self.category_id}: {self.query_error}"
        if self.failures:
            return (
                f"Renamed {len(self.updated_ids)} of {self.matched} expenses to "
                f"'{self.new_name}'; {len(self.failures)} failed"
            )
        return f"Renamed {len(self.updated_ids)} expenses to '{self.new_name}'"
