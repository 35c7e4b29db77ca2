"""
Live Store Base

Each store mirrors one remote collection or document for the signed-in user.

DESIGN DECISION: The remote store is the only source of truth.
- Mutations go to the store and never touch the local mirror
- The mirror changes only when a snapshot arrives
- Consumers read immutable snapshots and subscribe to changes

Subscription lifecycle:
- start_listening() cancels any previous subscription before opening a new one
- stop_listening() is immediate; snapshots already queued are not applied
- Each consumer task carries a generation number and stops applying
  snapshots as soon as it is no longer the current generation
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Generic, Optional, TypeVar

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.errors import NotFoundError, PersistenceError, TrackerError
from expense_tracker.models.results import OperationResult
from expense_tracker.services.storage import (
    DocumentNotFoundError,
    DocumentStoreInterface,
    StorageError,
    StreamError,
    Subscription,
)
from expense_tracker.services.storage.interface import StreamItem
from expense_tracker.session import UserSession


T = TypeVar("T")
SnapshotT = TypeVar("SnapshotT")

logger = structlog.get_logger(__name__)


class Observable(Generic[T]):
    """Minimal publish/subscribe channel."""

    def __init__(self, name: str):
        self._name = name
        self._observers: list[Callable[[T], None]] = []

    def subscribe(self, observer: Callable[[T], None]) -> Callable[[], None]:
        """Register an observer. Returns a function that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def publish(self, value: T) -> None:
        for observer in list(self._observers):
            try:
                observer(value)
            except Exception:
                # One broken observer must not starve the others
                logger.exception("observer_failed", channel=self._name)


def storage_failure(error: StorageError) -> TrackerError:
    """Translate a storage exception into the domain taxonomy."""
    if isinstance(error, DocumentNotFoundError):
        return NotFoundError(str(error))
    return PersistenceError(str(error))


class LiveStore(ABC, Generic[SnapshotT]):
    """Base class for the expense, category and budget mirrors."""

    entity_type: str = "entity"

    def __init__(
        self,
        storage: DocumentStoreInterface,
        session: UserSession,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._session = session
        self._audit = audit_logger or AuditLogger()
        self._subscription: Optional[Subscription] = None
        self._consumer: Optional[asyncio.Task] = None
        self._generation = 0
        self._listening_user: Optional[str] = None
        self._logger = structlog.get_logger(__name__).bind(store=self.entity_type)

        self.updates: Observable[SnapshotT] = Observable(f"{self.entity_type}.updates")
        self.errors: Observable[str] = Observable(f"{self.entity_type}.errors")
        self.last_error: Optional[str] = None

    # -------------------------------------------------------------------------
    # Subscription lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_listening(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start_listening(self) -> None:
        """
        Mirror the signed-in user's data.

        Must be called from a running event loop.

        Raises:
            NotAuthenticatedError: If nobody is signed in
        """
        user_id = self._session.require_user_id()
        self.stop_listening()
        self._reset()
        self.last_error = None

        self._generation += 1
        generation = self._generation
        subscription = self._storage.subscribe(self._subscription_path(user_id))
        self._subscription = subscription
        self._listening_user = user_id
        self._consumer = asyncio.get_running_loop().create_task(
            self._consume(subscription, generation)
        )
        self._logger.info("listening_started", user_id=user_id, path=subscription.path)

    def stop_listening(self) -> None:
        """Cancel the live subscription, if any."""
        self._generation += 1
        if self._subscription is not None:
            self._subscription.cancel()
            self._logger.info("listening_stopped", path=self._subscription.path)
            self._subscription = None
        if self._consumer is not None:
            if not self._consumer.done():
                self._consumer.cancel()
            self._consumer = None
        self._listening_user = None

    def clear(self) -> None:
        """Stop listening and drop the mirrored data (used on sign-out)."""
        self.stop_listening()
        self._reset()
        self.updates.publish(self.snapshot())

    async def _consume(self, subscription: Subscription, generation: int) -> None:
        async for item in subscription:
            if generation != self._generation:
                break
            if isinstance(item, StreamError):
                await self._handle_stream_error(item)
                continue
            self._apply(item)
            self.updates.publish(self.snapshot())
            await self._after_apply()

    async def _handle_stream_error(self, error: StreamError) -> None:
        self.last_error = error.message
        self._logger.error("stream_error", path=error.path, error=error.message)
        self.errors.publish(error.message)
        await self._audit.log_subscription_error(
            self._listening_user, error.path, error.message
        )

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def _subscription_path(self, user_id: str) -> str:
        pass

    @abstractmethod
    def _reset(self) -> None:
        """Drop all mirrored state."""
        pass

    @abstractmethod
    def _apply(self, item: StreamItem) -> None:
        """Replace the mirror with the contents of a snapshot."""
        pass

    async def _after_apply(self) -> None:
        """Async follow-up after a snapshot was applied (auditing etc.)."""
        return None

    @abstractmethod
    def snapshot(self) -> SnapshotT:
        """Immutable copy of the mirrored state."""
        pass

    # -------------------------------------------------------------------------
    # Mutation helpers
    # -------------------------------------------------------------------------

    async def _failed(
        self,
        operation: str,
        error: TrackerError,
        entity_id: Optional[str] = None,
    ) -> OperationResult:
        """Build, log and audit a failed result."""
        result = OperationResult.fail(error, entity_id=entity_id)
        self._logger.warning(
            "operation_failed",
            operation=operation,
            error_kind=result.error_kind.value if result.error_kind else None,
            error=result.error_message,
            entity_id=entity_id,
        )
        await self._audit.log_operation_failed(
            self._session.user_id, operation, result, entity_type=self.entity_type
        )
        return result
