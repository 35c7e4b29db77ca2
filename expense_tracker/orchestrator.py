"""
Main Orchestrator for the Expense Tracker

This module ties together all the components for one signed-in user:
1. Session (who is signed in)
2. Live stores (expenses, categories, budget)
3. Consistency (rename propagation, usage guard)
4. Views (filtering, budget status, export)

DESIGN DECISION: The orchestrator owns the lifecycle.
- Signing in starts every live subscription for that user
- Signing out cancels them and clears every mirror
- Components never start or stop each other

Views are computed on demand from the current snapshots, so they always
reflect the last notification received from the store.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.config import Settings, get_settings
from expense_tracker.consistency import ConsistencyCoordinator
from expense_tracker.export import ExportEngine, ExportFormat, ExportPayload
from expense_tracker.filtering import FilterEngine
from expense_tracker.models.expense import BudgetStatus, Category, Expense
from expense_tracker.models.filters import FilterResult, FilterState
from expense_tracker.models.results import PropagationReport
from expense_tracker.services.storage import (
    DocumentStoreInterface,
    FirestoreClient,
    FirestoreDocumentStore,
    MemoryDocumentStore,
    StorageConnectionError,
)
from expense_tracker.session import UserSession
from expense_tracker.stores import BudgetTracker, CategoryRegistry, ExpenseLedger


logger = structlog.get_logger(__name__)


class ExpenseTracker:
    """
    Entry point used by the presentation layer.

    Flow:
    1. sign_in(user_id) -> all three stores start listening
    2. Mutations through ledger / categories / budget
    3. Views through filtered(), budget_status(), export()
    4. sign_out() -> subscriptions cancelled, mirrors cleared
    """

    def __init__(
        self,
        storage: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        session: Optional[UserSession] = None,
        clock: Callable[[], datetime] = datetime.now,
        settings: Optional[Settings] = None,
    ):
        app_settings = (settings or get_settings()).app
        self.storage = storage
        self.session = session or UserSession()
        self.audit_logger = audit_logger or AuditLogger()

        self.coordinator = ConsistencyCoordinator(storage, self.session, app_settings)
        self.ledger = ExpenseLedger(
            storage,
            self.session,
            self.audit_logger,
            clock=clock,
            settings=app_settings,
        )
        self.categories = CategoryRegistry(
            storage,
            self.session,
            self.coordinator,
            self.audit_logger,
            clock=clock,
        )
        self.budget = BudgetTracker(storage, self.session, self.audit_logger, clock=clock)
        self.filter_engine = FilterEngine(clock=clock)
        self.exporter = ExportEngine(app_settings)

    @property
    def stores(self) -> tuple[ExpenseLedger, CategoryRegistry, BudgetTracker]:
        return self.ledger, self.categories, self.budget

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def sign_in(self, user_id: str) -> None:
        """
        Sign a user in and start mirroring their data.

        Signing in as another user first drops the previous user's mirrors.
        Must be called from a running event loop.
        """
        if self.session.is_signed_in:
            self.sign_out()
        self.session.sign_in(user_id)
        for store in self.stores:
            store.start_listening()
        logger.info("tracker_started", user_id=self.session.user_id)

    def sign_out(self) -> None:
        for store in self.stores:
            store.clear()
        self.session.sign_out()
        logger.info("tracker_stopped")

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def filtered(self, state: FilterState) -> FilterResult:
        return self.filter_engine.apply(self.ledger.snapshot(), state)

    def budget_status(self) -> BudgetStatus:
        """This month's spending against the budget."""
        return self.budget.status(self.ledger.monthly_total())

    def export(
        self,
        fmt: ExportFormat,
        state: Optional[FilterState] = None,
    ) -> ExportPayload:
        """Export every expense, or only those matching `state`."""
        expenses: tuple[Expense, ...] = (
            self.filtered(state).expenses if state is not None else self.ledger.snapshot()
        )
        return self.exporter.export(expenses, fmt)

    async def reconcile(self) -> list[PropagationReport]:
        """Repair expenses still carrying an outdated category name."""
        categories: tuple[Category, ...] = self.categories.snapshot()
        return await self.coordinator.reconcile(self.ledger.snapshot(), categories)


def create_storage(settings: Optional[Settings] = None) -> DocumentStoreInterface:
    """
    Build the configured document store.

    Falls back to the in-memory store when Firestore is selected but
    cannot be reached, so the app still starts (without persistence).
    """
    settings = settings or get_settings()
    if settings.app.storage_backend != "firestore":
        return MemoryDocumentStore()

    try:
        client = FirestoreClient(settings.firestore)
        client.connect()
        return FirestoreDocumentStore(client)
    except (StorageConnectionError, ValueError) as e:
        # Firestore not configured - continue without it
        logger.error("storage_not_configured", error=str(e))
        return MemoryDocumentStore()


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[DocumentStoreInterface] = None,
) -> ExpenseTracker:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use instead of the cached ones.
        storage: Document store to use instead of the configured one.
    """
    settings = settings or get_settings()
    storage = storage or create_storage(settings)

    audit_storage = storage if settings.app.persist_audit_events else None
    audit_logger = AuditLogger(audit_storage)

    return ExpenseTracker(storage, audit_logger=audit_logger, settings=settings)
