"""Shared fixtures for the expense tracker tests."""

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.config import AppSettings
from expense_tracker.consistency import ConsistencyCoordinator
from expense_tracker.session import UserSession
from expense_tracker.stores import BudgetTracker, CategoryRegistry, ExpenseLedger

from support import NOW, USER_ID, FlakyDocumentStore


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def store() -> FlakyDocumentStore:
    return FlakyDocumentStore()


@pytest.fixture
def session() -> UserSession:
    return UserSession(USER_ID)


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger()


@pytest.fixture
def coordinator(store, session, app_settings) -> ConsistencyCoordinator:
    return ConsistencyCoordinator(store, session, app_settings)


@pytest.fixture
def ledger(store, session, audit_logger, app_settings) -> ExpenseLedger:
    return ExpenseLedger(
        store,
        session,
        audit_logger,
        clock=lambda: NOW,
        settings=app_settings,
    )


@pytest.fixture
def registry(store, session, coordinator, audit_logger) -> CategoryRegistry:
    return CategoryRegistry(store, session, coordinator, audit_logger, clock=lambda: NOW)


@pytest.fixture
def budget(store, session, audit_logger) -> BudgetTracker:
    return BudgetTracker(store, session, audit_logger, clock=lambda: NOW)
