"""
Live Stores Package

Mirrors of the signed-in user's expenses, categories and budget.
"""

from expense_tracker.stores.base import LiveStore, Observable
from expense_tracker.stores.budget import BudgetTracker
from expense_tracker.stores.categories import CategoryRegistry
from expense_tracker.stores.expenses import ExpenseLedger

__all__ = [
    "BudgetTracker",
    "CategoryRegistry",
    "ExpenseLedger",
    "LiveStore",
    "Observable",
]
