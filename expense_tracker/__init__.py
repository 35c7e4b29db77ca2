"""
Expense Tracker - Core Package

The aggregation, filtering and categorization-consistency engine of a
personal expense tracker backed by a real-time document store.

DESIGN PRINCIPLES:
1. The remote store is the single source of truth
2. Local state changes only when the store says so
3. Every failure reaches the caller
4. Denormalized data is reconciled explicitly
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
