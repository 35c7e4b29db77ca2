"""
Filtering Package

Date preset and category filtering over mirrored expenses.
"""

from expense_tracker.filtering.engine import FilterEngine, apply_filter

__all__ = ["FilterEngine", "apply_filter"]
