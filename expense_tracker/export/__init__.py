"""
Export Package

CSV and JSON serialization of expenses.
"""

from expense_tracker.export.engine import (
    ExportEngine,
    ExportFormat,
    ExportPayload,
    ExportRecord,
    to_csv,
    to_structured_records,
)

__all__ = [
    "ExportEngine",
    "ExportFormat",
    "ExportPayload",
    "ExportRecord",
    "to_csv",
    "to_structured_records",
]
