"""
Export Engine

Serializes expenses for sharing outside the app. Output is always bytes
plus a suggested filename; writing or sending it is the caller's job.

Both formats list expenses oldest first.
"""

import csv
import io
from enum import Enum
from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.models.expense import Expense


logger = structlog.get_logger(__name__)

CSV_HEADER = ("date", "category", "amount", "note")


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


class ExportRecord(BaseModel):
    """One expense in the JSON export."""
    model_config = ConfigDict(frozen=True)

    id: str
    date: str = Field(..., description="ISO-8601 timestamp with UTC offset")
    category: str
    amount: float
    note: str = ""

    @classmethod
    def from_expense(cls, expense: Expense) -> "ExportRecord":
        return cls(
            id=expense.id,
            date=expense.date.astimezone().isoformat(),
            category=expense.category_name,
            amount=float(expense.amount),
            note=expense.note or "",
        )


_RECORDS = TypeAdapter(list[ExportRecord])


class ExportPayload(BaseModel):
    """Serialized export ready to hand to a share sheet or download."""
    model_config = ConfigDict(frozen=True)

    filename: str
    media_type: str
    content: bytes


def _chronological(expenses: Iterable[Expense]) -> list[Expense]:
    return sorted(expenses, key=lambda expense: expense.date)


def format_amount(expense: Expense) -> str:
    """Plain decimal notation without trailing zeros (12.50 -> 12.5)."""
    return format(expense.amount.normalize(), "f")


def to_csv(expenses: Iterable[Expense]) -> bytes:
    """
    CSV with header date,category,amount,note.

    Fields containing a comma, quote or newline are quoted with doubled
    inner quotes. A missing note is an empty field.
    """
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for expense in _chronological(expenses):
        writer.writerow([
            expense.date.strftime("%Y-%m-%d"),
            expense.category_name,
            format_amount(expense),
            expense.note or "",
        ])
    return output.getvalue().encode("utf-8")


def to_structured_records(expenses: Iterable[Expense]) -> bytes:
    """JSON array of {id, date, category, amount, note}."""
    records = [ExportRecord.from_expense(expense) for expense in _chronological(expenses)]
    return _RECORDS.dump_json(records, indent=2)


class ExportEngine:
    """Builds export payloads with the configured filenames."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def to_csv(self, expenses: Iterable[Expense]) -> bytes:
        return to_csv(expenses)

    def to_structured_records(self, expenses: Iterable[Expense]) -> bytes:
        return to_structured_records(expenses)

    def export(self, expenses: Iterable[Expense], fmt: ExportFormat) -> ExportPayload:
        expenses = list(expenses)
        if fmt == ExportFormat.CSV:
            payload = ExportPayload(
                filename=self._settings.csv_export_filename,
                media_type="text/csv",
                content=to_csv(expenses),
            )
        else:
            payload = ExportPayload(
                filename=self._settings.json_export_filename,
                media_type="application/json",
                content=to_structured_records(expenses),
            )
        logger.info(
            "export_created",
            format=fmt.value,
            expenses=len(expenses),
            size=len(payload.content),
        )
        return payload
