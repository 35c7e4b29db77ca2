"""
Stored Record Decoding

Expense documents have been written under several schema versions:

    v3  {categoryId, categoryName, ...}      current
    v2  {category: "Rent", ...}              bare category string
    v1  {categoryName: "Rent", ...}          name only
    --  no category at all

DESIGN DECISION: Decoding returns a tagged result instead of silently
filling gaps. Callers can tell a clean record from a migrated one, and
records that cannot be read are reported rather than dropped.

The same chain is used everywhere expenses are read: the live mirror, the
usage guard and rename propagation.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from expense_tracker.models.expense import Budget, Category, Expense


UNCATEGORIZED_ID = "uncategorized"
UNCATEGORIZED_NAME = "Uncategorized"


class LegacySource(str, Enum):
    """Which fallback produced the category of a migrated record."""
    CATEGORY_FIELD = "category"
    CATEGORY_NAME_ONLY = "category_name_only"
    CATEGORY_ID_ONLY = "category_id_only"
    UNCATEGORIZED = "uncategorized"


class Decoded(BaseModel):
    """Record in the current schema."""
    model_config = ConfigDict(frozen=True)

    expense: Expense


class LegacyDecoded(BaseModel):
    """Record written by an older schema, migrated on read."""
    model_config = ConfigDict(frozen=True)

    expense: Expense
    source: LegacySource


class Unparseable(BaseModel):
    """Record that cannot be turned into an Expense."""
    model_config = ConfigDict(frozen=True)

    document_id: str
    reason: str


DecodeResult = Union[Decoded, LegacyDecoded, Unparseable]


class DecodeError(ValueError):
    """A single field could not be converted."""
    pass


def to_local_datetime(value: Any) -> datetime:
    """Convert a stored timestamp to a naive local datetime."""
    if isinstance(value, datetime):
        return value.astimezone().replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return to_local_datetime(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            raise DecodeError(f"Invalid date: {value!r}")
    raise DecodeError(f"Unsupported date value: {value!r}")


def to_amount(value: Any) -> Decimal:
    """Convert a stored amount to Decimal."""
    if isinstance(value, bool):
        raise DecodeError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise DecodeError(f"Invalid amount: {value!r}")
        if not amount.is_finite():
            raise DecodeError(f"Invalid amount: {value!r}")
        return amount
    raise DecodeError(f"Unsupported amount value: {value!r}")


def _text(data: dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_category(
    data: dict[str, Any],
    uncategorized_id: str = UNCATEGORIZED_ID,
    uncategorized_name: str = UNCATEGORIZED_NAME,
) -> tuple[str, str, Optional[LegacySource]]:
    """
    Resolve (category_id, category_name, legacy_source) for a stored expense.

    legacy_source is None for records in the current schema.
    """
    category_id = _text(data, "categoryId")
    category_name = _text(data, "categoryName")

    if category_id and category_name:
        return category_id, category_name, None

    legacy_category = _text(data, "category")
    if legacy_category:
        return legacy_category, legacy_category, LegacySource.CATEGORY_FIELD

    if category_name:
        return category_name, category_name, LegacySource.CATEGORY_NAME_ONLY

    if category_id:
        return category_id, category_id, LegacySource.CATEGORY_ID_ONLY

    return uncategorized_id, uncategorized_name, LegacySource.UNCATEGORIZED


def decode_expense(
    document_id: str,
    data: dict[str, Any],
    uncategorized_id: str = UNCATEGORIZED_ID,
    uncategorized_name: str = UNCATEGORIZED_NAME,
) -> DecodeResult:
    """Decode one stored expense document."""
    if "amount" not in data or data["amount"] is None:
        return Unparseable(document_id=document_id, reason="Missing amount")
    if "date" not in data or data["date"] is None:
        return Unparseable(document_id=document_id, reason="Missing date")

    try:
        amount = to_amount(data["amount"])
        moment = to_local_datetime(data["date"])
    except DecodeError as e:
        return Unparseable(document_id=document_id, reason=str(e))

    if amount < 0:
        return Unparseable(document_id=document_id, reason=f"Negative amount: {amount}")

    category_id, category_name, source = resolve_category(
        data, uncategorized_id, uncategorized_name
    )
    note = data.get("note")

    try:
        expense = Expense(
            id=_text(data, "id") or document_id,
            amount=amount,
            category_id=category_id,
            category_name=category_name,
            date=moment,
            note=note if isinstance(note, str) else None,
        )
    except PydanticValidationError as e:
        return Unparseable(document_id=document_id, reason=str(e))

    if source is None:
        return Decoded(expense=expense)
    return LegacyDecoded(expense=expense, source=source)


def decode_category(document_id: str, data: dict[str, Any]) -> Optional[Category]:
    """Decode a category document. Returns None for unreadable documents."""
    name = data.get("name")
    if not isinstance(name, str):
        return None
    try:
        created_at = (
            to_local_datetime(data["createdAt"])
            if data.get("createdAt") is not None
            else datetime.min
        )
        return Category(
            id=_text(data, "id") or document_id,
            name=name,
            created_at=created_at,
        )
    except (DecodeError, PydanticValidationError):
        return None


def decode_budget(data: Optional[dict[str, Any]]) -> Budget:
    """Decode the budget document. Missing or unreadable means no budget."""
    if not data or data.get("amount") is None:
        return Budget()
    try:
        amount = to_amount(data["amount"])
        updated_at = (
            to_local_datetime(data["updatedAt"])
            if data.get("updatedAt") is not None
            else None
        )
    except DecodeError:
        return Budget()
    if amount < 0:
        return Budget()
    return Budget(amount=amount, updated_at=updated_at)
