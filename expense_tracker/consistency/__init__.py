"""
Consistency Package

Legacy-aware record decoding and the category rename/delete guarantees.
"""

from expense_tracker.consistency.coordinator import ConsistencyCoordinator
from expense_tracker.consistency.decoder import (
    Decoded,
    DecodeResult,
    LegacyDecoded,
    LegacySource,
    Unparseable,
    decode_budget,
    decode_category,
    decode_expense,
)

__all__ = [
    "ConsistencyCoordinator",
    "Decoded",
    "DecodeResult",
    "LegacyDecoded",
    "LegacySource",
    "Unparseable",
    "decode_budget",
    "decode_category",
    "decode_expense",
]
