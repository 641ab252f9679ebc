"""
models.py
----------
Core domain models. These are the typed contracts between engine layers.

- TransactionRecord: Read-only input row. Built at the boundary from a
  mapping or DataFrame row; the engine never mutates it.

- VendorSignature: One entry of the static vendor catalogue.

- DetectedSubscription / DetectionResult: Output of the subscription
  detector. Values only, rebuilt from the transaction set on every run.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Optional

import pandas as pd


TEXT_FIELDS = ("description", "title", "counterparty", "counterparty_name")

# Bank exports write dates as DD.MM.YYYY (or DD/MM/YYYY, DD-MM-YYYY)
_DAY_FIRST_DATE = re.compile(r"^\d{1,2}[./-]\d{1,2}[./-]\d{4}$")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, float) and math.isnan(value)


def _to_date(value: Any) -> date:
    """Parses a booking date. Raises ValueError for missing or unparseable values."""
    if _is_missing(value) or (isinstance(value, str) and not value.strip()):
        raise ValueError("Transaction record is missing a booking date")
    day_first = isinstance(value, str) and bool(_DAY_FIRST_DATE.match(value.strip()))
    try:
        ts = pd.to_datetime(value.strip() if day_first else value, dayfirst=day_first)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Unparseable booking date: {value!r}") from exc
    if pd.isna(ts):
        raise ValueError("Transaction record is missing a booking date")
    return ts.date()


@dataclass(frozen=True)
class TransactionRecord:
    """
    A single bank transaction as supplied by the transaction store.

    `amount` keeps its original representation (number or locale-formatted
    string); normalization happens inside the engine.
    """

    id: str
    date: date
    amount: Any                      # float | int | str, negative = expense
    currency: Optional[str] = None
    description: Optional[str] = None
    title: Optional[str] = None
    counterparty: Optional[str] = None
    counterparty_name: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "TransactionRecord":
        """
        Builds a record from a dict or DataFrame row.

        Accepts `booking_date` as an alias for `date` and `transaction_id`
        as an alias for `id`.

        Raises:
            ValueError: If the row carries no id or no usable booking date.
        """
        raw_id = row.get("id")
        if _is_missing(raw_id) or str(raw_id).strip() == "":
            raw_id = row.get("transaction_id")
        if _is_missing(raw_id) or str(raw_id).strip() == "":
            raise ValueError("Transaction record is missing an id")

        raw_date = row.get("date")
        if _is_missing(raw_date):
            raw_date = row.get("booking_date")

        currency = row.get("currency")
        texts = {}
        for name in TEXT_FIELDS:
            value = row.get(name)
            texts[name] = None if _is_missing(value) else str(value)

        return cls(
            id=str(raw_id).strip(),
            date=_to_date(raw_date),
            amount=row.get("amount"),
            currency=None if _is_missing(currency) or currency == "" else str(currency),
            **texts,
        )


@dataclass(frozen=True)
class VendorSignature:
    """
    Catalogue entry describing one known recurring payee.

    A transaction matches when its normalized text satisfies any pattern.
    """

    vendor_key: str
    display_name: str
    patterns: tuple                  # Compiled regexes, declaration order
    cadence: str = "monthly"
    month_without_year: bool = False # Statements say "<month>" with the year implied


@dataclass
class DetectedSubscription:
    """
    One recurring vendor charge found in the transaction set.

    `cadence`, `is_active` and `next_expected_date` stay None until the
    lifecycle wrapper assigns them.
    """

    # Identity
    vendor_key: str
    display_name: str

    # Amount
    monthly_amount: float            # Always >= 0
    currency: str

    # Timing
    first_charge_date: date
    last_charge_date: date
    occurrences: int
    service_months: list[str] = field(default_factory=list)  # YYYY-MM-01, newest first

    # Evidence
    confidence: int = 0              # 0 – 100
    transaction_ids: list[str] = field(default_factory=list)

    # Lifecycle
    cadence: Optional[str] = None
    is_active: Optional[bool] = None
    next_expected_date: Optional[date] = None


@dataclass
class DetectionDebug:
    """Diagnostic counters. For operability only, not for business logic."""

    input_count: int = 0
    expense_count: int = 0
    unparsed_amounts: int = 0
    matched_counts: dict = field(default_factory=dict)   # vendor_key -> count
    sample_matches: dict = field(default_factory=dict)   # vendor_key -> [text, ...]


@dataclass
class DetectionResult:
    """Full output of one detection run."""

    subscriptions: list[DetectedSubscription] = field(default_factory=list)
    total_monthly: float = 0.0
    debug: DetectionDebug = field(default_factory=DetectionDebug)
