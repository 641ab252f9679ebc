"""
service_month.py
-----------------
Service-month inference: which calendar month a charge actually pays for.

Bank statements from the same vendor are inconsistent. Some say
"OPŁATA ZA PAŹDZIERNIK 2025", some only "GOOGLE WORKSPACE SIERPIEŃ", and
many carry no period reference at all. Tiers, first success wins:

    1. Month word + a 20xx year anywhere in the text.
    2. Month word only, for vendors whose statements omit the year
       (VendorSignature.month_without_year); the booking year is used.
    3. Booking month and year.

An extracted month later than the booking date is kept as-is.
"""

import re
import unicodedata
from datetime import date
from typing import Optional

from detection.models import VendorSignature


# Polish month names, nominative and genitive, with the diacritic-free
# spellings that bank exports often produce.
PL_MONTHS = {
    "styczeń": 1, "stycznia": 1, "styczen": 1,
    "luty": 2, "lutego": 2,
    "marzec": 3, "marca": 3,
    "kwiecień": 4, "kwietnia": 4, "kwiecien": 4,
    "maj": 5, "maja": 5,
    "czerwiec": 6, "czerwca": 6,
    "lipiec": 7, "lipca": 7,
    "sierpień": 8, "sierpnia": 8, "sierpien": 8,
    "wrzesień": 9, "września": 9, "wrzesien": 9, "wrzesnia": 9,
    "październik": 10, "października": 10, "pazdziernik": 10, "pazdziernika": 10,
    "listopad": 11, "listopada": 11,
    "grudzień": 12, "grudnia": 12, "grudzien": 12,
}

# Longest first so an alternation never stops at a shorter prefix.
_MONTH_RE = re.compile(
    r"\b(" + "|".join(sorted(PL_MONTHS, key=len, reverse=True)) + r")\b"
)
_YEAR_RE = re.compile(r"\b(20\d{2})\b")


def find_month_token(text: str) -> Optional[int]:
    """Returns the month number of the first month word in `text`, or None."""
    # Decomposed diacritics (PDF / export text) must compose before lookup
    match = _MONTH_RE.search(unicodedata.normalize("NFC", text).lower())
    return PL_MONTHS[match.group(1)] if match else None


def find_year_token(text: str) -> Optional[int]:
    """Returns the first 20xx year in `text`, or None."""
    match = _YEAR_RE.search(text)
    return int(match.group(1)) if match else None


def infer_service_month(
    text: str, booking_date: date, vendor: VendorSignature | None = None
) -> date:
    """
    Infers the service month for one charge.

    Args:
        text: Normalized transaction text.
        booking_date: Date the transaction was booked.
        vendor: Matched vendor signature; enables the month-without-year tier.

    Returns:
        First day of the inferred month.
    """
    month = find_month_token(text)
    year = find_year_token(text)

    if month is not None and year is not None:
        return date(year, month, 1)

    if month is not None and vendor is not None and vendor.month_without_year:
        return date(booking_date.year, month, 1)

    return date(booking_date.year, booking_date.month, 1)
