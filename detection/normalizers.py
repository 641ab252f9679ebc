"""
normalizers.py
---------------
Text and amount normalization for raw transaction records.

Both helpers degrade instead of raising: a record with no usable text is
simply unmatchable, and an amount that will not parse contributes zero.
"""

import math
import numbers
import re
import unicodedata
from typing import Any

from detection.models import TEXT_FIELDS, TransactionRecord


_CURRENCY_AND_SPACE = re.compile(r"pln|\s", re.IGNORECASE)
_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def get_transaction_text(record: TransactionRecord) -> str:
    """
    Returns the first non-blank text field, trimmed and NFC-composed.

    Precedence: description, title, counterparty, counterparty_name.
    Returns "" when every field is absent or blank.
    """
    for name in TEXT_FIELDS:
        value = getattr(record, name)
        if isinstance(value, str) and value.strip():
            return unicodedata.normalize("NFC", value.strip())
    return ""


def _clean_amount_text(amount: Any) -> str:
    s = _CURRENCY_AND_SPACE.sub("", str(amount)).replace(",", ".")
    return _NON_NUMERIC.sub("", s)


def parse_amount(amount: Any) -> float:
    """
    Converts a number or a locale-formatted amount string to a float.

    "-96,46 zł", "-96.46 PLN" and -96.46 all give -96.46.
    Anything that does not parse gives 0.0.
    """
    if isinstance(amount, numbers.Number) and not isinstance(amount, bool):
        return amount
    if amount is None:
        return 0.0

    try:
        return float(_clean_amount_text(amount))
    except ValueError:
        return 0.0


def is_unparseable_amount(amount: Any) -> bool:
    """True when `amount` is present but parse_amount had to fall back to 0."""
    if amount is None:
        return False
    if isinstance(amount, numbers.Number) and not isinstance(amount, bool):
        return isinstance(amount, float) and math.isnan(amount)
    try:
        float(_clean_amount_text(amount))
    except ValueError:
        return True
    return False
