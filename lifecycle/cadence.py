"""
cadence.py
-----------
Cadence-specific lifecycle rules shared by both detection paths.

A subscription is active while the time since its last charge stays within
a generous tolerance for its cadence (base interval plus a grace buffer), so
a charge billed a few days late does not flip it to inactive.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from config.config_loader import get_active_tolerance_days, get_lifecycle_config


def _as_date(value: date | datetime | None) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    return value


def days_since(last_charge_date: date, now: date | datetime | None = None) -> int:
    """Whole days between `last_charge_date` and `now` (today by default)."""
    return (_as_date(now) - last_charge_date).days


def is_active(last_charge_date: date, cadence: str | None, now: date | datetime | None = None) -> bool:
    """
    True when the last charge is within the cadence's tolerance window.

    Unknown or missing cadences are never active.
    """
    try:
        tolerance = get_active_tolerance_days(cadence)
    except KeyError:
        return False
    return days_since(last_charge_date, now) <= tolerance


def next_expected_date(last_charge_date: date, cadence: str | None) -> Optional[date]:
    """Last charge plus the cadence's nominal interval, or None for unknown cadences."""
    intervals = get_lifecycle_config()["nominal_interval_days"]
    if cadence not in intervals:
        return None
    return last_charge_date + timedelta(days=intervals[cadence])
