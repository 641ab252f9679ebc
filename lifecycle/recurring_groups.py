"""
recurring_groups.py
--------------------
Builds subscriptions from transactions already flagged as recurring.

This is the persisted-flag path: the transaction store keeps
is_recurring / recurrence_pattern / recurrence_group_id per transaction
(see recurrence_tagger.py), and this layer rolls those flags up into one
RecurringSubscription per group. A single charge is not recurring, so groups
smaller than min_group_size are dropped.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional

from config.config_loader import get_recurrence_config, get_subscription_detection_config
from detection.models import TransactionRecord
from detection.normalizers import get_transaction_text, parse_amount
from detection.subscription_detector import coerce_records
from lifecycle.cadence import is_active
from lifecycle.recurrence_tagger import RecurrenceTag


@dataclass
class RecurringSubscription:
    """One recurrence group rolled up into a subscription."""
    group_id: str
    description: str
    counterparty_name: Optional[str]
    pattern: str
    first_transaction_date: date
    last_transaction_date: date
    min_amount: float
    max_amount: float
    currency: str
    transaction_count: int
    is_active: bool


def build_recurring_subscriptions(
    transactions,
    tags: Iterable[RecurrenceTag],
    now: date | datetime | None = None,
) -> List[RecurringSubscription]:
    """
    Rolls recurring-tagged transactions up into subscriptions.

    Args:
        transactions: DataFrame or iterable of TransactionRecord / dicts.
        tags: RecurrenceTags for (a subset of) those transactions. Only
            tags with is_recurring set are used.
        now: Reference point for is_active. Defaults to today.

    Returns:
        Subscriptions sorted active first, then most recent last charge first.

    Raises:
        ValueError: If two transactions share an id.
    """
    min_group_size = get_recurrence_config()["min_group_size"]
    base_currency = get_subscription_detection_config()["base_currency"]

    records: dict = {}
    for record in coerce_records(transactions):
        if record.id in records:
            raise ValueError(f"Duplicate transaction id: {record.id!r}")
        records[record.id] = record

    groups: dict = {}
    for tag in tags:
        if not tag.is_recurring or tag.transaction_id not in records:
            continue
        groups.setdefault(tag.group_id, []).append((records[tag.transaction_id], tag))

    subscriptions: List[RecurringSubscription] = []
    for group_id, members in groups.items():
        if len(members) < min_group_size:
            continue

        members.sort(key=lambda m: m[0].date)
        first: TransactionRecord = members[0][0]
        last: TransactionRecord = members[-1][0]
        pattern = members[0][1].pattern
        amounts = [abs(float(parse_amount(r.amount))) for r, _ in members]

        subscriptions.append(RecurringSubscription(
            group_id=group_id,
            description=get_transaction_text(first),
            counterparty_name=first.counterparty_name,
            pattern=pattern,
            first_transaction_date=first.date,
            last_transaction_date=last.date,
            min_amount=min(amounts),
            max_amount=max(amounts),
            currency=first.currency or base_currency,
            transaction_count=len(members),
            is_active=is_active(last.date, pattern, now),
        ))

    # Active first, then most recent last charge first
    subscriptions.sort(key=lambda s: s.last_transaction_date, reverse=True)
    subscriptions.sort(key=lambda s: not s.is_active)
    return subscriptions
