"""
recurrence_tagger.py
---------------------
Catalogue-free recurrence tagging.

Produces the per-transaction "is this recurring" flag that the transaction
store persists (is_recurring, recurrence_pattern, recurrence_group_id).
Each outgoing transaction is compared with the earlier ones that share a
similar description and amount; the day gaps to those predecessors decide
the pattern.

Logic per transaction:
    1. Find predecessors with similar description AND similar amount.
    2. Classify each gap (0 < days < max_interval_days) into a cadence window.
    3. The most common cadence wins; confidence grows with its share.
    4. Group id is derived from normalized description + absolute amount, so
       every member of a series lands in the same group.

All thresholds and windows come from config.yaml.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import List

from config.config_loader import get_recurrence_config
from detection.models import TransactionRecord
from detection.normalizers import get_transaction_text, parse_amount
from detection.subscription_detector import coerce_records

logger = logging.getLogger(__name__)

ONE_TIME = "one_time"

_NON_WORD = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")


@dataclass
class RecurrenceTag:
    """Recurrence verdict for one transaction."""
    transaction_id: str
    is_recurring: bool
    pattern: str                     # "weekly" | "monthly" | "quarterly" | "yearly" | "one_time"
    confidence: float                # 0.0 – 1.0
    group_id: str


def normalize_description(description: str) -> str:
    """Lower-case, collapse whitespace, drop punctuation."""
    s = _SPACES.sub(" ", description.lower())
    return _NON_WORD.sub("", s).strip()


class RecurrenceTagger:
    """
    Tags outgoing transactions with a recurrence pattern.

    Usage:
        tagger = RecurrenceTagger()
        tags = tagger.tag(transactions)
    """

    def __init__(self):
        self.config = get_recurrence_config()
        self.windows = self.config["interval_windows"]
        self.max_interval_days = self.config["max_interval_days"]
        self.min_confidence = self.config["min_confidence"]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def tag(self, transactions) -> List[RecurrenceTag]:
        """
        Tags every outgoing transaction, oldest first.

        Args:
            transactions: DataFrame or iterable of TransactionRecord / dicts.

        Returns:
            One RecurrenceTag per expense, in chronological order. Incoming
            and zero-amount transactions are not tagged.
        """
        records = coerce_records(transactions)
        expenses = sorted(
            (r for r in records if parse_amount(r.amount) < 0),
            key=lambda r: r.date,
        )

        tags: List[RecurrenceTag] = []
        for i, record in enumerate(expenses):
            pattern, confidence, group_id = self.detect_pattern(record, expenses[:i])
            recurring = pattern != ONE_TIME and confidence > self.min_confidence
            tags.append(RecurrenceTag(
                transaction_id=record.id,
                is_recurring=recurring,
                pattern=pattern if recurring else ONE_TIME,
                confidence=round(confidence, 4),
                group_id=group_id if recurring else record.id,
            ))

        recurring_count = sum(1 for t in tags if t.is_recurring)
        logger.info(f"Tagged {len(tags):,} expenses, recurring: {recurring_count:,}.")
        return tags

    def detect_pattern(
        self, record: TransactionRecord, previous: List[TransactionRecord]
    ) -> tuple[str, float, str]:
        """
        Classifies one transaction against its predecessors.

        Returns:
            Tuple of (pattern, confidence, group_id).
        """
        text = get_transaction_text(record)
        if not text:
            return (ONE_TIME, 0.0, record.id)
        amount = parse_amount(record.amount)

        similar = [
            p for p in previous
            if self.descriptions_similar(get_transaction_text(p), text)
            and self.amounts_similar(parse_amount(p.amount), amount)
        ]
        if not similar:
            return (ONE_TIME, 0.0, record.id)

        # Nearest predecessor first, so ties go to the shortest gap
        similar.sort(key=lambda p: p.date, reverse=True)
        gaps = [abs((record.date - p.date).days) for p in similar]
        gaps = [g for g in gaps if 0 < g < self.max_interval_days]
        if not gaps:
            return (ONE_TIME, 0.3, record.id)

        patterns = [self.pattern_for_interval(g) for g in gaps]
        patterns = [p for p in patterns if p != ONE_TIME]
        if not patterns:
            return (ONE_TIME, 0.5, record.id)

        # most_common keeps first-seen order on ties
        pattern, count = Counter(patterns).most_common(1)[0]
        confidence = min(0.5 + (count / len(similar)) * 0.5, 0.95)

        group_id = f"{normalize_description(text)}_{abs(float(amount)):.2f}"
        return (pattern, confidence, group_id[: self.config["group_id_max_length"]])

    # -------------------------------------------------------------------------
    # SIMILARITY RULES
    # -------------------------------------------------------------------------

    def descriptions_similar(self, first: str, second: str) -> bool:
        """Equal, contained in one another, or sharing enough long words."""
        a = normalize_description(first)
        b = normalize_description(second)
        if a == b:
            return True

        contains_min = self.config["contains_min_length"]
        if len(a) > contains_min and len(b) > contains_min and (a in b or b in a):
            return True

        overlap_min = self.config["word_overlap_min_length"]
        if len(a) > overlap_min and len(b) > overlap_min:
            word_min = self.config["word_min_length"]
            words_a = {w for w in a.split(" ") if len(w) > word_min}
            words_b = {w for w in b.split(" ") if len(w) > word_min}
            if len(words_a & words_b) >= self.config["word_overlap_min_words"]:
                return True

        return False

    def amounts_similar(self, first: float, second: float) -> bool:
        """Equal absolute values, or within the relative tolerance of their mean."""
        a, b = abs(float(first)), abs(float(second))
        if a == b:
            return True
        avg = (a + b) / 2
        return avg > 0 and abs(a - b) / avg < self.config["amount_relative_tolerance"]

    def pattern_for_interval(self, days: int) -> str:
        """Maps a day gap to the first configured cadence window containing it."""
        for window in self.windows:
            if window["min_days"] <= days <= window["max_days"]:
                return window["pattern"]
        return ONE_TIME
