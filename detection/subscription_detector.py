"""
subscription_detector.py
-------------------------
Catalogue-driven subscription detection engine.

This is the core layer. It answers one question:

    "Which known vendors charge this organisation regularly, and how much
     does one month of each cost?"

Output: a DetectionResult holding one DetectedSubscription per matched
vendor. Lifecycle (cadence, is_active) is assigned by the pipeline layer.

Design decisions:
    - Only strictly negative amounts are candidate charges.
    - Grouping key is the matched vendor_key, then the inferred service
      month. Several charges in one service month are summed, treating them
      as partial or adjustment charges for the same period.
    - The monthly estimate uses the 3 most recent service months: median
      when 3 are available, mean below that.
    - All thresholds are read from config.yaml.
"""

import logging
from collections import Counter
from typing import Iterable, List

import numpy as np
import pandas as pd

from config.config_loader import get_subscription_detection_config
from detection.models import (
    DetectedSubscription,
    DetectionDebug,
    DetectionResult,
    TransactionRecord,
    VendorSignature,
)
from detection.normalizers import get_transaction_text, is_unparseable_amount, parse_amount
from detection.service_month import infer_service_month
from detection.vendor_catalogue import VendorCatalogue

logger = logging.getLogger(__name__)


def coerce_records(transactions) -> List[TransactionRecord]:
    """
    Normalizes caller input into TransactionRecords.

    Accepts a DataFrame, or an iterable of TransactionRecord / mappings.

    Raises:
        ValueError: If a record has no usable booking date, or a DataFrame
            lacks the required columns.
    """
    if isinstance(transactions, pd.DataFrame):
        missing = [c for c in ("amount",) if c not in transactions.columns]
        if "date" not in transactions.columns and "booking_date" not in transactions.columns:
            missing.append("date")
        if missing:
            raise ValueError(f"Missing required columns: {missing}")
        rows: Iterable = (row for _, row in transactions.iterrows())
    else:
        rows = transactions

    records = []
    for row in rows:
        if isinstance(row, TransactionRecord):
            records.append(row)
        else:
            records.append(TransactionRecord.from_mapping(row))
    return records


def estimate_monthly_amount(monthly_sums: List[float], median_min_samples: int = 3) -> float:
    """
    Robust single-month estimate from per-service-month sums.

    Median suppresses one-off double charges or refunds; with fewer samples
    the mean is used instead of a median that would just pick one value.
    """
    if not monthly_sums:
        return 0.0
    if len(monthly_sums) >= median_min_samples:
        return float(np.median(monthly_sums))
    return float(np.mean(monthly_sums))


def most_common_currency(currencies: List[str], default: str) -> str:
    """Most frequent currency; ties go to the one seen first."""
    if not currencies:
        return default
    # Counter keeps insertion order and most_common sorts stably
    return Counter(currencies).most_common(1)[0][0]


class SubscriptionDetector:
    """
    Detects subscriptions by matching transactions to the vendor catalogue.

    Usage:
        detector = SubscriptionDetector()
        result = detector.detect(transactions)
    """

    def __init__(self, catalogue: VendorCatalogue | None = None, min_occurrences: int | None = None):
        self.config = get_subscription_detection_config()
        self.catalogue = catalogue if catalogue is not None else VendorCatalogue()
        self.base_currency = self.config["base_currency"]
        self.min_occurrences = (
            self.config["min_occurrences"] if min_occurrences is None else min_occurrences
        )
        self.window = self.config["service_month_window"]
        self.median_min_samples = self.config["median_min_samples"]
        self.max_samples = self.config["max_debug_samples"]
        self.sample_length = self.config["debug_sample_length"]
        self.confidence_rules = self.config["confidence"]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(self, transactions) -> DetectionResult:
        """
        Run subscription detection over a transaction set.

        Args:
            transactions: DataFrame or iterable of TransactionRecord / dicts
                with at least: id, date (or booking_date), amount, and any
                of description, title, counterparty, counterparty_name.
                The caller scopes the set (organisation, time window).

        Returns:
            DetectionResult with subscriptions, total_monthly and debug
            counters. Subscription order follows first match in the input.
        """
        records = coerce_records(transactions)
        debug = DetectionDebug(input_count=len(records))
        logger.info(f"Detection starting. Input: {len(records):,} transactions.")

        expenses = [r for r in records if parse_amount(r.amount) < 0]
        debug.expense_count = len(expenses)
        debug.unparsed_amounts = sum(1 for r in records if is_unparseable_amount(r.amount))

        groups = self._group_by_vendor(expenses, debug)
        logger.info(f"Matched vendors: {debug.matched_counts}")

        subscriptions: List[DetectedSubscription] = []
        for signature, members in groups.values():
            # Filter: minimum occurrences gate
            if len(members) < self.min_occurrences:
                continue
            subscriptions.append(self._build_subscription(signature, members))

        total_monthly = round(sum(s.monthly_amount for s in subscriptions), 2)
        logger.info(
            f"Detection complete. Subscriptions: {len(subscriptions):,}, "
            f"total monthly: {total_monthly:,.2f}."
        )

        return DetectionResult(subscriptions=subscriptions, total_monthly=total_monthly, debug=debug)

    # -------------------------------------------------------------------------
    # INTERNAL: VENDOR GROUPING
    # -------------------------------------------------------------------------

    def _group_by_vendor(self, expenses: List[TransactionRecord], debug: DetectionDebug) -> dict:
        """
        Matches each expense to at most one vendor.

        Returns:
            Ordered dict vendor_key → (VendorSignature, [(record, text), ...]).
        """
        groups: dict = {}
        for record in expenses:
            text = get_transaction_text(record)
            if not text:
                continue

            signature = self.catalogue.match(text)
            if signature is None:
                continue

            key = signature.vendor_key
            if key not in groups:
                groups[key] = (signature, [])
                debug.matched_counts[key] = 0
                debug.sample_matches[key] = []

            groups[key][1].append((record, text))
            debug.matched_counts[key] += 1
            if len(debug.sample_matches[key]) < self.max_samples:
                debug.sample_matches[key].append(text[: self.sample_length])

        return groups

    # -------------------------------------------------------------------------
    # INTERNAL: SUBSCRIPTION CONSTRUCTION
    # -------------------------------------------------------------------------

    def _build_subscription(self, signature: VendorSignature, members: list) -> DetectedSubscription:
        """Builds a DetectedSubscription from one vendor group."""
        # --- Service-month buckets ---
        by_month: dict = {}
        for record, text in members:
            month = infer_service_month(text, record.date, signature).isoformat()
            by_month[month] = by_month.get(month, 0.0) + abs(float(parse_amount(record.amount)))

        # Most recent first; ISO strings sort chronologically
        recent_months = sorted(by_month, reverse=True)[: self.window]
        recent_sums = [by_month[m] for m in recent_months]
        monthly_amount = estimate_monthly_amount(recent_sums, self.median_min_samples)

        # --- Timing over the whole group, not just the sampled months ---
        dates = [record.date for record, _ in members]

        currencies = [record.currency or self.base_currency for record, _ in members]

        return DetectedSubscription(
            vendor_key=signature.vendor_key,
            display_name=signature.display_name,
            monthly_amount=round(abs(monthly_amount), 2),
            currency=most_common_currency(currencies, self.base_currency),
            first_charge_date=min(dates),
            last_charge_date=max(dates),
            occurrences=len(members),
            service_months=recent_months,
            confidence=self._compute_confidence(len(members), len(by_month)),
            transaction_ids=[record.id for record, _ in members],
        )

    def _compute_confidence(self, occurrences: int, distinct_months: int) -> int:
        """
        0–100 confidence for a catalogue match.

        Base score for a deterministic match, plus bonuses for repeated
        charges and for charges spread over several service months.
        """
        rules = self.confidence_rules
        score = rules["base"]
        if occurrences >= rules["many_occurrences_min"]:
            score += rules["many_occurrences_bonus"]
        if distinct_months >= rules["distinct_months_min"]:
            score += rules["distinct_months_bonus"]
        return min(score, rules["max"])
