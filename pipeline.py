"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. SubscriptionDetector   →  produces DetectedSubscriptions per vendor
    2. Lifecycle wrapper      →  assigns cadence, is_active, next_expected_date
    3. Output serialization   →  flat DataFrame for reports and CSV export

A second path covers catalogue-free detection:
    RecurrenceTagger → build_recurring_subscriptions → DataFrame

This is the single entry point for running the engine. Everything else
is internal machinery.

Usage:
    from pipeline import SubscriptionPipeline

    pipeline = SubscriptionPipeline()
    subscriptions_df = pipeline.run(transactions_df)
"""

import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import List

import pandas as pd

from config.config_loader import load_config
from detection.models import DetectedSubscription, DetectionResult
from detection.subscription_detector import SubscriptionDetector, coerce_records
from detection.vendor_catalogue import VendorCatalogue
from lifecycle.cadence import is_active, next_expected_date
from lifecycle.recurrence_tagger import RecurrenceTagger
from lifecycle.recurring_groups import RecurringSubscription, build_recurring_subscriptions

logger = logging.getLogger(__name__)


SUBSCRIPTION_COLUMNS = [
    "vendor_key", "display_name", "cadence", "is_active", "monthly_amount",
    "currency", "first_charge_date", "last_charge_date", "next_expected_date",
    "occurrences", "service_months", "confidence", "transaction_ids",
]

RECURRING_COLUMNS = [
    "group_id", "description", "counterparty_name", "pattern", "is_active",
    "first_transaction_date", "last_transaction_date", "min_amount",
    "max_amount", "currency", "transaction_count",
]


class SubscriptionPipeline:
    """
    End-to-end subscription detection pipeline.

    Orchestrates detection → lifecycle → output without exposing
    internal objects to callers.
    """

    def __init__(self, min_occurrences: int | None = None, catalogue: VendorCatalogue | None = None):
        """
        Args:
            min_occurrences: Override the minimum charges per vendor from config.
            catalogue: Vendor catalogue to match against. Defaults to config.
        """
        self.config = load_config()
        self.catalogue = catalogue if catalogue is not None else VendorCatalogue()
        self.detector = SubscriptionDetector(self.catalogue, min_occurrences=min_occurrences)
        self.tagger = RecurrenceTagger()

        logger.info(
            f"Pipeline initialized. "
            f"Vendors: {[s.vendor_key for s in self.catalogue.signatures]}. "
            f"Min occurrences: {self.detector.min_occurrences}."
        )

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(self, transactions, now: date | datetime | None = None) -> pd.DataFrame:
        """
        Run the full detection pipeline.

        Args:
            transactions: DataFrame or iterable of transaction records.
            now: Reference point for is_active. Defaults to today.

        Returns:
            DataFrame of subscriptions, active first, then most recent
            last charge first.
        """
        result = self.run_detection(transactions, now=now)
        output_df = self.subscriptions_frame(result.subscriptions)
        logger.info(f"Pipeline complete. Output rows: {len(output_df):,}.")
        return output_df

    def run_detection(self, transactions, now: date | datetime | None = None) -> DetectionResult:
        """
        Runs detection and lifecycle, returning the structured result.
        Useful for debugging: the result keeps the debug counters.
        """
        records = coerce_records(transactions)
        logger.info(f"Pipeline starting. Input: {len(records):,} transactions.")

        # --- Stage 1: Catalogue detection ---
        result = self.detector.detect(records)
        logger.info(f"Stage 1 complete. Subscriptions: {len(result.subscriptions):,}.")

        # --- Stage 2: Lifecycle ---
        for subscription in result.subscriptions:
            self._apply_lifecycle(subscription, now)
        active = sum(1 for s in result.subscriptions if s.is_active)
        logger.info(f"Stage 2 complete. Active: {active:,} of {len(result.subscriptions):,}.")

        return result

    def run_recurring(self, transactions, now: date | datetime | None = None) -> pd.DataFrame:
        """
        Catalogue-free path: tag recurring transactions, then roll the
        recurrence groups up into subscriptions.
        """
        records = coerce_records(transactions)
        tags = self.tagger.tag(records)
        subscriptions = build_recurring_subscriptions(records, tags, now=now)
        logger.info(f"Recurring groups: {len(subscriptions):,}.")
        return self.recurring_frame(subscriptions)

    # -------------------------------------------------------------------------
    # INTERNAL: LIFECYCLE
    # -------------------------------------------------------------------------

    def _apply_lifecycle(self, subscription: DetectedSubscription, now: date | datetime | None) -> None:
        """Assigns cadence from the vendor signature, then activity and next date."""
        signature = self.catalogue.get(subscription.vendor_key)
        cadence = signature.cadence if signature is not None else self.config["lifecycle"]["default_cadence"]

        subscription.cadence = cadence
        subscription.is_active = is_active(subscription.last_charge_date, cadence, now)
        subscription.next_expected_date = next_expected_date(subscription.last_charge_date, cadence)

    # -------------------------------------------------------------------------
    # OUTPUT SERIALIZATION
    # -------------------------------------------------------------------------

    def subscriptions_frame(self, subscriptions: List[DetectedSubscription]) -> pd.DataFrame:
        """Converts DetectedSubscriptions to a flat DataFrame."""
        if not subscriptions:
            return pd.DataFrame(columns=SUBSCRIPTION_COLUMNS)

        rows = []
        for s in subscriptions:
            rows.append({
                "vendor_key": s.vendor_key,
                "display_name": s.display_name,
                "cadence": s.cadence,
                "is_active": s.is_active,
                "monthly_amount": s.monthly_amount,
                "currency": s.currency,
                "first_charge_date": s.first_charge_date.isoformat(),
                "last_charge_date": s.last_charge_date.isoformat(),
                "next_expected_date": s.next_expected_date.isoformat() if s.next_expected_date else None,
                "occurrences": s.occurrences,
                "service_months": "|".join(s.service_months),
                "confidence": s.confidence,
                "transaction_ids": "|".join(str(x) for x in s.transaction_ids),
            })

        df = pd.DataFrame(rows, columns=SUBSCRIPTION_COLUMNS)

        # Sort: active first → most recent last charge
        df = df.sort_values(
            ["is_active", "last_charge_date"],
            ascending=[False, False],
            kind="stable",
        ).reset_index(drop=True)

        return df

    def recurring_frame(self, subscriptions: List[RecurringSubscription]) -> pd.DataFrame:
        """Converts RecurringSubscriptions to a flat DataFrame (already sorted)."""
        if not subscriptions:
            return pd.DataFrame(columns=RECURRING_COLUMNS)

        rows = []
        for s in subscriptions:
            row = asdict(s)
            row["first_transaction_date"] = s.first_transaction_date.isoformat()
            row["last_transaction_date"] = s.last_transaction_date.isoformat()
            rows.append(row)

        return pd.DataFrame(rows, columns=RECURRING_COLUMNS)
