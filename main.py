"""
main.py
--------
Entry point for the Subscription Detection Engine.

Reads a transaction CSV, runs the detection pipeline, and writes the
detected subscriptions to the outputs/ folder.

Usage (from the project root):
    python main.py

    # With optional arguments:
    python main.py --input path/to/transactions.csv
    python main.py --min-occurrences 2
    python main.py --as-of 2025-12-31 --recurring
"""

import sys
import os
import argparse
import logging
import pandas as pd
from datetime import datetime

# Ensure project root is on path (for runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from pipeline import SubscriptionPipeline


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Subscription Detection Engine: find recurring vendor charges in bank transactions."
    )
    parser.add_argument(
        "--input", type=str, default=None,
        help="Path to input transactions CSV. Defaults to sample_transactions.csv in project root."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Output directory. Defaults to outputs/ in project root."
    )
    parser.add_argument(
        "--min-occurrences", type=int, default=None,
        help="Minimum matched charges per vendor. Defaults to config value (1)."
    )
    parser.add_argument(
        "--as-of", type=str, default=None,
        help="Reference date (YYYY-MM-DD) for active/lapsed status. Defaults to today."
    )
    parser.add_argument(
        "--recurring", action="store_true", default=False,
        help="Also run catalogue-free recurrence tagging and write a recurring groups report."
    )
    return parser.parse_args(argv)


# =============================================================================
# MAIN
# =============================================================================

def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # --- Resolve paths ---
    input_path = args.input or os.path.join(PROJECT_ROOT, "sample_transactions.csv")
    output_dir = args.output_dir or os.path.join(PROJECT_ROOT, "outputs")
    os.makedirs(output_dir, exist_ok=True)

    as_of = None
    if args.as_of:
        try:
            as_of = datetime.strptime(args.as_of, "%Y-%m-%d").date()
        except ValueError:
            logger.error(f"Invalid --as-of date: {args.as_of} (expected YYYY-MM-DD)")
            return 1

    # --- Load transactions ---
    logger.info(f"Loading transactions from: {input_path}")
    if not os.path.exists(input_path):
        logger.error(f"Input file not found: {input_path}")
        return 1

    # Amounts stay text so locale formats like "-96,46 zł" reach the normalizer
    transactions = pd.read_csv(input_path, dtype={"amount": str, "id": str})
    logger.info(f"Loaded {len(transactions):,} transactions.")

    # --- Run pipeline ---
    pipeline = SubscriptionPipeline(min_occurrences=args.min_occurrences)
    try:
        result = pipeline.run_detection(transactions, now=as_of)
    except ValueError as exc:
        logger.error(f"Invalid input: {exc}")
        return 1

    subscriptions = pipeline.subscriptions_frame(result.subscriptions)
    logger.info(f"Debug: {result.debug}")

    # --- Output: Subscriptions ---
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    subscriptions_path = os.path.join(output_dir, f"subscriptions_{timestamp}.csv")
    subscriptions.to_csv(subscriptions_path, index=False)
    logger.info(f"Subscriptions saved to: {subscriptions_path}")

    _print_summary(subscriptions, result.total_monthly)

    # --- Optional: Recurrence groups ---
    if args.recurring:
        logger.info("Running recurrence tagging...")
        try:
            recurring = pipeline.run_recurring(transactions, now=as_of)
        except ValueError as exc:
            logger.error(f"Invalid input: {exc}")
            return 1
        if recurring.empty:
            logger.info("No recurring groups detected.")
        else:
            recurring_path = os.path.join(output_dir, f"recurring_{timestamp}.csv")
            recurring.to_csv(recurring_path, index=False)
            logger.info(f"Recurring groups saved to: {recurring_path}")

    return 0


def _print_summary(df: pd.DataFrame, total_monthly: float):
    """Prints a clean summary table to the console."""
    if df.empty:
        print("\n  No subscriptions to display.\n")
        return

    print("\n" + "=" * 80)
    print("  SUBSCRIPTION SUMMARY")
    print("=" * 80)

    print("\n  Detected Subscriptions:")
    print("  " + "-" * 60)
    for _, row in df.iterrows():
        status = "active" if row["is_active"] else "lapsed"
        print(
            f"    {row['display_name']:30s}  {row['monthly_amount']:>10,.2f} {row['currency']}"
            f"  ({status}, last {row['last_charge_date']}, {row['occurrences']} charges)"
        )

    active_count = int(df["is_active"].sum())
    print(f"\n  Active: {active_count:,} of {len(df):,}")
    print(f"  Total monthly: {total_monthly:,.2f}")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    sys.exit(main())
