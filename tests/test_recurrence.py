"""
test_recurrence.py
-------------------
Tests for the catalogue-free recurrence path:
    - RecurrenceTagger (similarity rules, interval windows, tagging)
    - build_recurring_subscriptions (grouping, threshold, ordering)
    - SubscriptionPipeline.run_recurring (integration)
"""

import sys
import os
import pytest
from datetime import date

# Ensure the project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.config_loader import reset_config
from lifecycle.recurrence_tagger import RecurrenceTagger, RecurrenceTag, normalize_description
from lifecycle.recurring_groups import build_recurring_subscriptions
from pipeline import SubscriptionPipeline, RECURRING_COLUMNS


@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


def _txn(txn_id, booking_date, amount, description, **extra) -> dict:
    row = {"id": txn_id, "date": booking_date, "amount": amount, "description": description}
    row.update(extra)
    return row


def _netflix_series() -> list[dict]:
    """Four monthly charges, mid-month."""
    return [
        _txn("n1", "2025-01-15", -49.0, "NETFLIX SUBSCRIPTION", counterparty_name="Netflix"),
        _txn("n2", "2025-02-15", -49.0, "NETFLIX SUBSCRIPTION"),
        _txn("n3", "2025-03-15", -49.0, "NETFLIX SUBSCRIPTION"),
        _txn("n4", "2025-04-15", -49.0, "NETFLIX SUBSCRIPTION"),
    ]


def _tag(txn_id, group_id, pattern="monthly", recurring=True) -> RecurrenceTag:
    return RecurrenceTag(
        transaction_id=txn_id, is_recurring=recurring, pattern=pattern,
        confidence=0.9, group_id=group_id,
    )


# =============================================================================
# SIMILARITY RULES
# =============================================================================

class TestSimilarityRules:
    def test_normalize_description(self):
        assert normalize_description("  Netflix.com   Subscription! ") == "netflixcom subscription"
        assert normalize_description("OPŁATA ZA NAJEM") == "opłata za najem"

    def test_descriptions_similar(self):
        tagger = RecurrenceTagger()
        assert tagger.descriptions_similar("NETFLIX", "netflix")
        assert tagger.descriptions_similar("SPOTIFY PREMIUM", "SPOTIFY PREMIUM FAMILY")
        assert tagger.descriptions_similar(
            "PRZELEW CZYNSZ LOKAL WARSZAWA STYCZEN",
            "PRZELEW CZYNSZ LOKAL WARSZAWA LUTY",
        )
        assert not tagger.descriptions_similar("NETFLIX", "SPOTIFY")

    def test_short_descriptions_need_exact_match(self):
        tagger = RecurrenceTagger()
        assert not tagger.descriptions_similar("UBER", "UBER EATS")

    def test_amounts_similar(self):
        tagger = RecurrenceTagger()
        assert tagger.amounts_similar(-100.0, 100.0)
        assert tagger.amounts_similar(-100.0, -100.5)
        assert not tagger.amounts_similar(-100.0, -102.0)
        assert not tagger.amounts_similar(0.0, -1.0)

    def test_pattern_for_interval(self):
        tagger = RecurrenceTagger()
        assert tagger.pattern_for_interval(7) == "weekly"
        assert tagger.pattern_for_interval(30) == "monthly"
        assert tagger.pattern_for_interval(91) == "quarterly"
        assert tagger.pattern_for_interval(365) == "yearly"
        assert tagger.pattern_for_interval(45) == "one_time"


# =============================================================================
# TAGGER
# =============================================================================

class TestRecurrenceTagger:
    def test_monthly_series(self):
        tags = RecurrenceTagger().tag(_netflix_series())
        assert [t.transaction_id for t in tags] == ["n1", "n2", "n3", "n4"]

        # The first charge has no predecessor
        assert tags[0].is_recurring is False
        assert tags[0].pattern == "one_time"
        assert tags[0].group_id == "n1"

        for tag in tags[1:]:
            assert tag.is_recurring is True
            assert tag.pattern == "monthly"
            assert tag.group_id == "netflix subscription_49.00"
            assert 0.5 < tag.confidence <= 0.95

    def test_weekly_series(self):
        txns = [
            _txn("w1", "2025-03-03", -20.0, "KARNET SILOWNIA TYGODNIOWY"),
            _txn("w2", "2025-03-10", -20.0, "KARNET SILOWNIA TYGODNIOWY"),
            _txn("w3", "2025-03-17", -20.0, "KARNET SILOWNIA TYGODNIOWY"),
        ]
        tags = RecurrenceTagger().tag(txns)
        assert [t.pattern for t in tags] == ["one_time", "weekly", "weekly"]

    def test_input_order_does_not_matter(self):
        tags = RecurrenceTagger().tag(list(reversed(_netflix_series())))
        assert [t.transaction_id for t in tags] == ["n1", "n2", "n3", "n4"]

    def test_income_not_tagged(self):
        txns = [
            _txn("i1", "2025-01-10", 5000.0, "WYNAGRODZENIE"),
            _txn("i2", "2025-02-10", 5000.0, "WYNAGRODZENIE"),
        ]
        assert RecurrenceTagger().tag(txns) == []

    def test_irregular_gaps_stay_one_time(self):
        txns = [
            _txn("a1", "2025-01-01", -30.0, "KSIEGARNIA"),
            _txn("a2", "2025-02-17", -30.0, "KSIEGARNIA"),
        ]
        tags = RecurrenceTagger().tag(txns)
        assert all(not t.is_recurring for t in tags)

    def test_textless_transactions_stay_one_time(self):
        txns = [
            _txn("e1", "2025-01-01", -30.0, None),
            _txn("e2", "2025-02-01", -30.0, "  "),
        ]
        tags = RecurrenceTagger().tag(txns)
        assert all(not t.is_recurring for t in tags)

    def test_different_amounts_not_grouped(self):
        txns = [
            _txn("a1", "2025-01-01", -30.0, "ALLEGRO ZAKUP"),
            _txn("a2", "2025-02-01", -75.0, "ALLEGRO ZAKUP"),
        ]
        tags = RecurrenceTagger().tag(txns)
        assert all(t.pattern == "one_time" for t in tags)


# =============================================================================
# RECURRING GROUPS
# =============================================================================

class TestRecurringGroups:
    def test_series_rolls_up(self):
        txns = _netflix_series()
        tags = RecurrenceTagger().tag(txns)
        subs = build_recurring_subscriptions(txns, tags, now=date(2025, 5, 1))

        assert len(subs) == 1
        sub = subs[0]
        assert sub.pattern == "monthly"
        assert sub.transaction_count == 3
        assert sub.first_transaction_date == date(2025, 2, 15)
        assert sub.last_transaction_date == date(2025, 4, 15)
        assert sub.min_amount == pytest.approx(49.0)
        assert sub.currency == "PLN"
        assert sub.is_active is True

    def test_lapsed_series(self):
        txns = _netflix_series()
        tags = RecurrenceTagger().tag(txns)
        subs = build_recurring_subscriptions(txns, tags, now=date(2025, 7, 1))
        assert subs[0].is_active is False

    def test_single_member_group_dropped(self):
        txns = [_txn("x1", "2025-01-01", -10.0, "SOMETHING")]
        subs = build_recurring_subscriptions(txns, [_tag("x1", "g")], now=date(2025, 1, 2))
        assert subs == []

    def test_non_recurring_tags_ignored(self):
        txns = [
            _txn("x1", "2025-01-01", -10.0, "A"),
            _txn("x2", "2025-02-01", -10.0, "A"),
        ]
        tags = [_tag("x1", "g", recurring=False), _tag("x2", "g")]
        assert build_recurring_subscriptions(txns, tags, now=date(2025, 2, 2)) == []

    def test_rows_without_id_rejected(self):
        txns = [
            {"date": f"2025-0{m}-10", "amount": -59.0, "description": "NETFLIX PREMIUM PLAN"}
            for m in (1, 2, 3, 4)
        ]
        with pytest.raises(ValueError, match="missing an id"):
            RecurrenceTagger().tag(txns)
        with pytest.raises(ValueError, match="missing an id"):
            build_recurring_subscriptions(txns, [], now=date(2025, 5, 1))

    def test_duplicate_ids_rejected(self):
        txns = [
            _txn("dup", "2025-02-10", -59.0, "NETFLIX PREMIUM PLAN"),
            _txn("dup", "2025-03-10", -59.0, "NETFLIX PREMIUM PLAN"),
        ]
        with pytest.raises(ValueError, match="Duplicate transaction id"):
            build_recurring_subscriptions(txns, [_tag("dup", "g")], now=date(2025, 4, 1))

    def test_members_keep_their_own_dates(self):
        txns = [
            _txn(f"p{m}", f"2025-0{m}-10", -59.0, "NETFLIX PREMIUM PLAN") for m in (1, 2, 3, 4)
        ]
        tags = RecurrenceTagger().tag(txns)
        sub = build_recurring_subscriptions(txns, tags, now=date(2025, 5, 1))[0]
        assert sub.first_transaction_date == date(2025, 2, 10)
        assert sub.last_transaction_date == date(2025, 4, 10)
        assert sub.transaction_count == 3

    def test_amount_range_and_first_transaction_fields(self):
        txns = [
            _txn("x2", "2025-02-01", "-12,50 zł", "HOSTING", currency="EUR", counterparty_name="Host Co"),
            _txn("x1", "2025-01-01", -10.0, "HOSTING VPS", currency="EUR", counterparty_name="Host Ltd"),
        ]
        tags = [_tag("x1", "g"), _tag("x2", "g")]
        sub = build_recurring_subscriptions(txns, tags, now=date(2025, 2, 2))[0]
        assert sub.min_amount == pytest.approx(10.0)
        assert sub.max_amount == pytest.approx(12.5)
        assert sub.description == "HOSTING VPS"
        assert sub.counterparty_name == "Host Ltd"
        assert sub.currency == "EUR"

    def test_sorted_active_first_then_recency(self):
        txns = [
            _txn("a1", "2025-01-01", -1.0, "A"), _txn("a2", "2025-02-01", -1.0, "A"),
            _txn("b1", "2025-05-01", -1.0, "B"), _txn("b2", "2025-06-01", -1.0, "B"),
            _txn("c1", "2024-01-01", -1.0, "C"), _txn("c2", "2025-01-01", -1.0, "C"),
        ]
        tags = [
            _tag("a1", "A"), _tag("a2", "A"),
            _tag("b1", "B"), _tag("b2", "B"),
            _tag("c1", "C", pattern="yearly"), _tag("c2", "C", pattern="yearly"),
        ]
        subs = build_recurring_subscriptions(txns, tags, now=date(2025, 6, 10))
        # B monthly active, C yearly active, A monthly lapsed
        assert [s.group_id for s in subs] == ["B", "C", "A"]
        assert [s.is_active for s in subs] == [True, True, False]


# =============================================================================
# PIPELINE
# =============================================================================

class TestRecurringPipeline:
    def test_run_recurring(self):
        output = SubscriptionPipeline().run_recurring(_netflix_series(), now=date(2025, 5, 1))
        assert list(output.columns) == RECURRING_COLUMNS
        assert len(output) == 1
        assert output.iloc[0]["group_id"] == "netflix subscription_49.00"
        assert output.iloc[0]["last_transaction_date"] == "2025-04-15"

    def test_run_recurring_empty(self):
        output = SubscriptionPipeline().run_recurring([], now=date(2025, 5, 1))
        assert len(output) == 0
        assert list(output.columns) == RECURRING_COLUMNS
