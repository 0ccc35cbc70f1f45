from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from hotel_aggregator.policies import (
    DEFAULT_POLICY,
    calculate_refund,
    can_cancel_now,
    parse_policy_text,
    resolve_policy,
)

CHECK_IN = datetime(2030, 6, 10, 15, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("text", "can_cancel", "refund", "deadline"),
    [
        ("Non-refundable, no refund", False, 0, None),
        ("Free cancellation up to 48 hours before check-in", True, 100, 48),
        ("Free cancellation until 3 days before arrival", True, 100, 72),
        ("100% refund if cancelled early", True, 100, 24),
        ("50% refund", True, 50, None),
        ("Contact the property for details", True, 100, 24),
    ],
)
def test_parse_policy_text(text, can_cancel, refund, deadline):
    policy = parse_policy_text(text)

    assert policy.can_cancel is can_cancel
    assert policy.refund_percentage == refund
    assert policy.deadline_hours == deadline
    assert policy.description == text
    assert policy.source == "provider"


def test_resolve_policy_precedence():
    assert resolve_policy() is DEFAULT_POLICY
    assert resolve_policy(provider_policy="Non-refundable").source == "provider"

    chosen = resolve_policy(override="Free cancellation up to 12 hours", provider_policy="Non-refundable")
    assert chosen.source == "override"
    assert chosen.can_cancel
    assert chosen.deadline_hours == 12


def test_refund_inside_deadline_is_refused():
    policy = parse_policy_text("Free cancellation up to 24 hours before check-in")

    decision = calculate_refund(policy, 200.0, CHECK_IN, CHECK_IN - timedelta(hours=10))

    assert decision.refund_amount == 0.0
    assert not decision.can_refund
    assert decision.reason == "Cancellation deadline passed (must cancel 24hrs before check-in)"


def test_refund_before_deadline_is_full():
    policy = parse_policy_text("Free cancellation up to 24 hours before check-in")

    decision = calculate_refund(policy, 200.0, CHECK_IN, CHECK_IN - timedelta(hours=30))

    assert decision.can_refund
    assert decision.refund_amount == 200.0
    assert decision.reason is None


def test_partial_refund_has_no_deadline():
    decision = calculate_refund(parse_policy_text("50% refund"), 200.0, CHECK_IN, CHECK_IN - timedelta(hours=1))

    assert decision.can_refund
    assert decision.refund_amount == 100.0


def test_non_refundable_booking():
    decision = calculate_refund(parse_policy_text("Non-refundable"), 200.0, CHECK_IN, CHECK_IN - timedelta(days=30))

    assert decision.to_dict() == {"refund_amount": 0.0, "can_refund": False, "reason": "Non-refundable booking"}


def test_dates_and_naive_datetimes_are_treated_as_utc():
    # a plain date means midnight UTC of check-in day
    decision = calculate_refund(DEFAULT_POLICY, 100.0, date(2030, 6, 10), datetime(2030, 6, 9, 1, 0))

    assert not decision.can_refund

    allowed = calculate_refund(DEFAULT_POLICY, 100.0, date(2030, 6, 10), datetime(2030, 6, 8, 23, 0))
    assert allowed.refund_amount == 100.0


def test_can_cancel_now():
    assert can_cancel_now(DEFAULT_POLICY, CHECK_IN, CHECK_IN - timedelta(hours=48)) == (True, None)
    assert can_cancel_now(DEFAULT_POLICY, CHECK_IN, CHECK_IN - timedelta(hours=2)) == (
        False,
        "Must cancel at least 24 hours before check-in",
    )
    assert can_cancel_now(parse_policy_text("No refund"), CHECK_IN, CHECK_IN - timedelta(days=5)) == (
        False,
        "Non-refundable booking",
    )
