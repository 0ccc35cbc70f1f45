"""Booking policy rules."""

from .cancellation import (
    DEFAULT_POLICY,
    CancellationPolicy,
    RefundDecision,
    calculate_refund,
    can_cancel_now,
    parse_policy_text,
    resolve_policy,
)

__all__ = [
    "DEFAULT_POLICY",
    "CancellationPolicy",
    "RefundDecision",
    "calculate_refund",
    "can_cancel_now",
    "parse_policy_text",
    "resolve_policy",
]
