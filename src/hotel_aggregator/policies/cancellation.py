"""Cancellation policy resolution and refund calculation.

Precedence is an admin override, then the provider's policy text, then ``DEFAULT_POLICY``.
Provider text is free-form, so parsing is keyword based and errs on the permissive side.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Union

_HOURS_RE = re.compile(r"(\d+)\s*hours?", re.IGNORECASE)
_DAYS_RE = re.compile(r"(\d+)\s*days?", re.IGNORECASE)
_PERCENT_RE = re.compile(r"(\d+)%\s*refund", re.IGNORECASE)

DEFAULT_DEADLINE_HOURS = 24


@dataclass(frozen=True)
class CancellationPolicy:
    description: str
    source: str
    can_cancel: bool
    refund_percentage: float
    deadline_hours: Optional[int] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "description": self.description,
            "source": self.source,
            "can_cancel": self.can_cancel,
            "refund_percentage": self.refund_percentage,
            "deadline_hours": self.deadline_hours,
        }


@dataclass(frozen=True)
class RefundDecision:
    refund_amount: float
    can_refund: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {"refund_amount": self.refund_amount, "can_refund": self.can_refund, "reason": self.reason}


DEFAULT_POLICY = CancellationPolicy(
    description="Free cancellation up to 24 hours before check-in. No refund after that.",
    source="default",
    can_cancel=True,
    refund_percentage=100,
    deadline_hours=DEFAULT_DEADLINE_HOURS,
)


def parse_policy_text(text: str, source: str = "provider") -> CancellationPolicy:
    lowered = text.lower()
    if "non-refundable" in lowered or "no refund" in lowered:
        return CancellationPolicy(description=text, source=source, can_cancel=False, refund_percentage=0)

    if "free cancellation" in lowered or "100% refund" in lowered:
        hours = _HOURS_RE.search(text)
        days = _DAYS_RE.search(text)
        if hours:
            deadline = int(hours.group(1))
        elif days:
            deadline = int(days.group(1)) * 24
        else:
            deadline = DEFAULT_DEADLINE_HOURS
        return CancellationPolicy(
            description=text,
            source=source,
            can_cancel=True,
            refund_percentage=100,
            deadline_hours=deadline,
        )

    percent = _PERCENT_RE.search(text)
    if percent:
        return CancellationPolicy(
            description=text,
            source=source,
            can_cancel=True,
            refund_percentage=int(percent.group(1)),
        )

    return CancellationPolicy(
        description=text,
        source=source,
        can_cancel=True,
        refund_percentage=100,
        deadline_hours=DEFAULT_DEADLINE_HOURS,
    )


def resolve_policy(
    override: Optional[str] = None,
    provider_policy: Optional[str] = None,
) -> CancellationPolicy:
    if override:
        return parse_policy_text(override, source="override")
    if provider_policy:
        return parse_policy_text(provider_policy, source="provider")
    return DEFAULT_POLICY


def _as_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def _hours_until(check_in: Union[date, datetime], moment: Optional[datetime]) -> float:
    start = _as_datetime(moment) if moment is not None else datetime.now(timezone.utc)
    return (_as_datetime(check_in) - start).total_seconds() / 3600


def calculate_refund(
    policy: CancellationPolicy,
    amount: float,
    check_in: Union[date, datetime],
    cancelled_at: Optional[datetime] = None,
) -> RefundDecision:
    """Refund owed when cancelling at ``cancelled_at`` (defaults to now).

    Naive datetimes and plain dates are taken as UTC; a date means midnight of that day.
    """
    if not policy.can_cancel:
        return RefundDecision(refund_amount=0.0, can_refund=False, reason="Non-refundable booking")
    if policy.deadline_hours and _hours_until(check_in, cancelled_at) < policy.deadline_hours:
        return RefundDecision(
            refund_amount=0.0,
            can_refund=False,
            reason=f"Cancellation deadline passed (must cancel {policy.deadline_hours}hrs before check-in)",
        )
    return RefundDecision(refund_amount=amount * policy.refund_percentage / 100, can_refund=True)


def can_cancel_now(
    policy: CancellationPolicy,
    check_in: Union[date, datetime],
    now: Optional[datetime] = None,
) -> tuple[bool, Optional[str]]:
    if not policy.can_cancel:
        return False, "Non-refundable booking"
    if policy.deadline_hours and _hours_until(check_in, now) < policy.deadline_hours:
        return False, f"Must cancel at least {policy.deadline_hours} hours before check-in"
    return True, None
