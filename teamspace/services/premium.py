"""
Premium-status evaluation.

One authoritative rule decides whether a subscription grants paid-feature
access. Model properties, entitlement checks and the diagnostic endpoint
all go through ``evaluate_premium``.

The grace boundary is ``canceled_at`` (the moment cancellation was
requested), not ``current_period_end``. A scheduled cancellation therefore
ends access as soon as ``canceled_at`` is in the past.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from teamspace.utils.dates import utcnow

PREMIUM_STATUSES = frozenset({'active', 'trialing', 'past_due'})


@dataclass(frozen=True)
class PremiumEvaluation:
    """Breakdown of the premium decision, exposed by the diagnostic endpoint."""
    is_premium_status: bool
    is_cancel_programmed: bool
    is_grace_period_valid: bool

    @property
    def is_active_premium(self) -> bool:
        return (self.is_premium_status or self.is_cancel_programmed) and self.is_grace_period_valid

    def to_dict(self):
        data = asdict(self)
        data['is_active_premium'] = self.is_active_premium
        return data


def _status_value(status) -> Optional[str]:
    # Accepts SubscriptionStatus members or raw strings
    if status is None:
        return None
    return getattr(status, 'value', status)


def evaluate_premium(
    status,
    cancel_at_period_end: Optional[bool],
    canceled_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> PremiumEvaluation:
    """
    Evaluate premium access from persisted subscription fields.

    Args:
        status: Internal status (enum member or string)
        cancel_at_period_end: Whether a cancellation is scheduled
        canceled_at: When cancellation was requested (naive UTC), or None
        now: Evaluation time, defaults to current UTC time

    Returns:
        PremiumEvaluation with each intermediate flag
    """
    if now is None:
        now = utcnow()
    return PremiumEvaluation(
        is_premium_status=_status_value(status) in PREMIUM_STATUSES,
        is_cancel_programmed=cancel_at_period_end is True,
        is_grace_period_valid=canceled_at is None or now < canceled_at,
    )


def is_active_premium(status, cancel_at_period_end, canceled_at, now=None) -> bool:
    """Shortcut returning only the final boolean."""
    return evaluate_premium(status, cancel_at_period_end, canceled_at, now).is_active_premium
