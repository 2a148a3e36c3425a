"""Free-trial status and reminder notices.

Only profiles on the ``trial`` plan with a ``trial_ends_at`` are considered.
Days remaining are rounded up, so a trial ending later today counts as one
day left.
"""

import math
from datetime import UTC, datetime

from taskmirror.core.config import settings
from taskmirror.domain.user import PlanStatus, Profile
from taskmirror.models.service_models import TrialNotice, TrialStatus


SECONDS_PER_DAY = 24 * 60 * 60


def days_remaining(trial_ends_at: datetime, now: datetime) -> int:
    return math.ceil((trial_ends_at - now).total_seconds() / SECONDS_PER_DAY)


def is_on_trial(profile: Profile | None) -> bool:
    return profile is not None and profile.plan_status is PlanStatus.TRIAL and profile.trial_ends_at is not None


def trial_status(profile: Profile | None, now: datetime | None = None) -> TrialStatus:
    """Where the profile stands in its trial (zeroed when it is not on one)."""
    if not is_on_trial(profile):
        return TrialStatus(on_trial=False, days_remaining=0, is_expired=False, is_expiring=False)

    assert profile is not None and profile.trial_ends_at is not None
    remaining = days_remaining(profile.trial_ends_at, now or datetime.now(UTC))
    return TrialStatus(
        on_trial=True,
        days_remaining=max(remaining, 0),
        is_expired=remaining <= 0,
        is_expiring=0 < remaining <= max(settings.trial_reminder_days, default=0),
        trial_ends_on=profile.trial_ends_at.date(),
    )


def trial_notices(
    profile: Profile | None,
    now: datetime | None = None,
    reminder_days: list[int] | None = None,
) -> list[TrialNotice]:
    """Notices to show right now: a reminder on each reminder day, or an expiry notice.

    Args:
        profile: The user's profile
        now: Reference time (default: current UTC time)
        reminder_days: Days before the end that trigger a reminder
            (default: settings.trial_reminder_days)

    Returns:
        Zero or one notice
    """
    if not is_on_trial(profile):
        return []

    assert profile is not None and profile.trial_ends_at is not None
    remaining = days_remaining(profile.trial_ends_at, now or datetime.now(UTC))
    days = settings.trial_reminder_days if reminder_days is None else reminder_days

    if remaining <= 0:
        return [
            TrialNotice(
                kind="expired",
                title="Trial expired",
                message="Your trial has expired. Upgrade to keep using every feature.",
                days_remaining=0,
                trial_ends_at=profile.trial_ends_at,
            )
        ]
    if remaining in days:
        message = (
            "Last day of your trial! Upgrade to continue."
            if remaining == 1
            else f"Your trial expires in {remaining} days. Consider upgrading."
        )
        return [
            TrialNotice(
                kind="reminder",
                title="Trial reminder",
                message=message,
                days_remaining=remaining,
                trial_ends_at=profile.trial_ends_at,
            )
        ]
    return []
