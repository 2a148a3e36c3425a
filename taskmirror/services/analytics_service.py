"""Analytics service for task statistics.

This module provides functions for:
- Fetching the tasks created within a period (week, month or year)
- Bucketing them over time (7 days, 4 weeks or 12 months)
- Breaking them down by priority, status and hour of creation
- Computing the completion streak

Key Concepts:
- Scope: personal tasks (no project), one project's tasks, or ``"all"``.
- Buckets are computed relative to ``now``. Pass a fixed ``now`` to get
  stable results across calls.
- Streak: consecutive days, ending today, on which at least one task was
  completed (looking back at most 30 days).
"""

import logging
from collections import Counter
from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum

from pydantic import ValidationError

from taskmirror.core import db_client
from taskmirror.core.config import Constants
from taskmirror.core.errors import SyncError
from taskmirror.core.logging import span
from taskmirror.core.resource_client import and_, eq, gte
from taskmirror.domain.task import Task, TaskPriority, TaskStatus
from taskmirror.models.service_models import (
    AnalyticsReport,
    AnalyticsStats,
    HourCount,
    PriorityCount,
    StatusBreakdown,
    SyncResult,
    TimeBucket,
)


logger = logging.getLogger(__name__)

ALL_PROJECTS = "all"
WEEKS_IN_MONTH_VIEW = 4
MONTHS_IN_YEAR_VIEW = 12


class AnalyticsPeriod(StrEnum):
    """Reporting window."""

    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def months_ago(moment: datetime, months: int) -> datetime:
    """Shift back by whole calendar months, clamping the day to the target month's length."""
    month_index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    next_month = date(year + month // 12, month % 12 + 1, 1)
    last_day = (next_month - timedelta(days=1)).day
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def period_start(period: AnalyticsPeriod, now: datetime) -> datetime:
    if period is AnalyticsPeriod.WEEK:
        return now - timedelta(days=7)
    if period is AnalyticsPeriod.MONTH:
        return months_ago(now, 1)
    return months_ago(now, 12)


def _local(moment: datetime | None, now: datetime) -> datetime | None:
    if moment is None:
        return None
    return moment.astimezone(now.tzinfo) if now.tzinfo else moment


def _parse_tasks(rows: list[dict]) -> list[Task]:
    tasks = []
    for row in rows:
        try:
            tasks.append(Task.model_validate(row))
        except ValidationError as e:
            logger.warning("Skipping malformed task %s: %s", row.get("id"), e)
    return tasks


async def get_tasks_for_period(
    *,
    user_id: str,
    period: AnalyticsPeriod,
    project_id: str | None = None,
    now: datetime | None = None,
) -> list[Task]:
    """Fetch the user's live tasks created since the start of the period.

    Args:
        user_id: Owner of the tasks
        period: Reporting window
        project_id: None for personal tasks, a project id, or "all" for every task
        now: Reference time (default: current UTC time)

    Returns:
        List of Task objects
    """
    with span("analytics_service.get_tasks_for_period"):
        now = now or datetime.now(UTC)
        clauses = [
            eq("user_id", user_id),
            eq("deleted_at", None),
            gte("created_at", period_start(period, now)),
        ]
        if project_id != ALL_PROJECTS:
            clauses.append(eq("project_id", project_id))

        rows = await db_client.list_all_records(collection="tasks", filter_query=and_(*clauses), sort="created_at")
        return _parse_tasks(rows)


def _bucket(label: str, start: datetime, end: datetime, tasks: list[Task]) -> TimeBucket:
    completed = sum(1 for task in tasks if task.is_completed)
    return TimeBucket(label=label, start=start, end=end, completed=completed, pending=len(tasks) - completed)


def tasks_over_time(tasks: Iterable[Task], period: AnalyticsPeriod, now: datetime) -> list[TimeBucket]:
    """Completed vs. pending tasks by creation date, oldest bucket first.

    Week: the last 7 calendar days (labelled by ISO date). Month: the last 4
    rolling 7-day windows ("Week 1".."Week 4"). Year: the last 12 calendar
    months (labelled YYYY-MM).
    """
    dated = [(task, _local(task.created_at, now)) for task in tasks if task.created_at is not None]
    buckets: list[TimeBucket] = []

    if period is AnalyticsPeriod.WEEK:
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        for offset in range(6, -1, -1):
            start = midnight - timedelta(days=offset)
            end = start + timedelta(days=1)
            in_day = [task for task, created in dated if created and start <= created < end]
            buckets.append(_bucket(start.date().isoformat(), start, end, in_day))
    elif period is AnalyticsPeriod.MONTH:
        for offset in range(WEEKS_IN_MONTH_VIEW - 1, -1, -1):
            start = now - timedelta(days=(offset + 1) * 7)
            end = now - timedelta(days=offset * 7)
            in_week = [task for task, created in dated if created and start <= created < end]
            buckets.append(_bucket(f"Week {WEEKS_IN_MONTH_VIEW - offset}", start, end, in_week))
    else:
        first_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        for offset in range(MONTHS_IN_YEAR_VIEW - 1, -1, -1):
            start = months_ago(first_of_month, offset)
            end = months_ago(first_of_month, offset - 1)
            in_month = [task for task, created in dated if created and start <= created < end]
            buckets.append(_bucket(f"{start.year:04d}-{start.month:02d}", start, end, in_month))

    return buckets


def tasks_by_priority(tasks: Iterable[Task]) -> list[PriorityCount]:
    """Task counts for high, medium and low priority (in that order)."""
    counts = Counter(task.priority for task in tasks)
    return [
        PriorityCount(priority=priority, count=counts.get(priority, 0))
        for priority in (TaskPriority.HIGH, TaskPriority.MEDIUM, TaskPriority.LOW)
    ]


def tasks_by_status(tasks: Iterable[Task], today: date) -> StatusBreakdown:
    """Completed, overdue (due before today and not completed) and pending counts."""
    completed = overdue = pending = 0
    for task in tasks:
        if task.is_completed:
            completed += 1
        elif task.due_date is not None and task.due_date < today:
            overdue += 1
        else:
            pending += 1
    return StatusBreakdown(completed=completed, pending=pending, overdue=overdue)


def tasks_by_hour(tasks: Iterable[Task], now: datetime) -> list[HourCount]:
    """Tasks created per hour of day, only hours with activity, in hour order."""
    counts: Counter[int] = Counter()
    for task in tasks:
        created = _local(task.created_at, now)
        if created is not None:
            counts[created.hour] += 1
    return [HourCount(hour=f"{hour:02d}:00", count=counts[hour]) for hour in sorted(counts)]


def completion_streak(completion_days: set[date], today: date) -> int:
    """Count consecutive days ending today that appear in ``completion_days``."""
    streak = 0
    for offset in range(Constants.STREAK_LOOKBACK_DAYS):
        if today - timedelta(days=offset) not in completion_days:
            break
        streak += 1
    return streak


async def calculate_streak(*, user_id: str, now: datetime | None = None) -> int:
    """Completion streak from tasks completed in the lookback window (by last update)."""
    with span("analytics_service.calculate_streak"):
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(days=Constants.STREAK_LOOKBACK_DAYS)
        rows = await db_client.list_all_records(
            collection="tasks",
            filter_query=and_(
                eq("user_id", user_id),
                eq("status", TaskStatus.COMPLETED),
                eq("deleted_at", None),
                gte("updated_at", cutoff),
            ),
            sort="-updated_at",
        )
        days = set()
        for task in _parse_tasks(rows):
            updated = _local(task.updated_at, now)
            if updated is not None:
                days.add(updated.date())
        return completion_streak(days, now.date())


def summarize(tasks: list[Task], period: AnalyticsPeriod, breakdown: StatusBreakdown, streak: int) -> AnalyticsStats:
    total = len(tasks)
    return AnalyticsStats(
        total_tasks=total,
        completed_tasks=breakdown.completed,
        pending_tasks=breakdown.pending + breakdown.overdue,
        completion_rate=(breakdown.completed / total * 100) if total > 0 else 0.0,
        average_tasks_per_day=total / Constants.DAYS_IN_PERIOD[period.value],
        streak=streak,
    )


async def get_analytics(
    *,
    user_id: str | None,
    period: AnalyticsPeriod | str = AnalyticsPeriod.MONTH,
    project_id: str | None = None,
    now: datetime | None = None,
) -> SyncResult[AnalyticsReport]:
    """Build the full analytics report for one period and scope.

    Args:
        user_id: Signed-in user (None short-circuits to an empty success)
        period: Reporting window
        project_id: None for personal tasks, a project id, or "all"
        now: Reference time (default: current UTC time)

    Returns:
        SyncResult carrying an AnalyticsReport
    """
    with span("analytics_service.get_analytics"):
        if user_id is None:
            return SyncResult.success()

        period = AnalyticsPeriod(period)
        now = now or datetime.now(UTC)
        try:
            tasks = await get_tasks_for_period(user_id=user_id, period=period, project_id=project_id, now=now)
            streak = await calculate_streak(user_id=user_id, now=now)
        except SyncError as e:
            logger.warning("Failed to build analytics: %s", e)
            return SyncResult.failure(e)

        breakdown = tasks_by_status(tasks, now.date())
        report = AnalyticsReport(
            period=period.value,
            tasks_over_time=tasks_over_time(tasks, period, now),
            tasks_by_priority=tasks_by_priority(tasks),
            tasks_by_status=breakdown,
            tasks_by_hour=tasks_by_hour(tasks, now),
            stats=summarize(tasks, period, breakdown, streak),
        )
        logger.info(
            "Generated analytics for %s: %d tasks", period.value, len(tasks), extra={"user_id": user_id}
        )
        return SyncResult.success(report)
