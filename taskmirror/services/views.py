"""Derived views over mirrored rows.

Pure functions: they never mutate their input and never return soft-deleted
rows. ``today`` defaults to the local calendar day; pass it explicitly to get
stable results.
"""

from collections.abc import Iterable
from datetime import date
from enum import StrEnum

from taskmirror.domain.goal import Goal
from taskmirror.domain.project import KanbanColumn
from taskmirror.domain.task import Task


class TaskFilter(StrEnum):
    """Dashboard task tabs."""

    TODAY = "today"
    UPCOMING = "upcoming"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    ALL = "all"


class GoalFilter(StrEnum):
    """Goal tabs."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ALL = "all"


class DueBucket(StrEnum):
    """Where a due date falls relative to today."""

    OVERDUE = "overdue"
    TODAY = "today"
    UPCOMING = "upcoming"


def _live(rows: Iterable[Task]) -> list[Task]:
    return [row for row in rows if row.deleted_at is None]


def due_bucket(task: Task, today: date | None = None) -> DueBucket | None:
    """Return the bucket of a task's due date, or None if it has none.

    Every task with a due date lands in exactly one bucket, whatever its status.
    """
    if task.due_date is None:
        return None
    today = today or date.today()
    if task.due_date < today:
        return DueBucket.OVERDUE
    if task.due_date == today:
        return DueBucket.TODAY
    return DueBucket.UPCOMING


def filter_tasks(tasks: Iterable[Task], task_filter: TaskFilter | str, today: date | None = None) -> list[Task]:
    """Return the tasks shown under a dashboard tab, in input order."""
    task_filter = TaskFilter(task_filter)
    today = today or date.today()
    live = _live(tasks)

    if task_filter is TaskFilter.ALL:
        return live
    if task_filter is TaskFilter.COMPLETED:
        return [task for task in live if task.is_completed]
    if task_filter is TaskFilter.OVERDUE:
        return [task for task in live if due_bucket(task, today) is DueBucket.OVERDUE and not task.is_completed]
    bucket = DueBucket(task_filter.value)
    return [task for task in live if due_bucket(task, today) is bucket]


def is_goal_active(goal: Goal, today: date | None = None) -> bool:
    today = today or date.today()
    return not goal.is_completed and (goal.end_date is None or goal.end_date >= today)


def filter_goals(goals: Iterable[Goal], goal_filter: GoalFilter | str, today: date | None = None) -> list[Goal]:
    """Return the goals shown under a goal tab, in input order."""
    goal_filter = GoalFilter(goal_filter)
    live = [goal for goal in goals if goal.deleted_at is None]

    if goal_filter is GoalFilter.ACTIVE:
        return [goal for goal in live if is_goal_active(goal, today)]
    if goal_filter is GoalFilter.COMPLETED:
        return [goal for goal in live if goal.is_completed]
    return live


def tasks_for_column(tasks: Iterable[Task], column: KanbanColumn) -> list[Task]:
    """Tasks whose status places them in ``column``."""
    return [task for task in _live(tasks) if task.status == column.status]


def group_tasks_by_column(tasks: Iterable[Task], columns: Iterable[KanbanColumn]) -> dict[str, list[Task]]:
    """Map column id -> tasks, columns in position order.

    Tasks whose status matches no column are left out.
    """
    live = _live(tasks)
    ordered = sorted(columns, key=lambda column: column.position)
    return {column.id: tasks_for_column(live, column) for column in ordered}


def unplaced_tasks(tasks: Iterable[Task], columns: Iterable[KanbanColumn]) -> list[Task]:
    """Tasks whose status matches no column on the board."""
    statuses = {column.status for column in columns}
    return [task for task in _live(tasks) if task.status not in statuses]
