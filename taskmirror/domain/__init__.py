"""Domain models and enums."""

from taskmirror.domain.coupon import Coupon, UserCoupon
from taskmirror.domain.gamification import (
    Achievement,
    Badge,
    ConditionType,
    Level,
    UserAchievement,
    UserBadge,
    UserStats,
)
from taskmirror.domain.goal import Goal
from taskmirror.domain.project import KanbanColumn, MemberRole, Project, ProjectMember
from taskmirror.domain.task import NotificationType, Task, TaskPriority, TaskStatus
from taskmirror.domain.trash import TrashItem, TrashItemStatus, TrashItemType
from taskmirror.domain.user import PlanStatus, Profile, UserSettings


__all__ = [
    "Achievement",
    "Badge",
    "ConditionType",
    "Coupon",
    "Goal",
    "KanbanColumn",
    "Level",
    "MemberRole",
    "NotificationType",
    "PlanStatus",
    "Profile",
    "Project",
    "ProjectMember",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "TrashItem",
    "TrashItemStatus",
    "TrashItemType",
    "UserAchievement",
    "UserBadge",
    "UserCoupon",
    "UserSettings",
    "UserStats",
]
