from taskmirror.services import (
    analytics_service,
    coupon_service,
    gamification_service,
    goal_service,
    profile_service,
    project_service,
    task_service,
    trash_service,
    trial_service,
    views,
)


__all__ = [
    "analytics_service",
    "coupon_service",
    "gamification_service",
    "goal_service",
    "profile_service",
    "project_service",
    "task_service",
    "trash_service",
    "trial_service",
    "views",
]
