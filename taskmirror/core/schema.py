"""PocketBase schema management (code-first approach)."""

import logging
from typing import Any

import httpx
from pocketbase import PocketBase
from pocketbase.client import ClientResponseError

from taskmirror.core.config import Constants, settings


logger = logging.getLogger(__name__)


# Creation order matters: relation fields need the ids of collections created before them.
COLLECTIONS = [
    "users",
    "profiles",
    "user_settings",
    "projects",
    "kanban_columns",
    "project_members",
    "goals",
    "tasks",
    "trash_items",
    "coupons",
    "user_coupons",
    "levels",
    "user_stats",
    "achievements",
    "user_achievements",
    "badges",
    "user_badges",
]

# API rule keys that can be set on collections
_API_RULE_KEYS = ("listRule", "viewRule", "createRule", "updateRule", "deleteRule")

_OWNER_RULE = "user_id = @request.auth.id"
_SIGNED_IN_RULE = '@request.auth.id != ""'
_PROJECT_ACCESS_RULE = (
    "owner_id = @request.auth.id || "
    "(@collection.project_members.project_id ?= id && @collection.project_members.user_id ?= @request.auth.id)"
)
_CONDITION_TYPES = ["tasks_completed", "streak", "projects_completed"]


def _text(name: str, *, required: bool = False) -> dict[str, Any]:
    return {"name": name, "type": "text", "required": required}


def _number(name: str, *, required: bool = False, min_value: float | None = None) -> dict[str, Any]:
    field: dict[str, Any] = {"name": name, "type": "number", "required": required}
    if min_value is not None:
        field["min"] = min_value
    return field


def _bool(name: str) -> dict[str, Any]:
    # required=False: PocketBase rejects False on required bool fields
    return {"name": name, "type": "bool", "required": False}


def _date(name: str, *, required: bool = False) -> dict[str, Any]:
    return {"name": name, "type": "date", "required": required}


def _json(name: str) -> dict[str, Any]:
    return {"name": name, "type": "json", "required": False}


def _select(name: str, values: list[str], *, required: bool = False) -> dict[str, Any]:
    return {"name": name, "type": "select", "required": required, "values": values, "maxSelect": 1}


def _relation(name: str, target_id: str, *, required: bool = False, cascade: bool = False) -> dict[str, Any]:
    return {
        "name": name,
        "type": "relation",
        "required": required,
        "collectionId": target_id,
        "maxSelect": 1,
        "cascadeDelete": cascade,
    }


def _timestamps() -> list[dict[str, Any]]:
    return [
        {"name": "created_at", "type": "autodate", "onCreate": True, "onUpdate": False},
        {"name": "updated_at", "type": "autodate", "onCreate": True, "onUpdate": True},
    ]


def _base(
    name: str,
    fields: list[dict[str, Any]],
    *,
    rule: str | None,
    list_rule: str | None = None,
    indexes: list[str] | None = None,
) -> dict[str, Any]:
    """Build a base collection whose five API rules default to ``rule``."""
    return {
        "name": name,
        "type": "base",
        "system": False,
        "listRule": rule if list_rule is None else list_rule,
        "viewRule": rule if list_rule is None else list_rule,
        "createRule": rule if rule is None else _SIGNED_IN_RULE,
        "updateRule": rule,
        "deleteRule": rule,
        "fields": [*fields, *_timestamps()],
        "indexes": indexes or [],
    }


def _get_collection_schema(
    *,
    collection_name: str,
    collection_ids: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Get the expected schema for a collection.

    PocketBase v0.22+ uses flattened 'fields' and needs actual collection ids in
    relation fields; until a collection has been created its name stands in.
    """
    ids = collection_ids or {}

    def ref(target: str) -> str:
        return ids.get(target, target)

    schemas: dict[str, dict[str, Any]] = {
        "users": {
            "name": "users",
            "type": "auth",
            "system": False,
            "listRule": "id = @request.auth.id",
            "viewRule": "id = @request.auth.id",
            "createRule": "",
            "updateRule": "id = @request.auth.id",
            "deleteRule": None,
            "fields": [_text("name")],
        },
        "profiles": _base(
            "profiles",
            [
                _relation("user_id", ref("users"), required=True, cascade=True),
                _text("full_name"),
                _text("avatar_url"),
                _select("plan_status", ["trial", "basic", "pro", "enterprise"]),
                _date("trial_ends_at"),
            ],
            rule=_OWNER_RULE,
            list_rule=_SIGNED_IN_RULE,
            indexes=["CREATE UNIQUE INDEX idx_profiles_user ON profiles (user_id)"],
        ),
        "user_settings": _base(
            "user_settings",
            [
                _relation("user_id", ref("users"), required=True, cascade=True),
                _bool("email_notifications"),
                _bool("push_notifications"),
                _bool("task_reminders"),
                _bool("task_deadline_notifications"),
                _bool("goal_reminder_notifications"),
                _bool("project_updates"),
                _bool("project_update_notifications"),
                _text("reminder_time"),
                _bool("security_two_factor"),
                _bool("security_login_alerts"),
                _bool("security_activity_log"),
            ],
            rule=_OWNER_RULE,
            indexes=["CREATE UNIQUE INDEX idx_user_settings_user ON user_settings (user_id)"],
        ),
        "projects": _base(
            "projects",
            [
                _text("name", required=True),
                _text("description"),
                _relation("owner_id", ref("users"), required=True),
                _select("priority", ["low", "medium", "high"]),
                _date("start_date"),
                _date("end_date"),
                _bool("is_indefinite"),
                _date("deleted_at"),
            ],
            rule="owner_id = @request.auth.id",
            list_rule=_PROJECT_ACCESS_RULE,
        ),
        "kanban_columns": _base(
            "kanban_columns",
            [
                _relation("project_id", ref("projects"), required=True, cascade=True),
                _text("title", required=True),
                _text("color"),
                _number("position", required=False, min_value=0),
                _text("status_key"),
            ],
            rule=_SIGNED_IN_RULE,
            indexes=["CREATE UNIQUE INDEX idx_kanban_position ON kanban_columns (project_id, position)"],
        ),
        "project_members": _base(
            "project_members",
            [
                _relation("project_id", ref("projects"), required=True, cascade=True),
                _relation("user_id", ref("users"), required=True, cascade=True),
                _select("role", ["admin", "member"], required=True),
            ],
            rule=_SIGNED_IN_RULE,
            indexes=["CREATE UNIQUE INDEX idx_project_member ON project_members (project_id, user_id)"],
        ),
        "goals": _base(
            "goals",
            [
                _relation("user_id", ref("users"), required=True),
                _text("title", required=True),
                _text("description"),
                _select("priority", ["low", "medium", "high"]),
                _date("start_date"),
                _date("end_date"),
                _number("target_value", required=True, min_value=1),
                _number("current_value", min_value=0),
                _json("project_ids"),
                _json("task_ids"),
                _date("deleted_at"),
            ],
            rule=_OWNER_RULE,
        ),
        "tasks": _base(
            "tasks",
            [
                _relation("user_id", ref("users"), required=True),
                _text("title", required=True),
                _text("description"),
                _text("status", required=True),
                _select("priority", ["low", "medium", "high"], required=True),
                _date("start_date"),
                _date("due_date"),
                _bool("is_indefinite"),
                _relation("project_id", ref("projects")),
                _relation("responsible_id", ref("users")),
                _json("tags"),
                _json("goal_ids"),
                _select("notification_type", ["none", "email", "push"]),
                _select("notification_frequency", ["once", "daily", "weekly"]),
                _text("notification_time"),
                _json("notification_days"),
                _date("deleted_at"),
            ],
            rule=f"{_OWNER_RULE} || project_id.owner_id = @request.auth.id",
            indexes=[
                "CREATE INDEX idx_tasks_user ON tasks (user_id)",
                "CREATE INDEX idx_tasks_project ON tasks (project_id)",
            ],
        ),
        "trash_items": _base(
            "trash_items",
            [
                _relation("user_id", ref("users"), required=True, cascade=True),
                _select("item_type", ["task", "project", "goal"], required=True),
                _text("item_id", required=True),
                _json("item_data"),
                _date("deleted_at", required=True),
                _date("expires_at", required=True),
                _select("status", ["pending", "confirmed"], required=True),
            ],
            rule=_OWNER_RULE,
            indexes=["CREATE INDEX idx_trash_user ON trash_items (user_id)"],
        ),
        "coupons": _base(
            "coupons",
            [
                _text("code", required=True),
                _number("discount_percent", min_value=0),
                _bool("is_free_month"),
                _bool("is_permanent"),
                _number("max_uses", min_value=0),
                _number("current_uses", min_value=0),
                _date("expires_at"),
            ],
            # Redemption bumps current_uses
            rule=_SIGNED_IN_RULE,
            indexes=["CREATE UNIQUE INDEX idx_coupon_code ON coupons (code)"],
        ),
        "user_coupons": _base(
            "user_coupons",
            [
                _relation("user_id", ref("users"), required=True, cascade=True),
                _text("coupon_code", required=True),
                _date("expires_at"),
                _bool("is_active"),
            ],
            rule=_OWNER_RULE,
            indexes=["CREATE UNIQUE INDEX idx_user_coupon ON user_coupons (user_id, coupon_code)"],
        ),
        "levels": _base(
            "levels",
            [
                _number("level", required=True, min_value=1),
                _number("xp_required", min_value=0),
                _text("title"),
                _json("rewards"),
            ],
            rule=None,
            list_rule="",
            indexes=["CREATE UNIQUE INDEX idx_level ON levels (level)"],
        ),
        "user_stats": _base(
            "user_stats",
            [
                _relation("user_id", ref("users"), required=True, cascade=True),
                _number("level", min_value=1),
                _number("xp", min_value=0),
                _number("streak", min_value=0),
                _number("tasks_completed", min_value=0),
                _number("projects_completed", min_value=0),
                _date("last_activity_date"),
            ],
            rule=_OWNER_RULE,
            indexes=["CREATE UNIQUE INDEX idx_user_stats_user ON user_stats (user_id)"],
        ),
        "achievements": _base(
            "achievements",
            [
                _text("title", required=True),
                _text("description"),
                _text("category"),
                _text("icon"),
                _number("xp_reward", min_value=0),
                _select("condition_type", _CONDITION_TYPES, required=True),
                _number("condition_value", min_value=0),
            ],
            rule=None,
            list_rule="",
        ),
        "user_achievements": _base(
            "user_achievements",
            [
                _relation("user_id", ref("users"), required=True, cascade=True),
                _relation("achievement_id", ref("achievements"), required=True, cascade=True),
                _date("unlocked_at"),
            ],
            rule=_OWNER_RULE,
            indexes=["CREATE UNIQUE INDEX idx_user_achievement ON user_achievements (user_id, achievement_id)"],
        ),
        "badges": _base(
            "badges",
            [
                _text("title", required=True),
                _text("description"),
                _text("icon"),
                _select("rarity", ["common", "rare", "epic", "legendary"]),
                _select("condition_type", _CONDITION_TYPES),
                _number("condition_value", min_value=0),
            ],
            rule=None,
            list_rule="",
        ),
        "user_badges": _base(
            "user_badges",
            [
                _relation("user_id", ref("users"), required=True, cascade=True),
                _relation("badge_id", ref("badges"), required=True, cascade=True),
                _date("unlocked_at"),
            ],
            rule=_OWNER_RULE,
            indexes=["CREATE UNIQUE INDEX idx_user_badge ON user_badges (user_id, badge_id)"],
        ),
    }
    return schemas[collection_name]


def diff_collection(schema: dict[str, Any], current: dict[str, Any]) -> dict[str, Any] | None:
    """Build the PATCH payload that brings ``current`` in line with ``schema``.

    Existing fields not named in the schema are kept (auth collections carry
    built-in fields). Returns None when nothing needs changing.
    """
    desired = {field["name"]: field for field in schema.get("fields", [])}
    existing = {field["name"]: field for field in current.get("fields", [])}

    fields = [desired.get(name, field) for name, field in existing.items()]
    added = [field for name, field in desired.items() if name not in existing]
    fields.extend(added)
    changed = [name for name, field in desired.items() if name in existing and _field_differs(field, existing[name])]

    rules = {key: schema[key] for key in _API_RULE_KEYS if key in schema and schema[key] != current.get(key)}

    current_indexes = list(current.get("indexes", []))
    new_indexes = [index for index in schema.get("indexes", []) if index not in current_indexes]

    if not added and not changed and not rules and not new_indexes:
        return None

    payload: dict[str, Any] = {"fields": fields, **rules}
    if new_indexes:
        payload["indexes"] = current_indexes + new_indexes
    return payload


def _field_differs(desired: dict[str, Any], existing: dict[str, Any]) -> bool:
    return any(existing.get(key) != value for key, value in desired.items())


async def _fetch_collection(*, client: httpx.AsyncClient, collection_name: str) -> dict[str, Any] | None:
    """Return the collection definition, or None if it does not exist."""
    response = await client.get(f"/api/collections/{collection_name}")
    if response.status_code == Constants.HTTP_NOT_FOUND:
        return None
    response.raise_for_status()
    return response.json()


async def _sync_collection(*, client: httpx.AsyncClient, schema: dict[str, Any]) -> str:
    """Create or update one collection and return its id."""
    name = schema["name"]
    current = await _fetch_collection(client=client, collection_name=name)

    if current is None:
        response = await client.post("/api/collections", json=schema)
        response.raise_for_status()
        logger.info("Created collection", extra={"collection": name})
        return response.json()["id"]

    payload = diff_collection(schema, current)
    if payload is None:
        logger.info("Collection schema is already up to date", extra={"collection": name})
        return current["id"]

    response = await client.patch(f"/api/collections/{name}", json=payload)
    response.raise_for_status()
    logger.info("Updated collection", extra={"collection": name, "changes": sorted(payload)})
    return current["id"]


async def sync_schema(
    pocketbase_url: str | None = None,
    admin_email: str = "admin@test.local",
    admin_password: str = "testpassword123",  # noqa: S107
) -> dict[str, str]:
    """Sync the PocketBase schema with the collection definitions (idempotent).

    Args:
        pocketbase_url: Optional PocketBase URL. If not provided, uses settings.pocketbase_url.
        admin_email: Admin email for authentication (default for tests).
        admin_password: Admin password for authentication (default for tests).

    Returns:
        Mapping of collection name to collection id
    """
    logger.info("Starting PocketBase schema sync")

    url = pocketbase_url or settings.pocketbase_url
    client = PocketBase(url)

    try:
        client.admins.auth_with_password(admin_email, admin_password)
    except ClientResponseError as e:
        logger.error("Failed to authenticate as admin", extra={"error": str(e)})
        raise

    collection_ids: dict[str, str] = {}
    async with httpx.AsyncClient(base_url=url, timeout=Constants.API_TIMEOUT_SECONDS) as http_client:
        http_client.headers["Authorization"] = f"Bearer {client.auth_store.token}"
        for collection_name in COLLECTIONS:
            schema = _get_collection_schema(collection_name=collection_name, collection_ids=collection_ids)
            collection_ids[collection_name] = await _sync_collection(client=http_client, schema=schema)

    logger.info("PocketBase schema sync complete", extra={"collections": len(collection_ids)})
    return collection_ids
