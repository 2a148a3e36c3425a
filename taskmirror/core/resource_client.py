"""Table-scoped resource client over the PocketBase wrapper.

A ResourceClient binds one collection name to the module-level operations in
``db_client`` and adds the soft-delete helpers and scoped realtime
subscriptions that the mirror stores rely on.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from taskmirror.core import db_client
from taskmirror.core.db_client import ChangeEvent, Unsubscribe


logger = logging.getLogger(__name__)


def format_timestamp(moment: datetime) -> str:
    """Render a datetime the way PocketBase stores it (UTC, space separator, milliseconds)."""
    moment = moment.astimezone(UTC)
    return f"{moment:%Y-%m-%d %H:%M:%S}.{moment.microsecond // 1000:03d}Z"


def utc_now_timestamp() -> str:
    return format_timestamp(datetime.now(UTC))


def eq(field: str, value: str | int | bool | None) -> str:
    """Build an equality filter clause (None matches an empty/null field)."""
    if isinstance(value, bool):
        return f"{field} = {str(value).lower()}"
    return f'{field} = "{db_client.sanitize_param(value)}"'


def ne(field: str, value: str | None) -> str:
    """Build an inequality filter clause."""
    return f'{field} != "{db_client.sanitize_param(value)}"'


def gte(field: str, value: str | datetime) -> str:
    """Build a greater-or-equal filter clause.

    PocketBase compares datetime fields as text, so datetimes are rendered in its
    storage format before comparing.
    """
    if isinstance(value, datetime):
        value = format_timestamp(value)
    return f'{field} >= "{db_client.sanitize_param(value)}"'


def like(field: str, value: str) -> str:
    """Build a case-insensitive substring filter clause."""
    return f'{field} ~ "{db_client.sanitize_param(value)}"'


def and_(*clauses: str) -> str:
    """Join non-empty filter clauses with &&."""
    return " && ".join(clause for clause in clauses if clause)


def or_(*clauses: str) -> str:
    """Join filter clauses into a parenthesized || group."""
    parts = [clause for clause in clauses if clause]
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    return f"({' || '.join(parts)})"


class SubscriptionScope(BaseModel):
    """Which change events a listener cares about: a table, optionally narrowed to one column value."""

    collection: str
    field: str | None = None
    value: str | None = None

    def matches(self, event: ChangeEvent) -> bool:
        """Return True if the event belongs to this scope."""
        if event.collection != self.collection:
            return False
        if self.field is None:
            return True
        return str(event.record.get(self.field) or "") == (self.value or "")


class Subscription:
    """Handle for one live listener; ``close()`` is idempotent."""

    def __init__(self, *, scope: SubscriptionScope, unsubscribe: Unsubscribe) -> None:
        self.scope = scope
        self._unsubscribe = unsubscribe
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._unsubscribe()


class ResourceClient:
    """CRUD and subscription operations for a single collection."""

    def __init__(self, collection: str) -> None:
        self.collection = collection

    def __repr__(self) -> str:
        return f"ResourceClient({self.collection!r})"

    async def list(self, *, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
        """Return every row matching the filter, in backend order."""
        return await db_client.list_all_records(collection=self.collection, filter_query=filter_query, sort=sort)

    async def get(self, record_id: str) -> dict[str, Any]:
        return await db_client.get_record(collection=self.collection, record_id=record_id)

    async def first(self, filter_query: str) -> dict[str, Any] | None:
        return await db_client.get_first_record(collection=self.collection, filter_query=filter_query)

    async def insert(self, data: dict[str, Any]) -> dict[str, Any]:
        return await db_client.create_record(collection=self.collection, data=data)

    async def update(self, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return await db_client.update_record(collection=self.collection, record_id=record_id, data=data)

    async def soft_delete(self, record_id: str) -> dict[str, Any]:
        """Mark a row deleted by stamping deleted_at."""
        return await self.update(record_id, {"deleted_at": utc_now_timestamp()})

    async def restore(self, record_id: str) -> dict[str, Any]:
        """Clear a row's deleted_at stamp."""
        return await self.update(record_id, {"deleted_at": None})

    async def delete(self, record_id: str) -> None:
        await db_client.delete_record(collection=self.collection, record_id=record_id)

    async def delete_where(self, filter_query: str) -> int:
        return await db_client.delete_records(collection=self.collection, filter_query=filter_query)

    async def subscribe(
        self,
        scope: SubscriptionScope,
        on_change: Callable[[ChangeEvent], None],
    ) -> Subscription:
        """Listen for changes in ``scope``; events outside it never reach ``on_change``."""
        if scope.collection != self.collection:
            msg = f"Scope collection {scope.collection!r} does not match client collection {self.collection!r}"
            raise ValueError(msg)

        def _filtered(event: ChangeEvent) -> None:
            if scope.matches(event):
                on_change(event)

        unsubscribe = await db_client.subscribe(collection=self.collection, callback=_filtered)
        return Subscription(scope=scope, unsubscribe=unsubscribe)
