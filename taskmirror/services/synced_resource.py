"""A mirrored table: store, realtime subscription and mutations in one object.

Each resource (tasks, goals, projects, trash, ...) is a ``SyncedResource``
configured by a ``ResourceConfig``. Mutations update the store from their own
response; the subscription refetches on every remote change. Both paths are
independent, so whichever lands last converges to the server state.
"""

import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any, Generic, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from taskmirror.core.auth import AuthContext
from taskmirror.core.errors import NotAuthenticatedError, SyncError
from taskmirror.core.logging import span
from taskmirror.core.resource_client import ResourceClient, SubscriptionScope, and_, eq
from taskmirror.models.service_models import SyncResult
from taskmirror.services.mirror_store import MirrorStore
from taskmirror.services.subscription_manager import SubscriptionManager


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

FilterValue = str | bool | None


class ResourceConfig(BaseModel):
    """How one resource maps onto a PocketBase collection."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    collection: str
    model: type[BaseModel]
    owner_field: str | None = Field(default="user_id", description="Column holding the owning user id")
    filters: dict[str, FilterValue] = Field(default_factory=dict, description="Fixed equality filters")
    sort: str = "-created_at"
    soft_delete: bool = Field(default=True, description="Rows carry deleted_at and remove() soft-deletes")
    scope_field: str | None = Field(default=None, description="Column narrowing the realtime scope")
    scope_value: str | None = None

    def filter_query(self, user_id: str) -> str:
        clauses = [eq(field, value) for field, value in self.filters.items()]
        if self.owner_field:
            clauses.insert(0, eq(self.owner_field, user_id))
        if self.soft_delete:
            clauses.append(eq("deleted_at", None))
        return and_(*clauses)

    def matches(self, row: dict[str, Any]) -> bool:
        """Client-side twin of ``filter_query`` (owner aside) for mutation responses."""
        if self.soft_delete and row.get("deleted_at"):
            return False
        return all((row.get(field) or None) == (value or None) for field, value in self.filters.items())

    def scope(self) -> SubscriptionScope:
        return SubscriptionScope(collection=self.collection, field=self.scope_field, value=self.scope_value)


class SyncedResource(Generic[ModelT]):
    """Mirror store, subscription manager and mutations for one resource.

    Usage:
        async with TaskList(auth=auth) as tasks:
            await tasks.create({"title": "Write report"})
            print(tasks.items)
    """

    def __init__(
        self,
        config: ResourceConfig,
        *,
        auth: AuthContext,
        fetch: Callable[[str], Awaitable[list[dict[str, Any]]]] | None = None,
        extra_scopes: list[SubscriptionScope] | None = None,
    ) -> None:
        self.config = config
        self.auth = auth
        self.client = ResourceClient(config.collection)
        self.store: MirrorStore[ModelT] = MirrorStore(
            name=config.collection,
            model=config.model,  # type: ignore[arg-type]
            fetch=fetch or self._fetch,
            auth=auth,
            include=config.matches,
        )
        self.subscriptions = SubscriptionManager(
            name=config.collection,
            scopes=[config.scope(), *(extra_scopes or [])],
            on_change=self.refetch,
        )
        self._remove_auth_listener: Callable[[], None] | None = None

    async def __aenter__(self) -> Self:
        await self.mount()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.unmount()

    @property
    def items(self) -> list[ModelT]:
        return self.store.items

    @property
    def loading(self) -> bool:
        return self.store.loading

    def get(self, record_id: str) -> ModelT | None:
        return self.store.get(record_id)

    async def _fetch(self, user_id: str) -> list[dict[str, Any]]:
        return await self.client.list(filter_query=self.config.filter_query(user_id), sort=self.config.sort)

    async def refetch(self) -> SyncResult[list[ModelT]]:
        return await self.store.refetch()

    async def mount(self) -> SyncResult[list[ModelT]]:
        """Subscribe, then load; a change that lands in between is covered by the load."""
        self.store.open()
        if self._remove_auth_listener is None:
            self._remove_auth_listener = self.auth.add_listener(self._on_auth_change)
        started = await self.subscriptions.start()
        result = await self.refetch()
        if not started.ok and result.ok:
            return SyncResult.failure(started.error, data=result.data)  # type: ignore[arg-type]
        return result

    async def unmount(self) -> None:
        """Tear down listeners and discard any result still in flight."""
        if self._remove_auth_listener is not None:
            self._remove_auth_listener()
            self._remove_auth_listener = None
        await self.subscriptions.stop()
        self.store.close()

    async def _on_auth_change(self, user_id: str | None) -> None:
        if user_id is None:
            self.store.reset()
            return
        await self.refetch()

    async def create(self, data: dict[str, Any]) -> SyncResult[ModelT]:
        """Insert a row owned by the signed-in user and add it to the store."""
        with span(f"{self.config.collection}.create"):
            user_id = self.auth.user_id
            if user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))

            payload: dict[str, Any] = {**self.config.filters, **data}
            if self.config.owner_field:
                payload[self.config.owner_field] = user_id
            try:
                row = await self.client.insert(payload)
            except SyncError as e:
                logger.warning("Create failed", extra={"collection": self.config.collection, "error": str(e)})
                return SyncResult.failure(e)
            return SyncResult.success(self.store.apply_local_insert(row))

    async def update(self, record_id: str, data: dict[str, Any]) -> SyncResult[ModelT]:
        """Update a row and replace it in the store."""
        with span(f"{self.config.collection}.update"):
            if self.auth.user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))
            try:
                row = await self.client.update(record_id, data)
            except SyncError as e:
                logger.warning(
                    "Update failed",
                    extra={"collection": self.config.collection, "record_id": record_id, "error": str(e)},
                )
                return SyncResult.failure(e)
            return SyncResult.success(self.store.apply_local_update(record_id, row))

    async def remove(self, record_id: str) -> SyncResult[None]:
        """Soft-delete (or delete) a row and drop it from the store."""
        with span(f"{self.config.collection}.remove"):
            if self.auth.user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))
            try:
                if self.config.soft_delete:
                    await self.client.soft_delete(record_id)
                else:
                    await self.client.delete(record_id)
            except SyncError as e:
                logger.warning(
                    "Remove failed",
                    extra={"collection": self.config.collection, "record_id": record_id, "error": str(e)},
                )
                return SyncResult.failure(e)
            self.store.apply_local_remove(record_id)
            return SyncResult.success()
