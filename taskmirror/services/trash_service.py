"""Trash bin: soft-delete with a recoverable snapshot.

Moving an entity to the trash is a three-step workflow:

1. insert a trash item (status ``pending``) holding a snapshot of the entity
2. stamp ``deleted_at`` on the original row
3. mark the trash item ``confirmed``

Restoring reverses it (clear ``deleted_at``, then delete the trash item) and
permanent deletion removes the original and then the trash item. Steps are
not transactional: when a later step fails, nothing already applied is rolled
back and the result carries a ``PartialWorkflowFailure`` naming the steps that
landed. ``resume_pending`` finishes moves interrupted after step 1.
"""

import logging
from datetime import UTC, datetime, timedelta
from types import TracebackType
from typing import Any, Self

from taskmirror.core.auth import AuthContext
from taskmirror.core.config import settings
from taskmirror.core.errors import NotAuthenticatedError, PartialWorkflowFailure, RecordNotFoundError, SyncError
from taskmirror.core.logging import log_with_user_context, span
from taskmirror.core.resource_client import ResourceClient, and_, eq, ne
from taskmirror.domain.trash import TrashItem, TrashItemStatus, TrashItemType
from taskmirror.models.service_models import SyncResult
from taskmirror.services.synced_resource import ResourceConfig, SyncedResource


logger = logging.getLogger(__name__)

TRASH_COLLECTION = "trash_items"

TRASH_CONFIG = ResourceConfig(
    collection=TRASH_COLLECTION,
    model=TrashItem,
    sort="-deleted_at",
    soft_delete=False,
)

# Workflow step names reported in PartialWorkflowFailure
STEP_INSERT_TRASH_ITEM = "insert_trash_item"
STEP_SOFT_DELETE_ORIGINAL = "soft_delete_original"
STEP_CONFIRM_TRASH_ITEM = "confirm_trash_item"
STEP_RESTORE_ORIGINAL = "restore_original"
STEP_DELETE_ORIGINAL = "delete_original"
STEP_DELETE_TRASH_ITEM = "delete_trash_item"
STEP_SWEEP = "sweep_trash_items"


def _partial(
    action: str,
    *,
    completed_steps: list[str],
    failed_step: str,
    cause: SyncError,
) -> PartialWorkflowFailure:
    return PartialWorkflowFailure(
        f"{action} stopped at {failed_step}: {cause}",
        completed_steps=completed_steps,
        failed_step=failed_step,
        cause=cause,
    )


class TrashCoordinator:
    """Moves entities in and out of the trash and mirrors the user's trash items."""

    def __init__(self, *, auth: AuthContext, retention_days: int | None = None) -> None:
        self.auth = auth
        self.retention = timedelta(days=retention_days or settings.trash_retention_days)
        self.trash: SyncedResource[TrashItem] = SyncedResource(TRASH_CONFIG, auth=auth)

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
    def items(self) -> list[TrashItem]:
        return self.trash.items

    async def mount(self) -> SyncResult[list[TrashItem]]:
        return await self.trash.mount()

    async def unmount(self) -> None:
        await self.trash.unmount()

    async def refetch(self) -> SyncResult[list[TrashItem]]:
        return await self.trash.refetch()

    def expired_items(self, now: datetime | None = None) -> list[TrashItem]:
        """Trash items past their expiry (purging them is the backend's job)."""
        now = now or datetime.now(UTC)
        return [item for item in self.trash.items if item.is_expired(now)]

    async def move_to_trash(
        self,
        item_type: TrashItemType | str,
        item_id: str,
        snapshot: dict[str, Any],
    ) -> SyncResult[TrashItem]:
        """Snapshot an entity into the trash and soft-delete the original."""
        with span("trash_service.move_to_trash"):
            user_id = self.auth.user_id
            if user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))

            item_type = TrashItemType(item_type)
            deleted_at = datetime.now(UTC)
            try:
                row = await self.trash.client.insert(
                    {
                        "user_id": user_id,
                        "item_type": item_type,
                        "item_id": item_id,
                        "item_data": snapshot,
                        "deleted_at": deleted_at,
                        "expires_at": deleted_at + self.retention,
                        "status": TrashItemStatus.PENDING,
                    }
                )
            except SyncError as e:
                logger.warning("Failed to create trash item", extra={"item_type": str(item_type), "error": str(e)})
                return SyncResult.failure(e)

            completed = [STEP_INSERT_TRASH_ITEM]
            failed_step = STEP_SOFT_DELETE_ORIGINAL
            try:
                await ResourceClient(item_type.collection).update(item_id, {"deleted_at": deleted_at})
                completed.append(failed_step)
                failed_step = STEP_CONFIRM_TRASH_ITEM
                row = await self.trash.client.update(row["id"], {"status": TrashItemStatus.CONFIRMED})
            except SyncError as e:
                logger.error(
                    "Move to trash partially applied",
                    extra={"item_type": str(item_type), "item_id": item_id, "failed_step": failed_step},
                )
                return SyncResult.failure(
                    _partial("Move to trash", completed_steps=completed, failed_step=failed_step, cause=e),
                    data=self.trash.store.apply_local_insert(row),
                )

            log_with_user_context(
                logger, "info", "Moved item to trash", user_id=user_id, item_type=str(item_type), item_id=item_id
            )
            return SyncResult.success(self.trash.store.apply_local_insert(row))

    async def restore_from_trash(
        self,
        trash_id: str,
        item_type: TrashItemType | str,
        item_id: str,
    ) -> SyncResult[None]:
        """Bring the original back to life, then drop its trash item."""
        with span("trash_service.restore_from_trash"):
            if self.auth.user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))

            item_type = TrashItemType(item_type)
            try:
                await ResourceClient(item_type.collection).restore(item_id)
            except SyncError as e:
                logger.warning("Failed to restore item", extra={"item_id": item_id, "error": str(e)})
                return SyncResult.failure(e)

            try:
                await self.trash.client.delete(trash_id)
            except RecordNotFoundError:
                logger.debug("Trash item already gone", extra={"trash_id": trash_id})
            except SyncError as e:
                return SyncResult.failure(
                    _partial(
                        "Restore",
                        completed_steps=[STEP_RESTORE_ORIGINAL],
                        failed_step=STEP_DELETE_TRASH_ITEM,
                        cause=e,
                    )
                )

            self.trash.store.apply_local_remove(trash_id)
            logger.info("Restored item from trash", extra={"item_type": str(item_type), "item_id": item_id})
            return SyncResult.success()

    async def permanent_delete(
        self,
        trash_id: str,
        item_type: TrashItemType | str,
        item_id: str,
    ) -> SyncResult[None]:
        """Delete the original row outright, then its trash item.

        An original that no longer exists counts as already purged.
        """
        with span("trash_service.permanent_delete"):
            if self.auth.user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))

            item_type = TrashItemType(item_type)
            try:
                await ResourceClient(item_type.collection).delete(item_id)
            except RecordNotFoundError:
                logger.debug("Original already purged", extra={"item_type": str(item_type), "item_id": item_id})
            except SyncError as e:
                logger.warning("Failed to delete original", extra={"item_id": item_id, "error": str(e)})
                return SyncResult.failure(e)

            try:
                await self.trash.client.delete(trash_id)
            except RecordNotFoundError:
                logger.debug("Trash item already gone", extra={"trash_id": trash_id})
            except SyncError as e:
                return SyncResult.failure(
                    _partial(
                        "Permanent delete",
                        completed_steps=[STEP_DELETE_ORIGINAL],
                        failed_step=STEP_DELETE_TRASH_ITEM,
                        cause=e,
                    )
                )

            self.trash.store.apply_local_remove(trash_id)
            return SyncResult.success()

    async def _user_trash(self, user_id: str, *filters: str) -> list[TrashItem]:
        rows = await self.trash.client.list(filter_query=and_(eq("user_id", user_id), *filters))
        return [TrashItem.model_validate(row) for row in rows]

    async def empty_trash(self) -> SyncResult[int]:
        """Permanently delete every trash item of the user.

        Items whose purge fails keep their trash row so they can be retried;
        all failures are reported together in one PartialWorkflowFailure.
        Returns the number of items purged.
        """
        with span("trash_service.empty_trash"):
            user_id = self.auth.user_id
            if user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))

            try:
                items = await self._user_trash(user_id)
            except SyncError as e:
                return SyncResult.failure(e)

            failures: dict[str, Exception] = {}
            purged: list[str] = []
            for item in items:
                result = await self.permanent_delete(item.id, item.item_type, item.item_id)
                if result.ok:
                    purged.append(item.id)
                else:
                    failures[item.id] = result.error  # type: ignore[assignment]

            try:
                swept = await self.trash.client.delete_where(
                    and_(eq("user_id", user_id), *(ne("id", trash_id) for trash_id in failures))
                )
            except SyncError as e:
                failures[STEP_SWEEP] = e
                swept = 0

            await self.trash.refetch()
            log_with_user_context(
                logger,
                "info",
                "Emptied trash",
                user_id=user_id,
                purged=len(purged),
                swept=swept,
                failed=len(failures),
            )

            if failures:
                first = next(iter(failures.values()))
                error = PartialWorkflowFailure(
                    f"Emptied trash with {len(failures)} failure(s)",
                    completed_steps=purged,
                    failed_step=next(iter(failures)),
                    cause=first,
                    failures=failures,
                )
                return SyncResult.failure(error, data=len(purged))
            return SyncResult.success(len(purged))

    async def resume_pending(self) -> SyncResult[list[TrashItem]]:
        """Finish moves to trash that stopped before being confirmed.

        The original is soft-deleted with the trash item's timestamp and the
        item is confirmed. An item whose original no longer exists is dropped.
        """
        with span("trash_service.resume_pending"):
            user_id = self.auth.user_id
            if user_id is None:
                return SyncResult.success([])

            try:
                pending = await self._user_trash(user_id, eq("status", TrashItemStatus.PENDING))
            except SyncError as e:
                return SyncResult.failure(e)

            resumed: list[TrashItem] = []
            failures: dict[str, Exception] = {}
            for item in pending:
                original = ResourceClient(item.item_type.collection)
                try:
                    try:
                        await original.update(item.item_id, {"deleted_at": item.deleted_at})
                    except RecordNotFoundError:
                        await self.trash.client.delete(item.id)
                        self.trash.store.apply_local_remove(item.id)
                        continue
                    row = await self.trash.client.update(item.id, {"status": TrashItemStatus.CONFIRMED})
                except SyncError as e:
                    failures[item.id] = e
                    continue
                resumed.append(TrashItem.model_validate(row))
                self.trash.store.apply_local_update(item.id, row)

            if pending:
                logger.info(
                    "Resumed pending trash moves",
                    extra={"user_id": user_id, "resumed": len(resumed), "failed": len(failures)},
                )
            if failures:
                error = PartialWorkflowFailure(
                    f"Could not resume {len(failures)} trash item(s)",
                    completed_steps=[item.id for item in resumed],
                    failed_step=STEP_SOFT_DELETE_ORIGINAL,
                    cause=next(iter(failures.values())),
                    failures=failures,
                )
                return SyncResult.failure(error, data=resumed)
            return SyncResult.success(resumed)
