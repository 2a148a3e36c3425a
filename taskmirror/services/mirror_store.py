"""In-memory mirror of one server table for the signed-in user.

The store is filled by full refetches and patched by the responses of the
owner's own mutations. A refetch always replaces the whole mapping, so
whatever optimistic state was applied before it converges to the server's
view. Results that arrive after the store was closed, or after the signed-in
user changed, are discarded.
"""

import logging
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from taskmirror.core.auth import AuthContext
from taskmirror.core.errors import SyncError
from taskmirror.core.logging import span
from taskmirror.models.service_models import SyncResult


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

Fetcher = Callable[[str], Awaitable[list[dict[str, Any]]]]
RowFilter = Callable[[dict[str, Any]], bool]


def _not_deleted(row: dict[str, Any]) -> bool:
    return not row.get("deleted_at")


class MirrorStore(Generic[ModelT]):
    """Ordered id -> model mapping kept in step with a backend query.

    Args:
        name: Resource name used in logs and spans
        model: Pydantic model each row is validated into
        fetch: Coroutine function returning the rows for a user id
        auth: Authentication context gating every refetch
        include: Predicate a row must satisfy to be kept (defaults to "not soft-deleted")
    """

    def __init__(
        self,
        *,
        name: str,
        model: type[ModelT],
        fetch: Fetcher,
        auth: AuthContext,
        include: RowFilter | None = None,
    ) -> None:
        self.name = name
        self._model = model
        self._fetch = fetch
        self._auth = auth
        self._include = include or _not_deleted
        self._items: dict[str, ModelT] = {}
        self._in_flight = 0
        self._closed = False
        # Bumped by close() so results of a previous mount are never applied
        self._epoch = 0
        self.last_error: SyncError | None = None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ModelT]:
        return iter(list(self._items.values()))

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._items

    @property
    def items(self) -> list[ModelT]:
        """Snapshot of the mirrored rows in server order."""
        return list(self._items.values())

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, record_id: str) -> ModelT | None:
        return self._items.get(record_id)

    def _parse(self, row: dict[str, Any] | ModelT) -> ModelT | None:
        if isinstance(row, BaseModel):
            row = row.model_dump()
        if not self._include(row):
            return None
        try:
            return self._model.model_validate(row)
        except ValidationError as e:
            logger.warning(
                "Skipping malformed row",
                extra={"store": self.name, "record_id": row.get("id"), "error": str(e)},
            )
            return None

    async def refetch(self) -> SyncResult[list[ModelT]]:
        """Replace the mapping with the server's current rows for the signed-in user.

        With no signed-in user the store is emptied and the call succeeds
        without touching the backend.
        """
        if self._closed:
            return SyncResult.success(self.items)

        user_id = self._auth.user_id
        if user_id is None:
            self.reset()
            return SyncResult.success([])
        epoch = self._epoch

        with span(f"mirror_store.refetch.{self.name}"):
            self._in_flight += 1
            try:
                rows = await self._fetch(user_id)
            except SyncError as e:
                if self._is_stale(user_id, epoch):
                    return SyncResult.success(self.items)
                self.last_error = e
                logger.warning("Refetch failed", extra={"store": self.name, "user_id": user_id, "error": str(e)})
                return SyncResult.failure(e, data=self.items)
            finally:
                self._in_flight -= 1

            if self._is_stale(user_id, epoch):
                logger.debug("Discarding stale refetch result", extra={"store": self.name, "user_id": user_id})
                return SyncResult.success(self.items)

            parsed = (self._parse(row) for row in rows)
            self._items = {model.id: model for model in parsed if model is not None}  # type: ignore[attr-defined]
            self.last_error = None
            logger.debug("Store refetched", extra={"store": self.name, "count": len(self._items)})
            return SyncResult.success(self.items)

    def _is_stale(self, user_id: str, epoch: int) -> bool:
        return self._closed or self._epoch != epoch or self._auth.user_id != user_id

    def apply_local_insert(self, row: dict[str, Any] | ModelT) -> ModelT | None:
        """Add (or replace) one row from a mutation response.

        Returns the stored model, or None if the row does not belong in this store.
        """
        if self._closed:
            return None
        model = self._parse(row)
        if model is None:
            return None
        self._items[model.id] = model  # type: ignore[attr-defined]
        return model

    def apply_local_update(self, record_id: str, row: dict[str, Any] | ModelT) -> ModelT | None:
        """Replace one row in place; a row that no longer belongs is removed."""
        if self._closed:
            return None
        model = self._parse(row)
        if model is None:
            self._items.pop(record_id, None)
            return None
        if record_id in self._items:
            self._items[record_id] = model
        return model

    def apply_local_remove(self, record_id: str) -> None:
        if self._closed:
            return
        self._items.pop(record_id, None)

    def reset(self) -> None:
        """Drop every row (used on sign-out)."""
        self._items = {}
        self.last_error = None

    def open(self) -> None:
        """Accept results again after close()."""
        self._closed = False

    def close(self) -> None:
        """Stop accepting results; later refetch responses are discarded."""
        self._closed = True
        self._epoch += 1
