"""Lifecycle of the realtime listeners that keep a mirror store fresh."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from taskmirror.core.db_client import ChangeEvent
from taskmirror.core.errors import SyncError
from taskmirror.core.resource_client import ResourceClient, Subscription, SubscriptionScope
from taskmirror.models.service_models import SyncResult


logger = logging.getLogger(__name__)


class SubscriptionState(StrEnum):
    """Listener lifecycle: UNSUBSCRIBED -> SUBSCRIBING -> ACTIVE -> UNSUBSCRIBED."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"


class SubscriptionManager:
    """Owns one listener per scope and turns change events into refetches.

    Refetches run one at a time. Events that arrive while a refetch is in
    flight mark the store dirty, and exactly one follow-up refetch runs once
    the current one finishes.
    """

    def __init__(
        self,
        *,
        name: str,
        scopes: list[SubscriptionScope],
        on_change: Callable[[], Awaitable[Any]],
    ) -> None:
        self.name = name
        self.scopes = scopes
        self._on_change = on_change
        self._state = SubscriptionState.UNSUBSCRIBED
        self._subscriptions: list[Subscription] = []
        self._worker: asyncio.Task[None] | None = None
        self._dirty = False
        # Bumped by stop() so an in-progress start() notices it lost the race
        self._generation = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SubscriptionState.ACTIVE

    async def start(self) -> SyncResult[None]:
        """Open a listener for every scope.

        On failure the listeners opened so far are closed and the manager is
        back to UNSUBSCRIBED. A stop() issued meanwhile wins.
        """
        if self._state is not SubscriptionState.UNSUBSCRIBED:
            return SyncResult.success()

        self._state = SubscriptionState.SUBSCRIBING
        generation = self._generation

        for scope in self.scopes:
            try:
                subscription = await ResourceClient(scope.collection).subscribe(scope, self._handle_event)
            except SyncError as e:
                logger.warning(
                    "Subscribe failed",
                    extra={"subscription": self.name, "collection": scope.collection, "error": str(e)},
                )
                if generation == self._generation:
                    await self._close_subscriptions()
                    self._state = SubscriptionState.UNSUBSCRIBED
                return SyncResult.failure(e)

            if generation != self._generation:
                # stop() ran while we were waiting for the acknowledgement
                await subscription.close()
                return SyncResult.success()
            self._subscriptions.append(subscription)

        self._state = SubscriptionState.ACTIVE
        logger.info("Subscriptions active", extra={"subscription": self.name, "scopes": len(self.scopes)})
        return SyncResult.success()

    async def stop(self) -> None:
        """Cancel the pending refetch and close every listener (idempotent)."""
        self._generation += 1
        self._state = SubscriptionState.UNSUBSCRIBED
        self._dirty = False

        worker, self._worker = self._worker, None
        if worker is not None and not worker.done() and worker is not asyncio.current_task():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

        await self._close_subscriptions()

    async def _close_subscriptions(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                await subscription.close()
            except SyncError as e:
                logger.warning(
                    "Unsubscribe failed",
                    extra={"subscription": self.name, "collection": subscription.scope.collection, "error": str(e)},
                )
        if subscriptions:
            logger.info("Subscriptions closed", extra={"subscription": self.name, "count": len(subscriptions)})

    def _handle_event(self, event: ChangeEvent) -> None:
        if self._state is not SubscriptionState.ACTIVE:
            return
        logger.debug(
            "Change event",
            extra={"subscription": self.name, "collection": event.collection, "action": str(event.action)},
        )
        self._dirty = True
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._dirty and self._state is SubscriptionState.ACTIVE:
            self._dirty = False
            try:
                await self._on_change()
            except Exception as e:
                logger.error("Refetch after change failed", extra={"subscription": self.name, "error": str(e)})

    async def wait_until_idle(self) -> None:
        """Wait for the pending refetch (and its follow-up) to finish."""
        while self._worker is not None and not self._worker.done():
            await self._worker
