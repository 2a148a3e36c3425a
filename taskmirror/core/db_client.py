"""PocketBase client wrapper with async CRUD and realtime operations."""

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import StrEnum
from typing import Any, TypeVar

import httpx
from pocketbase import PocketBase
from pocketbase.client import ClientResponseError
from pydantic import BaseModel

from taskmirror.core.config import Constants, settings
from taskmirror.core.errors import (
    BackendError,
    ConstraintViolationError,
    NetworkError,
    NotAuthenticatedError,
    RecordNotFoundError,
    SyncError,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChangeAction(StrEnum):
    """Realtime change kinds emitted by PocketBase."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """A single realtime change notification for one record."""

    collection: str
    action: ChangeAction
    record: dict[str, Any]


ChangeCallback = Callable[[ChangeEvent], None]
Unsubscribe = Callable[[], Awaitable[None]]


_client: PocketBase | None = None


def get_client() -> PocketBase:
    """Return the shared PocketBase client, creating it on first use."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = PocketBase(settings.pocketbase_url)
        logger.info("Created PocketBase client", extra={"pocketbase_url": settings.pocketbase_url})
    return _client


def set_client(client: PocketBase | None) -> None:
    """Replace the shared PocketBase client (None resets to lazy creation)."""
    global _client  # noqa: PLW0603
    _client = client


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in PocketBase filter strings via json.dumps."""
    if value is None:
        return ""
    return json.dumps(str(value))[1:-1]


def _serialize_value(value: Any) -> Any:  # noqa: ANN401
    """Convert Python values into JSON-compatible PocketBase payload values."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, set | frozenset):
        return sorted(value)
    if isinstance(value, tuple):
        return list(value)
    return value


def _serialize(data: dict[str, Any]) -> dict[str, Any]:
    """Serialize a write payload."""
    return {key: _serialize_value(value) for key, value in data.items()}


def _record_to_dict(record: Any) -> dict[str, Any]:  # noqa: ANN401
    """Flatten a PocketBase SDK Record into a plain dict with ISO timestamps."""
    raw = record if isinstance(record, dict) else dict(record.__dict__)
    converted: dict[str, Any] = {}
    for key, value in raw.items():
        if key in {"expand", "collection_id", "collection_name"}:
            continue
        converted[key] = value.isoformat() if isinstance(value, datetime) else value
    return converted


def _has_not_unique_code(data: Any) -> bool:  # noqa: ANN401
    """Return True if a PocketBase validation payload reports a uniqueness failure."""
    if isinstance(data, dict):
        if data.get("code") == "validation_not_unique":
            return True
        return any(_has_not_unique_code(value) for value in data.values())
    return False


def translate_response_error(
    *,
    status: int,
    data: dict[str, Any] | None,
    message: str,
    transport_failure: bool = False,
) -> SyncError:
    """Map a PocketBase error response onto the sync error taxonomy."""
    if transport_failure or status == 0:
        return NetworkError(message)
    if status == Constants.HTTP_NOT_FOUND:
        return RecordNotFoundError(message, status=status)
    if status == Constants.HTTP_BAD_REQUEST and _has_not_unique_code(data or {}):
        return ConstraintViolationError(message, status=status)
    if status == Constants.HTTP_UNAUTHORIZED:
        return NotAuthenticatedError(message)
    if status == Constants.HTTP_FORBIDDEN:
        return BackendError(message, code="ERR_PERMISSION_DENIED", status=status)
    return BackendError(message, code=f"ERR_BACKEND_{status}", status=status)


def _translate_exception(error: Exception, *, context: str) -> SyncError:
    """Translate SDK and transport exceptions into sync errors."""
    if isinstance(error, ClientResponseError):
        original = getattr(error, "original_error", None)
        return translate_response_error(
            status=getattr(error, "status", 0) or 0,
            data=getattr(error, "data", None),
            message=f"{context}: {error}",
            transport_failure=bool(getattr(error, "is_abort", False)) or isinstance(original, httpx.TransportError),
        )
    if isinstance(error, httpx.TransportError | ConnectionError | TimeoutError):
        return NetworkError(f"{context}: {error}")
    return BackendError(f"{context}: {error}")


async def _run(func: Callable[..., T], *args: Any, context: str) -> T:  # noqa: ANN401
    """Run a blocking SDK call off the event loop, translating its failures."""
    try:
        return await asyncio.to_thread(func, *args)
    except (ClientResponseError, httpx.HTTPError, ConnectionError, TimeoutError) as e:
        raise _translate_exception(e, context=context) from e


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    _validate_collection_name(collection)
    try:
        record = await _run(
            get_client().collection(collection).create,
            _serialize(data),
            context=f"Failed to create record in {collection}",
        )
    except SyncError as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise

    result = _record_to_dict(record)
    logger.info("Created record", extra={"collection": collection, "record_id": result.get("id")})
    return result


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        record = await _run(
            get_client().collection(collection).get_one,
            record_id,
            context=f"Failed to get record {record_id} from {collection}",
        )
    except RecordNotFoundError:
        raise
    except SyncError as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise

    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return _record_to_dict(record)


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    try:
        record = await _run(
            get_client().collection(collection).update,
            record_id,
            _serialize(data),
            context=f"Failed to update record {record_id} in {collection}",
        )
    except SyncError as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise

    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return _record_to_dict(record)


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        await _run(
            get_client().collection(collection).delete,
            record_id,
            context=f"Failed to delete record {record_id} from {collection}",
        )
    except SyncError as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


def _query_params(*, filter_query: str, sort: str) -> dict[str, str]:
    """Only include filter and sort in query params if they're not empty."""
    query_params = {}
    if sort:
        query_params["sort"] = sort
    if filter_query:
        query_params["filter"] = filter_query
    return query_params


async def list_all_records(
    *,
    collection: str,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List every record matching the filter, fetching all pages."""
    _validate_collection_name(collection)
    try:
        items = await _run(
            get_client().collection(collection).get_full_list,
            Constants.FULL_LIST_BATCH_SIZE,
            _query_params(filter_query=filter_query, sort=sort),
            context=f"Failed to list records from {collection}",
        )
    except SyncError as e:
        logger.error("list_all_records_failed", extra={"collection": collection, "error": str(e)})
        raise

    records = [_record_to_dict(item) for item in items]
    logger.debug("Listed all records", extra={"collection": collection, "count": len(records)})
    return records


async def get_first_record(*, collection: str, filter_query: str) -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    _validate_collection_name(collection)
    try:
        record = await _run(
            get_client().collection(collection).get_first_list_item,
            filter_query,
            context=f"Failed to get first record from {collection}",
        )
    except RecordNotFoundError:
        return None
    except SyncError as e:
        logger.error(
            "get_first_record_failed", extra={"collection": collection, "filter_query": filter_query, "error": str(e)}
        )
        raise

    return _record_to_dict(record)


async def delete_records(*, collection: str, filter_query: str) -> int:
    """Delete every record matching the filter and return how many were removed.

    PocketBase has no bulk delete, so records are removed one by one; a failure
    part way through leaves the earlier deletions in place.
    """
    records = await list_all_records(collection=collection, filter_query=filter_query)
    deleted = 0
    for record in records:
        try:
            await delete_record(collection=collection, record_id=record["id"])
        except RecordNotFoundError:
            # Already gone
            continue
        deleted += 1

    logger.info("Deleted records", extra={"collection": collection, "count": deleted})
    return deleted


async def subscribe(*, collection: str, callback: ChangeCallback) -> Unsubscribe:
    """Subscribe to realtime changes on a collection.

    The SDK delivers messages on its own listener thread; each one is converted
    to a ChangeEvent and handed to ``callback`` on the subscribing event loop.

    Returns:
        Coroutine function that removes the listener
    """
    _validate_collection_name(collection)
    loop = asyncio.get_running_loop()

    def _on_message(message: Any) -> None:  # noqa: ANN401
        if loop.is_closed():
            return
        try:
            action = ChangeAction(message.action)
        except ValueError:
            logger.warning("Ignoring unknown realtime action", extra={"collection": collection, "action": message.action})
            return
        event = ChangeEvent(collection=collection, action=action, record=_record_to_dict(message.record))
        loop.call_soon_threadsafe(callback, event)

    remove_listener = await _run(
        get_client().collection(collection).subscribe,
        _on_message,
        context=f"Failed to subscribe to {collection}",
    )
    logger.info("Subscribed to collection", extra={"collection": collection})

    async def _unsubscribe() -> None:
        await _run(remove_listener, context=f"Failed to unsubscribe from {collection}")
        logger.info("Unsubscribed from collection", extra={"collection": collection})

    return _unsubscribe


async def authenticate(*, collection: str, identity: str, password: str) -> dict[str, Any]:
    """Authenticate a user record with password and return the authenticated record.

    The shared client's auth store keeps the token for subsequent requests.
    """
    _validate_collection_name(collection)
    try:
        result = await _run(
            get_client().collection(collection).auth_with_password,
            identity,
            password,
            context=f"Failed to authenticate against {collection}",
        )
    except SyncError as e:
        logger.warning("authenticate_failed", extra={"collection": collection, "error": str(e)})
        raise

    record = _record_to_dict(result.record)
    logger.info("Authenticated user", extra={"collection": collection, "record_id": record.get("id")})
    return record


def clear_auth() -> None:
    """Drop the shared client's auth token."""
    get_client().auth_store.clear()
