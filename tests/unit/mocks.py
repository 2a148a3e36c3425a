"""Pure Python in-memory database for unit testing."""

import asyncio
import copy
import json
import re
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from taskmirror.core.db_client import ChangeAction, ChangeEvent
from taskmirror.core.errors import BackendError, ConstraintViolationError, RecordNotFoundError, SyncError
from taskmirror.core.schema import COLLECTIONS, _get_collection_schema


_UNIQUE_INDEX_RE = re.compile(r"CREATE UNIQUE INDEX \w+ ON (\w+) \(([^)]+)\)")

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<paren>[()])
        |(?P<logic>&&|\|\|)
        |(?P<string>"(?:\\.|[^"\\])*")
        |(?P<op>!=|>=|<=|=|~|>|<)
        |(?P<ident>[A-Za-z_@][A-Za-z0-9_.]*)
    )""",
    re.VERBOSE,
)


USER = {"id": "user_1", "email": "alice@example.com", "name": "Alice"}
OTHER_USER = {"id": "user_2", "email": "bob@example.com", "name": "Bob"}

# Fixed reference time for date-dependent assertions
NOW = datetime(2026, 10, 19, 15, 30, tzinfo=UTC)


def unique_indexes_from_schema() -> dict[str, list[tuple[str, ...]]]:
    """Read the unique indexes declared in the collection definitions."""
    indexes: dict[str, list[tuple[str, ...]]] = defaultdict(list)
    for name in COLLECTIONS:
        for index in _get_collection_schema(collection_name=name).get("indexes", []):
            match = _UNIQUE_INDEX_RE.match(index)
            if match:
                indexes[match.group(1)].append(tuple(field.strip() for field in match.group(2).split(",")))
    return dict(indexes)


def _serialize_value(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, set | frozenset):
        return sorted(value)
    if isinstance(value, dict):
        return {key: _serialize_value(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_serialize_value(item) for item in value]
    return value


_DATETIME_TEXT_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})?$")


def _pb_datetime(moment: datetime) -> str:
    """PocketBase storage format: UTC, space separator, millisecond precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _store_value(value: Any) -> Any:  # noqa: ANN401
    """Normalize a top-level field the way PocketBase does for datetime fields."""
    if isinstance(value, datetime):
        return _pb_datetime(value)
    if isinstance(value, str) and _DATETIME_TEXT_RE.match(value):
        return _pb_datetime(datetime.fromisoformat(value))
    return _serialize_value(value)


def _store(data: dict[str, Any]) -> dict[str, Any]:
    return {key: _store_value(value) for key, value in data.items()}


def _now() -> str:
    return _pb_datetime(datetime.now(UTC))


class _FilterParser:
    """Recursive-descent evaluator for the PocketBase filter subset the services emit.

    Grammar: expr := and ('||' and)*; and := term ('&&' term)*;
    term := '(' expr ')' | field op value. Values are double-quoted strings
    or the literals true/false/null.
    """

    def __init__(self, filter_str: str) -> None:
        self.tokens = self._tokenize(filter_str)
        self.pos = 0

    @staticmethod
    def _tokenize(filter_str: str) -> list[tuple[str, str]]:
        tokens = []
        pos = 0
        while pos < len(filter_str):
            if filter_str[pos:].strip() == "":
                break
            match = _TOKEN_RE.match(filter_str, pos)
            if match is None or match.end() == pos:
                raise BackendError(f"Invalid filter syntax: {filter_str}", status=400)
            kind = match.lastgroup or ""
            tokens.append((kind, match.group(kind)))
            pos = match.end()
        return tokens

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise BackendError("Unexpected end of filter", status=400)
        self.pos += 1
        return token

    def evaluate(self, record: dict[str, Any]) -> bool:
        self.pos = 0
        result = self._expr(record)
        if self._peek() is not None:
            raise BackendError(f"Unexpected token in filter: {self._peek()}", status=400)
        return result

    def _expr(self, record: dict[str, Any]) -> bool:
        result = self._and(record)
        while self._peek() == ("logic", "||"):
            self._next()
            rhs = self._and(record)
            result = result or rhs
        return result

    def _and(self, record: dict[str, Any]) -> bool:
        result = self._term(record)
        while self._peek() == ("logic", "&&"):
            self._next()
            rhs = self._term(record)
            result = result and rhs
        return result

    def _term(self, record: dict[str, Any]) -> bool:
        if self._peek() == ("paren", "("):
            self._next()
            result = self._expr(record)
            if self._next() != ("paren", ")"):
                raise BackendError("Unbalanced parentheses in filter", status=400)
            return result

        kind, field = self._next()
        if kind != "ident":
            raise BackendError(f"Expected field name in filter, got {field!r}", status=400)
        kind, op = self._next()
        if kind != "op":
            raise BackendError(f"Expected operator in filter, got {op!r}", status=400)
        kind, raw = self._next()
        if kind == "string":
            value: Any = json.loads(raw)
        elif raw in ("true", "false"):
            value = raw == "true"
        elif raw == "null":
            value = ""
        else:
            raise BackendError(f"Expected value in filter, got {raw!r}", status=400)
        return _compare(record.get(field), op, value)


def _as_text(value: Any) -> str:  # noqa: ANN401
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _compare(actual: Any, op: str, expected: Any) -> bool:  # noqa: ANN401, PLR0911
    if isinstance(expected, bool):
        matches = bool(actual) == expected
        return matches if op == "=" else not matches

    text = _as_text(actual)
    if op == "=":
        return text == expected
    if op == "!=":
        return text != expected
    if op == "~":
        return expected.lower() in text.lower()
    if op == ">=":
        return text >= expected
    if op == "<=":
        return text <= expected
    if op == ">":
        return text > expected
    return text < expected


def _sort_key(value: Any) -> tuple[int, Any]:  # noqa: ANN401
    return (1, "") if value is None or value == "" else (0, value)


class InMemoryDBClient:
    """Pure Python in-memory database for unit testing.

    Mirrors the ``taskmirror.core.db_client`` surface without a PocketBase
    server: CRUD, the filter subset the services emit, multi-field sort, the
    unique indexes declared in the schema, and realtime events delivered on
    the next loop iteration (never synchronously inside the write).
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._id_counter = 1000
        self._unique = unique_indexes_from_schema()
        self._listeners: dict[str, list[Callable[[ChangeEvent], None]]] = defaultdict(list)
        self._failures: dict[tuple[str, str], list[SyncError]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []

    # Failure injection

    def fail_next(self, operation: str, collection: str, error: SyncError | None = None, *, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` on ``collection`` raise ``error``."""
        error = error or BackendError(f"Injected {operation} failure on {collection}", status=500)
        self._failures[(operation, collection)].extend([error] * times)

    def _maybe_fail(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        pending = self._failures.get((operation, collection))
        if pending:
            raise pending.pop(0)

    # Helpers

    def rows(self, collection: str) -> list[dict[str, Any]]:
        """Every stored row of a collection (copies, insertion order)."""
        return [copy.deepcopy(row) for row in self._collections.get(collection, {}).values()]

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, []))

    def _check_unique(self, collection: str, record: dict[str, Any]) -> None:
        for fields in self._unique.get(collection, []):
            key = tuple(record.get(field) for field in fields)
            if any(value in (None, "") for value in key):
                continue
            for other in self._collections.get(collection, {}).values():
                if other["id"] != record["id"] and tuple(other.get(field) for field in fields) == key:
                    raise ConstraintViolationError(
                        f"Failed to write {collection}: value of {', '.join(fields)} must be unique",
                        status=400,
                    )

    def _emit(self, collection: str, action: ChangeAction, record: dict[str, Any]) -> None:
        listeners = list(self._listeners.get(collection, []))
        if not listeners:
            return
        loop = asyncio.get_running_loop()
        for listener in listeners:
            event = ChangeEvent(collection=collection, action=action, record=copy.deepcopy(record))
            loop.call_soon(listener, event)

    def _require(self, collection: str, record_id: str) -> dict[str, Any]:
        record = self._collections.get(collection, {}).get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}", status=404)
        return record

    # db_client surface

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        self._maybe_fail("create", collection)
        record_id = str(self._id_counter)
        self._id_counter += 1

        now = _now()
        record = {"id": record_id, "created_at": now, "updated_at": now, **_store(data)}
        self._check_unique(collection, record)
        self._collections.setdefault(collection, {})[record_id] = record
        self._emit(collection, ChangeAction.CREATE, record)
        return copy.deepcopy(record)

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]:
        self._maybe_fail("get", collection)
        return copy.deepcopy(self._require(collection, record_id))

    async def update_record(self, *, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        self._maybe_fail("update", collection)
        record = self._require(collection, record_id)
        updated = {**record, **_store(data)}
        if "updated_at" not in data:
            updated["updated_at"] = _now()
        self._check_unique(collection, updated)
        self._collections[collection][record_id] = updated
        self._emit(collection, ChangeAction.UPDATE, updated)
        return copy.deepcopy(updated)

    async def delete_record(self, *, collection: str, record_id: str) -> None:
        self._maybe_fail("delete", collection)
        record = self._require(collection, record_id)
        del self._collections[collection][record_id]
        self._emit(collection, ChangeAction.DELETE, record)

    def _query(self, collection: str, filter_query: str, sort: str) -> list[dict[str, Any]]:
        records = list(self._collections.get(collection, {}).values())
        if filter_query:
            parser = _FilterParser(filter_query)
            records = [record for record in records if parser.evaluate(record)]
        return self._apply_sort(records, sort)

    async def list_all_records(self, *, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
        self._maybe_fail("list", collection)
        return [copy.deepcopy(record) for record in self._query(collection, filter_query, sort)]

    async def get_first_record(self, *, collection: str, filter_query: str) -> dict[str, Any] | None:
        self._maybe_fail("first", collection)
        records = self._query(collection, filter_query, "")
        return copy.deepcopy(records[0]) if records else None

    async def delete_records(self, *, collection: str, filter_query: str) -> int:
        self._maybe_fail("delete_where", collection)
        records = self._query(collection, filter_query, "")
        for record in records:
            del self._collections[collection][record["id"]]
            self._emit(collection, ChangeAction.DELETE, record)
        return len(records)

    async def subscribe(
        self,
        *,
        collection: str,
        callback: Callable[[ChangeEvent], None],
    ) -> Callable[[], Awaitable[None]]:
        self._maybe_fail("subscribe", collection)
        self._listeners[collection].append(callback)

        async def _unsubscribe() -> None:
            if callback in self._listeners[collection]:
                self._listeners[collection].remove(callback)

        return _unsubscribe

    def _apply_sort(self, records: list[dict[str, Any]], sort: str) -> list[dict[str, Any]]:
        """Sort by comma-separated fields (prefix with - for descending); blanks sort last."""
        if not sort:
            return records
        for part in reversed([part.strip() for part in sort.split(",") if part.strip()]):
            reverse = part.startswith("-")
            field = part.lstrip("-+")
            present = [record for record in records if record.get(field) not in (None, "")]
            blank = [record for record in records if record.get(field) in (None, "")]
            records = sorted(present, key=lambda record: _sort_key(record.get(field)), reverse=reverse) + blank
        return records
