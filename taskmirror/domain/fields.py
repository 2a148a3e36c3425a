"""Annotated field types for PocketBase rows.

PocketBase stores unset relation, text, date and json fields as ``""`` or
``null``; these types normalize them to ``None`` or an empty set on the way in.
"""

from datetime import UTC, date, datetime
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer


def blank_to_none(value: Any) -> Any:  # noqa: ANN401
    """Map PocketBase's empty-string placeholder to None."""
    if value == "":
        return None
    return value


def _parse_date(value: Any) -> Any:  # noqa: ANN401
    """Accept ``YYYY-MM-DD`` or any PocketBase datetime string and keep the calendar day."""
    if value in ("", None):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    return value


def _parse_datetime(value: Any) -> Any:  # noqa: ANN401
    """Parse PocketBase datetimes (``2024-01-05 10:00:00.000Z``) as aware UTC values."""
    if value in ("", None):
        return None
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace(" ", "T").replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_id_set(value: Any) -> Any:  # noqa: ANN401
    if value in ("", None):
        return set()
    return value


OptionalId = Annotated[str | None, BeforeValidator(blank_to_none)]
OptionalText = Annotated[str | None, BeforeValidator(blank_to_none)]
OptionalDate = Annotated[
    date | None,
    BeforeValidator(_parse_date),
    PlainSerializer(lambda v: v.isoformat() if v else None, return_type=str | None),
]
OptionalDatetime = Annotated[
    datetime | None,
    BeforeValidator(_parse_datetime),
    PlainSerializer(lambda v: v.isoformat() if v else None, return_type=str | None),
]
IdSet = Annotated[
    set[str],
    BeforeValidator(_to_id_set),
    PlainSerializer(lambda v: sorted(v), return_type=list[str]),
]


def blank_to(default: Any) -> BeforeValidator:  # noqa: ANN401
    """Validator mapping empty values (``""``, ``None``, ``0``) to ``default``."""
    return BeforeValidator(lambda value: value or default)
