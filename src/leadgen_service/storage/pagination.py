"""Keyset pagination with opaque continuation cursors.

A cursor encodes the sort field, the sort-key value of the last row
returned and that row's id. The id breaks ties between rows sharing a
sort-key value, so walking ``next_cursor`` until it disappears yields
every row exactly once.
"""

from __future__ import annotations

import base64
import binascii
import json
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, TypeVar

from sqlalchemy import Select, tuple_
from sqlalchemy.orm.attributes import InstrumentedAttribute

from leadgen_service.errors import ValidationFailure

_RowT = TypeVar("_RowT")


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortSpec:
    field: str
    direction: SortDirection = SortDirection.DESC


@dataclass(frozen=True)
class Cursor:
    """Decoded position: the last row's sort-key value and id."""

    field: str
    value: Any
    row_id: uuid.UUID


@dataclass(frozen=True)
class PageRequest:
    limit: int
    sort: SortSpec
    cursor: Cursor | None = None


@dataclass(frozen=True)
class SortableFields:
    """Allow-list of sortable columns for one entity."""

    columns: Mapping[str, InstrumentedAttribute[Any]]
    id_column: InstrumentedAttribute[Any]
    default: SortSpec


def parse_sort(raw: str | None, fields: SortableFields) -> SortSpec:
    """Parse ``field:dir``. Unknown fields fall back to the default field.

    Raises:
        ValidationFailure: direction is neither ``asc`` nor ``desc``.
    """
    if not raw:
        return fields.default
    name, _, direction = raw.partition(":")
    name = name.strip()
    if name not in fields.columns:
        name = fields.default.field
    if not direction:
        return SortSpec(field=name, direction=fields.default.direction)
    try:
        parsed = SortDirection(direction.strip().lower())
    except ValueError:
        raise ValidationFailure("sort direction must be asc or desc") from None
    return SortSpec(field=name, direction=parsed)


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _decode_value(raw: Any, column: InstrumentedAttribute[Any]) -> Any:
    python_type = column.type.python_type
    if python_type is datetime:
        if not isinstance(raw, str):
            raise ValueError("expected ISO timestamp")
        return datetime.fromisoformat(raw)
    if python_type is int:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValueError("expected integer")
        return raw
    if python_type is str:
        if not isinstance(raw, str):
            raise ValueError("expected string")
        return raw
    return raw


def encode_cursor(field: str, value: Any, row_id: uuid.UUID) -> str:
    """Serialize a position into an opaque URL-safe token."""
    payload = json.dumps(
        {"f": field, "v": _encode_value(value), "id": str(row_id)},
        separators=(",", ":"),
    )
    return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")


def decode_cursor(token: str, sort: SortSpec, fields: SortableFields) -> Cursor:
    """Decode and type-check a cursor against the requested sort.

    Raises:
        ValidationFailure: malformed token, a value of the wrong type,
            or a cursor issued for a different sort field.
    """
    try:
        padded = token + "=" * (-len(token) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        field = data["f"]
        row_id = uuid.UUID(data["id"])
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeDecodeError):
        raise ValidationFailure("cursor is malformed") from None
    if field != sort.field:
        raise ValidationFailure("cursor does not match the requested sort")
    try:
        value = _decode_value(data.get("v"), fields.columns[field])
    except ValueError as exc:
        raise ValidationFailure(f"cursor value is invalid: {exc}") from None
    return Cursor(field=field, value=value, row_id=row_id)


def build_page_request(
    *,
    limit: int,
    cursor: str | None,
    sort: str | None,
    fields: SortableFields,
) -> PageRequest:
    spec = parse_sort(sort, fields)
    decoded = decode_cursor(cursor, spec, fields) if cursor else None
    return PageRequest(limit=limit, sort=spec, cursor=decoded)


def apply_page(
    stmt: Select[Any], page: PageRequest, fields: SortableFields
) -> Select[Any]:
    """Order, position and bound a select for one page.

    Fetches ``limit + 1`` rows so the caller can tell whether another
    page exists. The comparison operator follows the sort direction:
    ``<`` for descending, ``>`` for ascending.
    """
    column = fields.columns[page.sort.field]
    id_column = fields.id_column
    descending = page.sort.direction == SortDirection.DESC

    if page.cursor is not None:
        position = tuple_(column, id_column)
        anchor = tuple_(page.cursor.value, page.cursor.row_id)
        stmt = stmt.where(position < anchor if descending else position > anchor)

    if descending:
        stmt = stmt.order_by(column.desc(), id_column.desc())
    else:
        stmt = stmt.order_by(column.asc(), id_column.asc())
    return stmt.limit(page.limit + 1)


def split_page(
    rows: Sequence[_RowT], page: PageRequest
) -> tuple[list[_RowT], str | None]:
    """Trim the look-ahead row and derive ``next_cursor`` from the last kept row."""
    if len(rows) <= page.limit:
        return list(rows), None
    kept = list(rows[: page.limit])
    last: Any = kept[-1]
    field = page.sort.field
    return kept, encode_cursor(field, getattr(last, field), last.id)
