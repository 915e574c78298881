"""
Row rendering: database rows -> display strings.

The snapshot query returns a known, fixed set of column types. Each type tag
maps onto one of three kinds (timestamp, integer-like, text-like); any other
tag is a RenderError, since it means the result shape is not what the
collector was built for.

Usage:
    from pgstat_collector.render import RowRenderer, schema_from_description

    renderer = RowRenderer()
    schema = schema_from_description(cursor.description)
    lines = renderer.render_snapshot(rows, schema)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from pgstat_collector.exceptions import RenderError


class ColumnKind(Enum):
    TIMESTAMP = "timestamp"
    INTEGER = "integer"
    TEXT = "text"


TYPE_TAGS: dict[str, ColumnKind] = {
    "timestamptz": ColumnKind.TIMESTAMP,
    "oid": ColumnKind.INTEGER,
    "int2": ColumnKind.INTEGER,
    "int4": ColumnKind.INTEGER,
    "int8": ColumnKind.INTEGER,
    "name": ColumnKind.TEXT,
    "text": ColumnKind.TEXT,
    "varchar": ColumnKind.TEXT,
    "bpchar": ColumnKind.TEXT,
}

# pg_type OIDs as reported in cursor.description by psycopg2
PG_TYPE_OIDS: dict[int, str] = {
    19: "name",
    20: "int8",
    21: "int2",
    23: "int4",
    25: "text",
    26: "oid",
    1042: "bpchar",
    1043: "varchar",
    1184: "timestamptz",
}

WHITESPACE = r"\s+"


@dataclass(frozen=True)
class Column:
    name: str
    type_tag: str

    @property
    def kind(self) -> ColumnKind:
        return kind_for(self)


Schema = tuple[Column, ...]


def kind_for(column: Column) -> ColumnKind:
    """Resolve a column's kind; unknown tags raise RenderError."""
    try:
        return TYPE_TAGS[column.type_tag]
    except KeyError:
        raise RenderError(column.name, column.type_tag) from None


def type_tag_for_oid(type_code: Any) -> str:
    """Map a driver type code to a pg type name (e.g. 1184 -> 'timestamptz')."""
    if isinstance(type_code, str):
        return type_code
    try:
        return PG_TYPE_OIDS[int(type_code)]
    except (KeyError, TypeError, ValueError):
        return f"oid:{type_code}"


def schema_from_description(description: Optional[Sequence[Sequence[Any]]]) -> Schema:
    """
    Build a Schema from a DB-API cursor.description.

    Only the first two entries of each description item are used
    (name, type_code), so plain tuples work as well as driver column objects.
    """
    if not description:
        return ()
    return tuple(Column(name=str(d[0]), type_tag=type_tag_for_oid(d[1])) for d in description)


def format_timestamp(value: Optional[datetime]) -> str:
    """ISO-8601 at microsecond precision in UTC, e.g. 2024-05-01T12:00:00.000000Z."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class RowRenderer:
    """
    Converts rows to lists of display strings, one per schema column.

    The whitespace pattern is compiled once and reused for every text cell.
    """

    def __init__(self, whitespace: Optional[re.Pattern[str]] = None):
        self.whitespace = whitespace if whitespace is not None else re.compile(WHITESPACE)

    def clean(self, text: str) -> str:
        return self.whitespace.sub(" ", text)

    def render_value(self, value: Any, column: Column) -> str:
        kind = kind_for(column)
        if value is None:
            return ""
        if kind is ColumnKind.TIMESTAMP:
            return format_timestamp(value)
        if kind is ColumnKind.INTEGER:
            return str(int(value))
        if kind is ColumnKind.TEXT:
            return self.clean(str(value))
        raise RenderError(column.name, column.type_tag)

    def render_row(self, row: Sequence[Any], schema: Schema) -> list[str]:
        return [self.render_value(row[i], column) for i, column in enumerate(schema)]

    def render_snapshot(self, rows: Iterable[Sequence[Any]], schema: Schema) -> list[list[str]]:
        """Header row (column names) followed by every rendered row."""
        # Resolve every kind up front so an unsupported type fails even on an empty snapshot
        for column in schema:
            kind_for(column)
        lines = [[column.name for column in schema]]
        lines.extend(self.render_row(row, schema) for row in rows)
        return lines

    def json_value(self, value: Any, column: Column) -> Any:
        """Typed value for the JSON-lines format (None stays None)."""
        kind = kind_for(column)
        if value is None:
            return None
        if kind is ColumnKind.TIMESTAMP:
            return format_timestamp(value)
        if kind is ColumnKind.INTEGER:
            return int(value)
        return str(value)
