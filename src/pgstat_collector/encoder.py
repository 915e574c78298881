"""
Snapshot encoders.

Two formats are supported:

- text: an aligned table per snapshot, header line first. Every column except
  the last is padded to its tracked width plus COLUMN_MARGIN; the last column
  (the query text) is written verbatim.
- jsonl: one JSON object per snapshot,
  {"when": <timestamp of the snapshot>, "records": [{column: value}, ...]}.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from pgstat_collector.render import ColumnKind, RowRenderer, Schema, kind_for
from pgstat_collector.widths import WidthState

COLUMN_MARGIN = 3


def encode_text(lines: Sequence[Sequence[str]], widths: Sequence[int]) -> str:
    """Render lines using the given widths; does not touch any width state."""
    if not widths:
        return "\n" * len(lines)

    last = len(widths) - 1
    buf: list[str] = []
    for line in lines:
        for cell, width in zip(line[:last], widths[:last]):
            buf.append(cell.ljust(width + COLUMN_MARGIN))
        buf.append(line[last])
        buf.append("\n")
    return "".join(buf)


def render_block(lines: Sequence[Sequence[str]], width_state: WidthState) -> str:
    """Measure pass (grow tracked widths) followed by the render pass."""
    widths = width_state.update(lines)
    return encode_text(lines, widths)


def _snapshot_time_column(schema: Schema) -> bool:
    return bool(schema) and schema[0].name == "now" and schema[0].kind is ColumnKind.TIMESTAMP


def encode_jsonl(rows: Sequence[Sequence[Any]], schema: Schema, renderer: RowRenderer) -> str:
    """
    One newline-terminated JSON object for the snapshot.

    A leading `now` column is lifted into "when" (taken from the first row) and
    left out of the records; without one, "when" is null.
    """
    for column in schema:
        kind_for(column)

    start = 1 if _snapshot_time_column(schema) else 0
    when = renderer.json_value(rows[0][0], schema[0]) if (start and rows) else None

    records: list[dict[str, Any]] = []
    for row in rows:
        records.append(
            {column.name: renderer.json_value(row[i], column) for i, column in enumerate(schema) if i >= start}
        )

    return json.dumps({"when": when, "records": records}, separators=(",", ":"), ensure_ascii=False) + "\n"
