# src/pgstat_collector/__init__.py
from __future__ import annotations

from .collector import Collector, snapshot_once
from .config import Settings, load_settings
from .connection import ConnectionManager, SessionHandle
from .encoder import COLUMN_MARGIN, encode_jsonl, encode_text, render_block
from .exceptions import (
    CollectorError,
    ConfigError,
    ConnectError,
    FetchError,
    OutputError,
    RenderError,
)
from .output import SnapshotLog
from .render import Column, ColumnKind, RowRenderer
from .shutdown import SECOND_INTERRUPT_EXIT_CODE, ShutdownCoordinator, ShutdownState
from .widths import WidthState

__all__ = [
    "Collector", "snapshot_once",
    "Settings", "load_settings",
    "ConnectionManager", "SessionHandle",
    "COLUMN_MARGIN", "encode_jsonl", "encode_text", "render_block",
    "CollectorError", "ConfigError", "ConnectError", "FetchError", "OutputError", "RenderError",
    "SnapshotLog",
    "Column", "ColumnKind", "RowRenderer",
    "SECOND_INTERRUPT_EXIT_CODE", "ShutdownCoordinator", "ShutdownState",
    "WidthState",
]
__version__ = "0.1.0"
