"""
Compressed, append-only snapshot log.

One zstd frame per run. Every write is followed by a block flush so the file
can be decompressed up to the last complete snapshot while the collector is
still running; finish() writes the frame trailer and closes the file.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Optional

import zstandard as zstd

from pgstat_collector.exceptions import OutputError

logger = logging.getLogger(__name__)

FILE_PREFIX = "stat-activity-"
EXTENSIONS = {"text": ".txt.zst", "jsonl": ".jsonl.zst"}


def output_filename(started_at: datetime, output_format: str = "text") -> str:
    """e.g. stat-activity-2024-05-01T12:00:00Z.txt.zst (sorts by start time)."""
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    stamp = started_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"{FILE_PREFIX}{stamp}{EXTENSIONS[output_format]}"


class SnapshotLog:
    """
    Write side of the output file.

    Example:
        with SnapshotLog.create(out_dir, started_at, level=9) as log:
            log.write(block)
    """

    def __init__(self, fh: BinaryIO, path: Optional[Path] = None, level: int = 9):
        self.path = path
        self._writer = zstd.ZstdCompressor(level=level).stream_writer(fh, closefd=True)
        self._finished = False
        self.bytes_written = 0

    @classmethod
    def create(
        cls,
        out_dir: str | Path,
        started_at: datetime,
        output_format: str = "text",
        level: int = 9,
    ) -> "SnapshotLog":
        path = Path(out_dir) / output_filename(started_at, output_format)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fh = open(path, "xb")
        except OSError as e:
            raise OutputError(f"creating output file {path}") from e
        logger.info(f"writing snapshots to {path}")
        return cls(fh, path=path, level=level)

    @property
    def finished(self) -> bool:
        return self._finished

    def write(self, text: str) -> None:
        if self._finished:
            raise OutputError("writing to a finished output file")
        data = text.encode("utf-8")
        try:
            self._writer.write(data)
        except (OSError, zstd.ZstdError) as e:
            raise OutputError("writing compressed data") from e
        try:
            self._writer.flush(zstd.FLUSH_BLOCK)
        except (OSError, zstd.ZstdError) as e:
            raise OutputError("flushing compressed data") from e
        self.bytes_written += len(data)

    def finish(self) -> None:
        """Write the frame trailer and close the file. Safe to call twice."""
        if self._finished:
            return
        self._finished = True
        try:
            self._writer.close()
        except (OSError, zstd.ZstdError) as e:
            raise OutputError("finalising output file") from e

    def __enter__(self) -> "SnapshotLog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finish()
        return False


def read_snapshot_log(path: str | Path) -> str:
    """Decompress a (possibly unfinished) snapshot log to text."""
    data = Path(path).read_bytes()
    return zstd.ZstdDecompressor().decompressobj().decompress(data).decode("utf-8")
