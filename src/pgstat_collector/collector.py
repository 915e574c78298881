"""
Collection loop.

Each cycle: fetch (with one reconnect-and-retry) -> render -> append to the
compressed log -> stop if max uptime has passed -> wait up to one poll
interval for a shutdown request. The session is closed and the log finalised
on every way out of the loop, including errors.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pgstat_collector.config import Settings
from pgstat_collector.connection import ConnectionManager, SessionHandle
from pgstat_collector.encoder import encode_jsonl, render_block
from pgstat_collector.output import SnapshotLog
from pgstat_collector.render import RowRenderer, Schema
from pgstat_collector.shutdown import ShutdownCoordinator
from pgstat_collector.widths import WidthState

logger = logging.getLogger(__name__)

EXIT_OK = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Collector:
    """
    Owns the session handle, the width state and the output log for one run.

    Args:
        settings: validated Settings
        manager: ConnectionManager (connect / fetch_with_retry / close)
        coordinator: ShutdownCoordinator polled once per cycle
        renderer: RowRenderer; one is created if not given
        clock: monotonic seconds, used for max uptime
        now: wall-clock UTC time, used for the output file name
        log_factory: opens the SnapshotLog (SnapshotLog.create signature)
    """

    def __init__(
        self,
        settings: Settings,
        manager: Optional[ConnectionManager] = None,
        coordinator: Optional[ShutdownCoordinator] = None,
        renderer: Optional[RowRenderer] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
        log_factory: Callable[..., SnapshotLog] = SnapshotLog.create,
    ):
        self.settings = settings
        self.manager = manager or ConnectionManager(settings)
        self.coordinator = coordinator or ShutdownCoordinator()
        self.renderer = renderer or RowRenderer()
        self.clock = clock
        self.now = now
        self.log_factory = log_factory

        self.widths = WidthState()
        self.schema: Schema = ()
        self.handle: Optional[SessionHandle] = None
        self.log: Optional[SnapshotLog] = None
        self.cycles = 0

    def encode(self, schema: Schema, rows: list[Any]) -> str:
        if self.settings.output_format == "jsonl":
            self.schema = schema
            return encode_jsonl(rows, schema, self.renderer)

        if schema != self.schema:
            if self.schema:
                logger.info(
                    f"result columns changed from {[c.name for c in self.schema]} to {[c.name for c in schema]}"
                )
            self.widths.resize(len(schema))
            self.schema = schema
        lines = self.renderer.render_snapshot(rows, schema)
        return render_block(lines, self.widths)

    def run(self) -> int:
        self.handle = self.manager.connect()
        started = self.clock()

        try:
            self.log = self.log_factory(
                self.settings.out_dir,
                self.now(),
                output_format=self.settings.output_format,
                level=self.settings.compression_level,
            )
        except BaseException:
            self.manager.close(self.handle)
            raise

        try:
            self._loop(started)
        finally:
            self.manager.close(self.handle)
            self.log.finish()

        logger.info(f"clean exit after {self.cycles} snapshot(s)")
        return EXIT_OK

    def _loop(self, started: float) -> None:
        while True:
            self.handle, schema, rows = self.manager.fetch_with_retry(self.handle)
            self.log.write(self.encode(schema, rows))
            self.cycles += 1
            logger.debug(f"snapshot {self.cycles}: {len(rows)} session(s)")

            if self.clock() - started > self.settings.max_uptime:
                logger.info(f"max uptime of {self.settings.max_uptime:g}s reached")
                return

            if self.coordinator.wait(self.settings.poll_interval):
                return


def snapshot_once(settings: Settings, manager: Optional[ConnectionManager] = None) -> str:
    """Connect, take one snapshot, and return it as an aligned text block."""
    manager = manager or ConnectionManager(settings)
    handle = manager.connect()
    try:
        handle, schema, rows = manager.fetch_with_retry(handle)
    finally:
        manager.close(handle)
    lines = RowRenderer().render_snapshot(rows, schema)
    return render_block(lines, WidthState(len(schema)))
