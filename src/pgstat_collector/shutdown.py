"""
Cooperative shutdown on SIGINT/SIGTERM.

The first signal posts one token into a capacity-one channel which the
collection loop polls once per cycle. A second signal, while the token is
still pending or after the loop has stopped listening, ends the process
immediately with SECOND_INTERRUPT_EXIT_CODE and skips all cleanup.

The signal handler does no I/O and allocates nothing beyond the token;
SimpleQueue.put is re-entrant so it is safe to call from a handler that
interrupts the waiting main thread.
"""

from __future__ import annotations

import logging
import os
import queue
import signal
from enum import Enum
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

SECOND_INTERRUPT_EXIT_CODE = 6

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownState(Enum):
    ARMED = "armed"
    NOTIFIED = "notified"
    CLOSED = "closed"


class ShutdownCoordinator:
    """
    Bridges asynchronous signals into a single poll point.

    Example:
        with ShutdownCoordinator() as shutdown:
            while True:
                do_work()
                if shutdown.wait(poll_interval):
                    break
    """

    def __init__(self, exit_func: Callable[[int], Any] = os._exit):
        self._exit = exit_func
        self._channel: queue.SimpleQueue = queue.SimpleQueue()
        self.state = ShutdownState.ARMED
        self._previous: dict[int, Any] = {}

    def install(self, signals: Iterable[int] = DEFAULT_SIGNALS) -> "ShutdownCoordinator":
        for signum in signals:
            self._previous[signum] = signal.signal(signum, self._handle)
        return self

    def uninstall(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()

    def _handle(self, signum, frame) -> None:
        self.notify()

    def notify(self) -> None:
        if self.state is ShutdownState.ARMED:
            self.state = ShutdownState.NOTIFIED
            self._channel.put(None)
        else:
            self._exit(SECOND_INTERRUPT_EXIT_CODE)

    def wait(self, timeout: Optional[float]) -> bool:
        """
        Block up to `timeout` seconds for a shutdown request.

        Returns True if one was received (or the channel is closed), in which
        case the coordinator moves to CLOSED; False on timeout.
        """
        if self.state is ShutdownState.CLOSED:
            return True
        try:
            self._channel.get(timeout=timeout)
        except queue.Empty:
            return False
        self.state = ShutdownState.CLOSED
        logger.info("started clean shutdown")
        return True

    def close(self) -> None:
        self.state = ShutdownState.CLOSED

    @property
    def requested(self) -> bool:
        return self.state is not ShutdownState.ARMED

    def __enter__(self) -> "ShutdownCoordinator":
        if not self._previous:
            self.install()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # handlers stay installed: a signal during final cleanup must still kill
        self.close()
        return False
