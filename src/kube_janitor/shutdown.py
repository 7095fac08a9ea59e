# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Graceful shutdown with a safe-to-exit gate.

SIGINT/SIGTERM request shutdown. While a cleanup run is in progress the
gate is marked unsafe and the exit is deferred until the run settles; the
``shutdown_requested`` event doubles as the run's cancellation signal so
no new work is dispatched in the meantime.
"""

import logging
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Sequence

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class GracefulShutdown:
    """Coordinates process exit with in-flight cleanup work.

    Attributes:
        shutdown_requested: Set once SIGINT/SIGTERM arrives.
        exit_code: Status passed to the exit function, including a
            deferred exit.

    Example:
        >>> shutdown = GracefulShutdown().install()
        >>> with shutdown.unsafe():
        ...     runner.run_once(cancel=shutdown.shutdown_requested)
    """

    def __init__(self, exit_func: Callable[[int], None] = sys.exit):
        self.shutdown_requested = threading.Event()
        self._safe_to_exit = True
        self._lock = threading.Lock()
        self._exit = exit_func
        self.exit_code = 0

    def install(self, signals: Sequence[int] = DEFAULT_SIGNALS) -> "GracefulShutdown":
        """Install handlers for the given signals (main thread only)."""
        for sig in signals:
            signal.signal(sig, self._handle_signal)
        return self

    def _handle_signal(self, signum, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self.request_shutdown()

    def request_shutdown(self) -> None:
        """Request shutdown; exits now if no cleanup is in progress."""
        self.shutdown_requested.set()
        if self.is_safe_to_exit():
            self._exit(self.exit_code)
        else:
            logger.info("Cleanup in progress, exit deferred until it completes")

    def is_safe_to_exit(self) -> bool:
        with self._lock:
            return self._safe_to_exit

    def set_safe_to_exit(self, safe: bool) -> None:
        """Open or close the gate; opening it completes a pending shutdown."""
        with self._lock:
            self._safe_to_exit = safe
        if safe and self.shutdown_requested.is_set():
            self._exit(self.exit_code)

    @contextmanager
    def unsafe(self) -> Iterator[None]:
        """Mark the gate unsafe for the duration of the block."""
        self.set_safe_to_exit(False)
        try:
            yield
        finally:
            self.set_safe_to_exit(True)

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if shutdown was requested."""
        return self.shutdown_requested.wait(timeout)
