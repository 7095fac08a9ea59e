# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Janitor scheduling logic.

Determines when the next cleanup run is due in the periodic loop.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from kube_janitor.janitor.ttl import utc_now


class JanitorScheduler:
    """Scheduler for periodic cleanup runs.

    Attributes:
        interval_seconds: Seconds between the start of two runs.
        clock: Returns the current aware UTC time.

    Example:
        >>> scheduler = JanitorScheduler(interval_seconds=30)
        >>> if scheduler.should_run(last_run):
        ...     runner.run_once()
    """

    def __init__(self, interval_seconds: int = 30, clock: Callable[[], datetime] = utc_now):
        """Initialize the scheduler.

        Args:
            interval_seconds: Seconds between runs (default 30).
            clock: Time source, injectable for tests.
        """
        self.interval_seconds = interval_seconds
        self.clock = clock

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)

    def should_run(self, last_run: Optional[datetime] = None) -> bool:
        """Determine if a run is due now.

        Args:
            last_run: Start time of the previous run.

        Returns:
            True if the janitor should run.
        """
        if last_run is None:
            return True

        # Ensure timezone aware comparison
        if last_run.tzinfo is None:
            last_run = last_run.replace(tzinfo=timezone.utc)

        return self.clock() - last_run >= self.interval

    def get_next_run(self, last_run: Optional[datetime] = None) -> datetime:
        """Calculate the next scheduled run time.

        Args:
            last_run: Start time of the previous run.

        Returns:
            Datetime of the next run; never in the past.
        """
        now = self.clock()

        if last_run is None:
            return now

        if last_run.tzinfo is None:
            last_run = last_run.replace(tzinfo=timezone.utc)

        next_run = last_run + self.interval

        # Overran the interval: run again immediately
        if next_run < now:
            return now

        return next_run

    def seconds_until_next_run(self, last_run: Optional[datetime] = None) -> float:
        return max(0.0, (self.get_next_run(last_run) - self.clock()).total_seconds())
