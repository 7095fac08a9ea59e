# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Concurrent dispatcher.

Fans resources through the lifecycle engine with a bounded worker pool,
processing each ``(kind, namespace, name)`` identity at most once per run.

Thread Safety:
- The coordinator thread enumerates resources and fills a bounded queue
- DedupSet and Counters each own a lock
- Rules and type descriptors are read-only after load and need no lock
"""

import logging
import os
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Set

from kube_janitor.janitor.context import RunCache
from kube_janitor.janitor.decision import LifecycleEngine
from kube_janitor.janitor.resource import Identity, Resource

logger = logging.getLogger(__name__)

RESOURCES_PROCESSED = "resources-processed"
RESOURCES_FAILED = "resources-failed"

_STOP = object()


class DedupSet:
    """Identities seen in the current run."""

    def __init__(self):
        self._seen: Set[Identity] = set()
        self._lock = threading.Lock()

    def add(self, identity: Identity) -> bool:
        """Atomically add an identity.

        Returns:
            True if the identity was new, False if already present.
        """
        with self._lock:
            if identity in self._seen:
                return False
            self._seen.add(identity)
            return True

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


class Counters:
    """Run-wide named counters.

    Example:
        >>> counters = Counters()
        >>> counters.increment("resources-processed")
        >>> counters.merge({"pods-deleted": 2})
        >>> counters.snapshot()
        {'pods-deleted': 2, 'resources-processed': 1}
    """

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] = self._counts.get(name, 0) + amount

    def merge(self, increments: Mapping[str, int]) -> None:
        with self._lock:
            for name, amount in increments.items():
                self._counts[name] = self._counts.get(name, 0) + amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts.get(name, 0)

    def snapshot(self) -> Dict[str, int]:
        """Copy of all counters, sorted by name."""
        with self._lock:
            return dict(sorted(self._counts.items()))


@dataclass
class RunScope:
    """State shared by all workers for exactly one run."""

    cache: RunCache = field(default_factory=RunCache)
    seen: DedupSet = field(default_factory=DedupSet)
    counters: Counters = field(default_factory=Counters)


@dataclass
class RunSummary:
    """Counters and timing of one completed run."""

    counters: Dict[str, int]
    duration_ms: float
    cancelled: bool = False

    def format(self) -> str:
        return ", ".join(f"{name}={value}" for name, value in self.counters.items())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "duration_ms": self.duration_ms,
            "cancelled": self.cancelled,
        }


class Dispatcher:
    """Bounded worker pool around a LifecycleEngine.

    Attributes:
        engine: Decision engine applied to every resource.
        parallelism: Number of worker threads.
        queue_size: Capacity of the work queue.

    Example:
        >>> dispatcher = Dispatcher(engine, parallelism=4)
        >>> summary = dispatcher.run(iter_resources(), cancel=shutdown_event)
        >>> summary.counters["resources-processed"]
        42
    """

    def __init__(
        self,
        engine: LifecycleEngine,
        parallelism: int = 0,
        queue_size: Optional[int] = None,
    ):
        self.engine = engine
        self.parallelism = parallelism if parallelism > 0 else (os.cpu_count() or 1)
        self.queue_size = queue_size if queue_size and queue_size > 0 else self.parallelism * 4

    def run(
        self,
        resources: Iterable[Resource],
        cancel: Optional[threading.Event] = None,
    ) -> RunSummary:
        """Process resources until exhausted or cancelled.

        ``resources`` may be a lazy iterator; it is consumed on the
        calling thread. Once ``cancel`` is set no further resources are
        dispatched, and items already queued are dropped; in-flight
        decisions complete.

        Args:
            resources: Resources to process.
            cancel: Cancellation signal.

        Returns:
            Summary built after all workers have finished.
        """
        cancel = cancel or threading.Event()
        scope = RunScope()
        start_time = time.perf_counter()

        work: "queue.Queue[Any]" = queue.Queue(maxsize=self.queue_size)
        workers = [
            threading.Thread(
                target=self._work,
                args=(worker_id, work, scope, cancel),
                name=f"janitor-worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(self.parallelism)
        ]
        logger.debug(f"Starting {len(workers)} workers")
        for worker in workers:
            worker.start()

        try:
            for resource in resources:
                if cancel.is_set():
                    logger.info("Cancellation requested, no further resources will be dispatched")
                    break
                work.put(resource)
        finally:
            for _ in workers:
                work.put(_STOP)
            for worker in workers:
                worker.join()

        duration_ms = (time.perf_counter() - start_time) * 1000
        summary = RunSummary(
            counters=scope.counters.snapshot(),
            duration_ms=duration_ms,
            cancelled=cancel.is_set(),
        )
        logger.info(f"Clean up run completed: {summary.format()}")
        return summary

    def _work(
        self,
        worker_id: int,
        work: "queue.Queue[Any]",
        scope: RunScope,
        cancel: threading.Event,
    ) -> None:
        while True:
            item = work.get()
            try:
                if item is _STOP:
                    logger.debug(f"Worker {worker_id} finished")
                    return
                if cancel.is_set():
                    continue
                self._process(worker_id, item, scope)
            finally:
                work.task_done()

    def _process(self, worker_id: int, resource: Resource, scope: RunScope) -> None:
        if not scope.seen.add(resource.identity):
            logger.debug(f"Worker {worker_id}: skipping already processed {resource}")
            return

        scope.counters.increment(RESOURCES_PROCESSED)
        try:
            evaluation = self.engine.process(resource, scope.cache)
        except Exception as e:
            logger.error(f"Worker {worker_id}: error handling {resource}: {e}")
            scope.counters.increment(RESOURCES_FAILED)
            return

        scope.counters.merge(evaluation.counters)
