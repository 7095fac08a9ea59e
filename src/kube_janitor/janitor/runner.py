# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Janitor runner for orchestrating cleanup runs.

One run discovers resource types, lists namespaces and then every
included type per namespace, and feeds the objects lazily through the
dispatcher. Namespace objects are dispatched first.
"""

import logging
import threading
import time
from typing import Iterator, List, Optional, Sequence

from kube_janitor.errors import JanitorError, TransportError
from kube_janitor.extensions.protocols import ClusterClient
from kube_janitor.janitor.catalog import ResourceTypeDescriptor, discover_resource_types
from kube_janitor.janitor.decision import LifecycleEngine
from kube_janitor.janitor.dispatcher import Dispatcher, RunSummary
from kube_janitor.janitor.filters import NAMESPACES, ResourceFilter
from kube_janitor.janitor.resource import Resource
from kube_janitor.janitor.scheduler import JanitorScheduler
from kube_janitor.shutdown import GracefulShutdown

logger = logging.getLogger(__name__)

NAMESPACE_KIND = "Namespace"


class JanitorRunner:
    """Orchestrates cleanup runs.

    Attributes:
        client: Cluster API client used for discovery and listing.
        engine: Lifecycle decision engine.
        resource_filter: Type and namespace inclusion rules.
        dispatcher: Worker pool the resources are fed through.

    Example:
        >>> runner = JanitorRunner(client, engine, ResourceFilter(), parallelism=8)
        >>> summary = runner.run_once()
        >>> print(summary.counters)
    """

    def __init__(
        self,
        client: ClusterClient,
        engine: LifecycleEngine,
        resource_filter: Optional[ResourceFilter] = None,
        parallelism: int = 0,
        dispatcher: Optional[Dispatcher] = None,
    ):
        """Initialize the janitor runner.

        Args:
            client: Cluster API client.
            engine: Decision engine applied to every resource.
            resource_filter: Inclusion rules (includes everything if not provided).
            parallelism: Worker count for the default dispatcher.
            dispatcher: Custom dispatcher (creates default if not provided).
        """
        self.client = client
        self.engine = engine
        self.resource_filter = resource_filter or ResourceFilter()
        self.dispatcher = dispatcher or Dispatcher(engine, parallelism=parallelism)

    def run_once(self, cancel: Optional[threading.Event] = None) -> RunSummary:
        """Run one cleanup pass.

        Args:
            cancel: Stops dispatching new resources once set.

        Returns:
            Summary of the run.

        Raises:
            TransportError: If resource types or namespaces cannot be
                listed. Nothing is processed in that case.
        """
        start_time = time.perf_counter()
        logger.debug("Starting cleanup run")

        resource_types = discover_resource_types(self.client)
        logger.debug(f"Found {len(resource_types)} resource types")

        namespace_type = self._namespace_type(resource_types)
        namespaces = self._list_namespaces(namespace_type)
        logger.debug(f"Found {len(namespaces)} namespaces")

        resources = self._iter_resources(resource_types, namespace_type, namespaces, cancel)
        summary = self.dispatcher.run(resources, cancel=cancel)

        duration = time.perf_counter() - start_time
        logger.info(f"Cleanup completed in {duration:.2f}s")
        return summary

    def run_forever(self, shutdown: GracefulShutdown, scheduler: JanitorScheduler) -> None:
        """Run cleanup passes on the scheduler's interval until shutdown.

        Run errors are logged and the loop continues with the next run.
        The shutdown gate is held unsafe while a run is in progress.
        """
        last_run = None
        while not shutdown.shutdown_requested.is_set():
            if scheduler.should_run(last_run):
                last_run = scheduler.clock()
                with shutdown.unsafe():
                    try:
                        self.run_once(cancel=shutdown.shutdown_requested)
                    except JanitorError as e:
                        logger.error(f"Error during cleanup: {e}")

            if shutdown.wait(scheduler.seconds_until_next_run(last_run)):
                break

        logger.info("Janitor stopped")

    def _namespace_type(self, resource_types: Sequence[ResourceTypeDescriptor]) -> ResourceTypeDescriptor:
        for rt in resource_types:
            if rt.group == "" and rt.plural == NAMESPACES:
                return rt
        return ResourceTypeDescriptor(
            group="", version="v1", kind=NAMESPACE_KIND, plural=NAMESPACES, namespaced=False
        )

    def _list_namespaces(self, namespace_type: ResourceTypeDescriptor) -> List[Resource]:
        try:
            items = self.client.list_objects(namespace_type.group_version, NAMESPACES)
        except TransportError as e:
            raise TransportError(f"failed to list namespaces: {e}") from e
        return [self._to_resource(obj, namespace_type) for obj in items]

    def _iter_resources(
        self,
        resource_types: Sequence[ResourceTypeDescriptor],
        namespace_type: ResourceTypeDescriptor,
        namespaces: Sequence[Resource],
        cancel: Optional[threading.Event],
    ) -> Iterator[Resource]:
        for namespace in namespaces:
            if self.resource_filter.wants(namespace):
                yield namespace
            else:
                logger.debug(f"Namespace {namespace.name} does not match filters, skipping")

        namespace_names = [
            ns.name for ns in namespaces if self.resource_filter.includes_namespace(ns.name)
        ]

        for rt in resource_types:
            if cancel is not None and cancel.is_set():
                return
            if rt.key == namespace_type.key:
                continue
            if not self.resource_filter.wants_type(rt):
                logger.debug(f"Skipping resource type {rt.key}")
                continue

            if rt.namespaced:
                for namespace_name in namespace_names:
                    if cancel is not None and cancel.is_set():
                        return
                    yield from self._list(rt, namespace_name)
            else:
                yield from self._list(rt, None)

    def _list(self, rt: ResourceTypeDescriptor, namespace: Optional[str]) -> Iterator[Resource]:
        where = f" in namespace {namespace}" if namespace else ""
        try:
            items = self.client.list_objects(rt.group_version, rt.plural, namespace)
        except TransportError as e:
            logger.warning(f"Error listing {rt.kind}{where}: {e}")
            return

        logger.debug(f"Found {len(items)} {rt.plural}{where}")
        for obj in items:
            resource = self._to_resource(obj, rt)
            if self.resource_filter.wants(resource):
                yield resource

    @staticmethod
    def _to_resource(obj: dict, rt: ResourceTypeDescriptor) -> Resource:
        return Resource.from_dict(obj, kind=rt.kind, api_version=rt.group_version, plural=rt.plural)
