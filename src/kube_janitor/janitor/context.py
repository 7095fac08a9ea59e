# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Resource context: derived facts available to rule predicates.

Facts are merged from built-in analysis (currently PersistentVolumeClaim
usage) and the configured resource context hook, in that order, so hook
facts overwrite built-in ones.

The RunCache lives for exactly one cleanup run and is shared by all
workers. Hooks use it to compute values at most once per run.
"""

import logging
import re
import threading
from typing import Any, Callable, Dict, Iterable, Optional

from kube_janitor.extensions.protocols import ClusterClient, ContextHook
from kube_janitor.janitor.resource import Resource

logger = logging.getLogger(__name__)

PVC_KIND = "persistentvolumeclaim"

PVC_NOT_MOUNTED = "pvc_is_not_mounted"
PVC_NOT_REFERENCED = "pvc_is_not_referenced"

_MISSING = object()


class RunCache:
    """Write-once, read-many mapping shared by all workers of one run.

    Thread-safe: ``get_or_set`` holds the cache lock while computing a
    missing value, so the first writer wins and later callers observe the
    cached value without recomputing it.

    Example:
        >>> cache = RunCache()
        >>> cache.get_or_set("dice", lambda: 4)
        4
        >>> cache.get_or_set("dice", lambda: 6)
        4
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = threading.RLock()

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, computing it if missing."""
        with self._lock:
            value = self._data.get(key, _MISSING)
            if value is _MISSING:
                value = factory()
                self._data[key] = value
            return value

    def setdefault(self, key: str, value: Any) -> Any:
        """Store ``value`` unless ``key`` is already set; return the stored value."""
        return self.get_or_set(key, lambda: value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def _volumes_reference_claim(volumes: Optional[Iterable[Any]], claim_name: str) -> bool:
    for volume in volumes or []:
        if not isinstance(volume, dict):
            continue
        pvc = volume.get("persistentVolumeClaim") or {}
        if pvc.get("claimName") == claim_name:
            return True
    return False


def _dig(obj: Dict[str, Any], *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _name(obj: Dict[str, Any]) -> str:
    return _dig(obj, "metadata", "name") or ""


class ContextProvider:
    """Computes context facts for a resource.

    Attributes:
        client: Cluster API client used by the built-in analysis.
        hook: Optional resource context hook.

    Example:
        >>> provider = ContextProvider(client, hook=random_dice)
        >>> provider.get_context(pvc, RunCache())
        {'pvc_is_not_mounted': True, 'pvc_is_not_referenced': True, 'random_dice': 3}
    """

    def __init__(self, client: ClusterClient, hook: Optional[ContextHook] = None):
        self.client = client
        self.hook = hook

    def get_context(self, resource: Resource, cache: RunCache) -> Dict[str, Any]:
        """Build the context for one resource.

        Args:
            resource: Resource being evaluated.
            cache: Run-scoped cache passed to the hook.

        Returns:
            Merged context facts.

        Raises:
            TransportError: If the built-in analysis cannot list the
                collections it needs.
        """
        context: Dict[str, Any] = {}

        if resource.kind.lower() == PVC_KIND:
            context.update(self.get_pvc_context(resource))

        if self.hook is not None:
            context.update(self.hook(resource, cache) or {})

        return context

    def get_pvc_context(self, pvc: Resource) -> Dict[str, bool]:
        """Check whether a claim is mounted by pods or referenced by workloads."""
        namespace = pvc.namespace
        claim_name = pvc.name

        mounted = self._is_mounted(namespace, claim_name)
        referenced = self._is_referenced_by_statefulset(namespace, claim_name)
        if not referenced:
            referenced = self._is_referenced_by_pod_template(namespace, claim_name)

        return {
            PVC_NOT_MOUNTED: not mounted,
            PVC_NOT_REFERENCED: not referenced,
        }

    def _is_mounted(self, namespace: str, claim_name: str) -> bool:
        for pod in self.client.list_objects("v1", "pods", namespace):
            if _volumes_reference_claim(_dig(pod, "spec", "volumes"), claim_name):
                logger.debug(f"PVC {namespace}/{claim_name} is mounted by pod {_name(pod)}")
                return True
        return False

    def _is_referenced_by_statefulset(self, namespace: str, claim_name: str) -> bool:
        for sts in self.client.list_objects("apps/v1", "statefulsets", namespace):
            sts_name = _name(sts)
            for template in _dig(sts, "spec", "volumeClaimTemplates") or []:
                template_name = _name(template)
                pattern = rf"^{re.escape(template_name)}-{re.escape(sts_name)}-[0-9]+$"
                if re.match(pattern, claim_name):
                    logger.debug(
                        f"PVC {namespace}/{claim_name} is referenced by StatefulSet {sts_name}"
                    )
                    return True
        return False

    def _is_referenced_by_pod_template(self, namespace: str, claim_name: str) -> bool:
        workloads = (
            ("apps/v1", "deployments", "Deployment", ("spec", "template", "spec", "volumes")),
            ("batch/v1", "jobs", "Job", ("spec", "template", "spec", "volumes")),
            (
                "batch/v1",
                "cronjobs",
                "CronJob",
                ("spec", "jobTemplate", "spec", "template", "spec", "volumes"),
            ),
        )
        for group_version, plural, kind, volumes_path in workloads:
            for workload in self.client.list_objects(group_version, plural, namespace):
                if _volumes_reference_claim(_dig(workload, *volumes_path), claim_name):
                    logger.debug(
                        f"PVC {namespace}/{claim_name} is referenced by {kind} {_name(workload)}"
                    )
                    return True
        return False
