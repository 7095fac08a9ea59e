# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Resource type catalog.

Discovers every deletable resource type the cluster serves and removes
deprecated aliases whose successor is also served (e.g. ``endpoints``
next to ``endpointslices``), so the same objects are not listed twice.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

from kube_janitor.errors import TransportError
from kube_janitor.extensions.protocols import ClusterClient

logger = logging.getLogger(__name__)

CORE_GROUP_VERSION = "v1"

GroupResource = Tuple[str, str]


@dataclass(frozen=True)
class ResourceTypeDescriptor:
    """A deletable resource type.

    Attributes:
        group: API group ("" for core).
        version: API version.
        kind: Object kind (``Pod``).
        plural: Resource plural name (``pods``).
        namespaced: Whether objects live in namespaces.
    """

    group: str
    version: str
    kind: str
    plural: str
    namespaced: bool

    @property
    def group_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def key(self) -> str:
        return f"{self.group_version}/{self.plural}"

    @property
    def group_resource(self) -> GroupResource:
        return (self.group, self.plural)


@dataclass(frozen=True)
class Deprecation:
    """A deprecated resource type and the type that supersedes it."""

    deprecated: GroupResource
    successor: GroupResource


DEPRECATED_APIS: Tuple[Deprecation, ...] = (
    Deprecation(deprecated=("", "endpoints"), successor=("discovery.k8s.io", "endpointslices")),
)


def filter_deprecated_apis(
    resource_types: Dict[str, ResourceTypeDescriptor],
    deprecations: Tuple[Deprecation, ...] = DEPRECATED_APIS,
) -> Dict[str, ResourceTypeDescriptor]:
    """Drop deprecated types whose successor is present.

    Args:
        resource_types: Descriptors keyed by ``<group_version>/<plural>``.
        deprecations: Deprecation table.

    Returns:
        A new mapping without the superseded entries.
    """
    present = {rt.group_resource for rt in resource_types.values()}
    dropped = {d.deprecated for d in deprecations if d.successor in present}

    filtered = {}
    for key, rt in resource_types.items():
        if rt.group_resource in dropped:
            logger.debug(f"Skipping deprecated resource type {key}")
            continue
        filtered[key] = rt
    return filtered


def _collect(
    resource_types: Dict[str, ResourceTypeDescriptor],
    group: str,
    version: str,
    api_resources: List[dict],
) -> None:
    for r in api_resources:
        name = r.get("name", "")
        if not name or "/" in name or "delete" not in (r.get("verbs") or []):
            continue
        descriptor = ResourceTypeDescriptor(
            group=group,
            version=version,
            kind=r.get("kind", ""),
            plural=name,
            namespaced=bool(r.get("namespaced")),
        )
        resource_types[descriptor.key] = descriptor


def discover_resource_types(client: ClusterClient) -> List[ResourceTypeDescriptor]:
    """Discover all deletable resource types served by the cluster.

    Core ``v1`` and the preferred version of every named API group are
    scanned. Subresources and types without the ``delete`` verb are
    skipped.

    Returns:
        Descriptors sorted by key.

    Raises:
        TransportError: If the core API resources cannot be read or the
            API groups cannot be listed.
    """
    resource_types: Dict[str, ResourceTypeDescriptor] = {}

    try:
        core = client.list_api_resources(CORE_GROUP_VERSION)
    except TransportError as e:
        raise TransportError(f"failed to get core API resources: {e}") from e
    _collect(resource_types, "", CORE_GROUP_VERSION, core)

    try:
        groups = client.list_api_groups()
    except TransportError as e:
        raise TransportError(f"failed to get API groups: {e}") from e

    for group, version in groups:
        group_version = f"{group}/{version}"
        try:
            api_resources = client.list_api_resources(group_version)
        except TransportError as e:
            logger.warning(f"Failed to get API resources for {group_version}: {e}")
            continue
        _collect(resource_types, group, version, api_resources)

    resource_types = filter_deprecated_apis(resource_types)
    logger.debug(f"Found {len(resource_types)} deletable resource types")
    return [resource_types[key] for key in sorted(resource_types)]
