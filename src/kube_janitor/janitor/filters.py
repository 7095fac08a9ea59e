# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Resource type and namespace inclusion rules.

Exclusion always wins over inclusion. The special value ``all`` includes
everything; other entries may be shell-style patterns (``pr-*``).
"""

import fnmatch
from dataclasses import dataclass, field
from typing import List, Sequence

from kube_janitor.janitor.catalog import ResourceTypeDescriptor
from kube_janitor.janitor.resource import Resource

ALL = "all"
NAMESPACES = "namespaces"


def matches_any(value: str, patterns: Sequence[str]) -> bool:
    """True if ``value`` matches one of the shell-style patterns."""
    return any(fnmatch.fnmatchcase(value, pattern) for pattern in patterns)


def is_included(value: str, include: Sequence[str], exclude: Sequence[str]) -> bool:
    """Apply include/exclude lists; exclusion wins."""
    if matches_any(value, exclude):
        return False
    return ALL in include or matches_any(value, include)


@dataclass
class ResourceFilter:
    """Decides which resource types, namespaces and objects a run visits.

    Attributes:
        include_resources: Plural type names to include (``all`` by default).
        exclude_resources: Plural type names to skip.
        include_namespaces: Namespaces to include (``all`` by default).
        exclude_namespaces: Namespaces to skip.
        include_cluster_resources: Also process cluster-scoped objects
            other than namespaces.
    """

    include_resources: List[str] = field(default_factory=lambda: [ALL])
    exclude_resources: List[str] = field(default_factory=list)
    include_namespaces: List[str] = field(default_factory=lambda: [ALL])
    exclude_namespaces: List[str] = field(default_factory=list)
    include_cluster_resources: bool = False

    def includes_type(self, plural: str) -> bool:
        return is_included(plural, self.include_resources, self.exclude_resources)

    def includes_namespace(self, namespace: str) -> bool:
        return is_included(namespace, self.include_namespaces, self.exclude_namespaces)

    def wants_type(self, descriptor: ResourceTypeDescriptor) -> bool:
        """Whether objects of this type should be listed at all."""
        if not self.includes_type(descriptor.plural):
            return False
        return descriptor.namespaced or self.include_cluster_resources

    def wants(self, resource: Resource) -> bool:
        """Whether one listed object should be handed to the dispatcher.

        Namespace objects are eligible regardless of
        ``include_cluster_resources``; their own name is checked against
        the namespace filters.
        """
        if resource.plural == NAMESPACES:
            return self.includes_type(NAMESPACES) and self.includes_namespace(resource.name)
        if not self.includes_type(resource.plural):
            return False
        if resource.namespace:
            return self.includes_namespace(resource.namespace)
        return self.include_cluster_resources
