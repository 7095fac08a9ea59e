# Copyright 2024-2025 Amiable Development
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Extension point protocols for kube-janitor.

These Protocol classes define the collaborators the janitor consumes but
does not implement itself: the cluster API transport, the notification
sink and resource context hooks. Production implementations live in
``kube_janitor.integrations``; tests supply in-memory fakes.

Design Principles:
1. Composition over inheritance - no base classes to subclass
2. Every call is individually failable (TransportError / NotFoundError)
3. Testable - protocols can be faked without a cluster
"""

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

if TYPE_CHECKING:
    from kube_janitor.janitor.context import RunCache
    from kube_janitor.janitor.resource import Resource


CLUSTER_CLIENT_VERSION = "1.0.0"
NOTIFIER_VERSION = "1.0.0"


@runtime_checkable
class ClusterClient(Protocol):
    """
    Capability set of the cluster API used by the janitor.

    Group versions are ``"v1"`` for the core group and ``"<group>/<version>"``
    otherwise. Objects are plain dicts in the API's JSON shape.

    Errors:
        Every method raises TransportError on failure. Methods addressing a
        single object raise NotFoundError when it no longer exists.

    Version: 1.0.0
    """

    def list_api_groups(self) -> List[Tuple[str, str]]:
        """
        List named API groups with their preferred version.

        Returns:
            ``[(group, version), ...]``, e.g. ``[("apps", "v1")]``.
            The core group is not included.
        """
        ...

    def list_api_resources(self, group_version: str) -> List[Dict[str, Any]]:
        """
        List resource types served under a group version.

        Returns:
            Dicts with ``name`` (plural), ``kind``, ``namespaced`` and
            ``verbs`` keys.
        """
        ...

    def list_objects(
        self, group_version: str, plural: str, namespace: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        List all objects of a type, in one namespace or cluster-wide.

        Args:
            group_version: API group version.
            plural: Resource plural name.
            namespace: Namespace to scope the listing to, or None.
        """
        ...

    def delete_object(
        self, group_version: str, plural: str, name: str, namespace: Optional[str] = None
    ) -> None:
        """Delete one object with background propagation."""
        ...

    def patch_annotations(
        self,
        group_version: str,
        plural: str,
        name: str,
        namespace: Optional[str],
        annotations: Mapping[str, str],
    ) -> None:
        """Merge annotations into an object's metadata."""
        ...

    def create_event(self, namespace: str, event: Dict[str, Any]) -> None:
        """Create a core/v1 Event in the given namespace."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """
    Outbound notification sink (e.g. an HTTP webhook).

    An unconfigured notifier is a silent no-op. Delivery failures raise
    NotificationError; callers treat delivery as best-effort.

    Version: 1.0.0
    """

    def notify(self, message: str) -> None:
        """Deliver one human-readable message."""
        ...


class ContextHook(Protocol):
    """
    Resource context hook.

    Called once per resource per run with the resource and the run cache;
    returns facts merged into the resource context (overwriting built-in
    facts on conflict). Anything that must be computed at most once per
    run belongs in the cache.
    """

    def __call__(self, resource: "Resource", cache: "RunCache") -> Mapping[str, Any]:
        ...
