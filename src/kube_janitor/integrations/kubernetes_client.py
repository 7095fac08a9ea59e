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
Kubernetes API integration.

Implements the ClusterClient protocol over the official ``kubernetes``
client. All calls go through ``ApiClient.call_api`` against raw REST
paths with ``response_type="object"``, so every resource type (including
custom resources) is handled uniformly as plain dicts.

Configuration:
- In-cluster service account config is tried first
- Falls back to the local kubeconfig (``KUBECONFIG`` or ``~/.kube/config``)
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from kube_janitor.errors import ConfigError, NotFoundError, TransportError

logger = logging.getLogger(__name__)

CORE_GROUP_VERSION = "v1"
PROPAGATION_POLICY = "Background"
MERGE_PATCH = "application/merge-patch+json"


def load_config() -> None:
    """Load in-cluster config, falling back to kubeconfig.

    Raises:
        ConfigError: If neither configuration is available.
    """
    try:
        config.load_incluster_config()
        logger.debug("Using in-cluster Kubernetes configuration")
        return
    except ConfigException:
        logger.debug("Not running in a cluster, trying kubeconfig")

    try:
        config.load_kube_config()
    except (ConfigException, OSError) as e:
        raise ConfigError(
            f"failed to load Kubernetes configuration: {e} (try setting KUBECONFIG)"
        ) from e


def api_prefix(group_version: str) -> str:
    """REST prefix for a group version (``/api/v1`` or ``/apis/<g>/<v>``)."""
    if group_version == CORE_GROUP_VERSION:
        return f"/api/{group_version}"
    return f"/apis/{group_version}"


def object_path(
    group_version: str, plural: str, namespace: Optional[str] = None, name: Optional[str] = None
) -> str:
    path = api_prefix(group_version)
    if namespace:
        path += f"/namespaces/{namespace}"
    path += f"/{plural}"
    if name:
        path += f"/{name}"
    return path


class KubernetesClusterClient:
    """
    ClusterClient over the official Kubernetes Python client.

    Example:
        ```python
        cluster = KubernetesClusterClient()
        for group, version in cluster.list_api_groups():
            print(group, version)
        pods = cluster.list_objects("v1", "pods", "default")
        ```

    Errors:
        404 responses raise NotFoundError; every other API or connection
        failure raises TransportError.
    """

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        """
        Initialize the client.

        Args:
            api_client: Preconfigured ApiClient. If not provided, the
                configuration is loaded and a default ApiClient created.

        Raises:
            ConfigError: If no Kubernetes configuration can be loaded.
        """
        if api_client is None:
            load_config()
            api_client = client.ApiClient()
        self.api_client = api_client

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        content_type: str = "application/json",
    ) -> Any:
        """
        Make an authenticated request to the API server.

        Raises:
            NotFoundError: If the API returns 404.
            TransportError: For any other failure.
        """
        headers = {"Accept": "application/json"}
        if body is not None:
            headers["Content-Type"] = content_type

        try:
            return self.api_client.call_api(
                path,
                method,
                header_params=headers,
                body=body,
                response_type="object",
                auth_settings=["BearerToken"],
                _return_http_data_only=True,
                _preload_content=True,
            )
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(f"{method} {path}: not found") from e
            raise TransportError(f"{method} {path} failed: {e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

    def list_api_groups(self) -> List[Tuple[str, str]]:
        response = self._request("GET", "/apis") or {}
        groups = []
        for group in response.get("groups") or []:
            preferred = group.get("preferredVersion") or {}
            version = preferred.get("version")
            if not version:
                versions = group.get("versions") or []
                if not versions:
                    continue
                version = versions[0].get("version")
            groups.append((group.get("name", ""), version))
        return groups

    def list_api_resources(self, group_version: str) -> List[Dict[str, Any]]:
        response = self._request("GET", api_prefix(group_version)) or {}
        return [
            {
                "name": r.get("name", ""),
                "kind": r.get("kind", ""),
                "namespaced": bool(r.get("namespaced")),
                "verbs": list(r.get("verbs") or []),
            }
            for r in response.get("resources") or []
        ]

    def list_objects(
        self, group_version: str, plural: str, namespace: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        response = self._request("GET", object_path(group_version, plural, namespace)) or {}
        return list(response.get("items") or [])

    def delete_object(
        self, group_version: str, plural: str, name: str, namespace: Optional[str] = None
    ) -> None:
        body = {
            "apiVersion": "v1",
            "kind": "DeleteOptions",
            "propagationPolicy": PROPAGATION_POLICY,
        }
        self._request("DELETE", object_path(group_version, plural, namespace, name), body=body)

    def patch_annotations(
        self,
        group_version: str,
        plural: str,
        name: str,
        namespace: Optional[str],
        annotations: Mapping[str, str],
    ) -> None:
        body = {"metadata": {"annotations": dict(annotations)}}
        self._request(
            "PATCH",
            object_path(group_version, plural, namespace, name),
            body=body,
            content_type=MERGE_PATCH,
        )

    def create_event(self, namespace: str, event: Dict[str, Any]) -> None:
        self._request("POST", object_path(CORE_GROUP_VERSION, "events", namespace), body=event)
