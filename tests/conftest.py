# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Root pytest configuration with shared fixtures and markers.

This file is automatically loaded by pytest and provides:
- Custom markers
- An in-memory ClusterClient fake recording every mutating call
- Resource factories with a fixed clock
"""

import copy
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from kube_janitor.errors import NotFoundError, TransportError
from kube_janitor.extensions.registry import HookRegistry
from kube_janitor.janitor.resource import Resource
from kube_janitor.janitor.ttl import format_timestamp

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: Mark test as integration test (cross-component)",
    )
    config.addinivalue_line(
        "markers",
        "slow: Mark test as slow-running (may be skipped in quick runs)",
    )


# ============================================================================
# Fakes
# ============================================================================


class FakeClusterClient:
    """In-memory ClusterClient.

    Objects are stored per ``(group_version, plural)``; listings return deep
    copies so callers never mutate the stored state. A second delete of the
    same object raises NotFoundError.
    """

    def __init__(self):
        self.groups: List[Tuple[str, str]] = []
        self.api_resources: Dict[str, List[Dict[str, Any]]] = {}
        self.objects: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.failures: Dict[str, Exception] = {}

        self.list_calls: List[Tuple[str, str, Optional[str]]] = []
        self.deleted: List[Tuple[str, str, str, Optional[str]]] = []
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.patches: List[Tuple[str, str, str, Optional[str], Dict[str, str]]] = []
        self._lock = threading.Lock()

    # Setup helpers

    def add_group(self, group: str, version: str, resources: List[Dict[str, Any]]) -> None:
        self.groups.append((group, version))
        self.api_resources[f"{group}/{version}"] = resources

    def add_objects(self, group_version: str, plural: str, *objs: Dict[str, Any]) -> None:
        self.objects.setdefault((group_version, plural), []).extend(objs)

    def fail(self, key: str, error: Optional[Exception] = None) -> None:
        """Make a call fail. Keys: ``list_api_groups``, ``list_api_resources:<gv>``,
        ``list_objects:<gv>/<plural>``, ``delete_object``, ``create_event``,
        ``patch_annotations``."""
        self.failures[key] = error or TransportError(f"{key} failed")

    def _check(self, key: str) -> None:
        if key in self.failures:
            raise self.failures[key]

    # ClusterClient protocol

    def list_api_groups(self):
        self._check("list_api_groups")
        return list(self.groups)

    def list_api_resources(self, group_version):
        self._check(f"list_api_resources:{group_version}")
        return copy.deepcopy(self.api_resources.get(group_version, []))

    def list_objects(self, group_version, plural, namespace=None):
        self._check(f"list_objects:{group_version}/{plural}")
        with self._lock:
            self.list_calls.append((group_version, plural, namespace))
        items = self.objects.get((group_version, plural), [])
        if namespace is not None:
            items = [o for o in items if o.get("metadata", {}).get("namespace") == namespace]
        return copy.deepcopy(items)

    def delete_object(self, group_version, plural, name, namespace=None):
        self._check("delete_object")
        key = (group_version, plural, name, namespace)
        with self._lock:
            if key in self.deleted:
                raise NotFoundError(f"{plural} {name} not found")
            self.deleted.append(key)

    def patch_annotations(self, group_version, plural, name, namespace, annotations):
        self._check("patch_annotations")
        with self._lock:
            self.patches.append((group_version, plural, name, namespace, dict(annotations)))

    def create_event(self, namespace, event):
        self._check("create_event")
        with self._lock:
            self.events.append((namespace, event))

    @property
    def event_reasons(self) -> List[str]:
        return [event["reason"] for _, event in self.events]


def api_resource(name: str, kind: str, namespaced: bool = True, verbs=None) -> Dict[str, Any]:
    return {
        "name": name,
        "kind": kind,
        "namespaced": namespaced,
        "verbs": verbs if verbs is not None else ["get", "list", "delete"],
    }


def make_object(
    kind: str = "Pod",
    name: str = "web",
    namespace: Optional[str] = "default",
    annotations: Optional[Dict[str, str]] = None,
    labels: Optional[Dict[str, str]] = None,
    created: datetime = NOW,
    api_version: str = "v1",
    **fields: Any,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "name": name,
        "uid": f"uid-{name}",
        "creationTimestamp": format_timestamp(created),
    }
    if namespace:
        metadata["namespace"] = namespace
    if annotations:
        metadata["annotations"] = dict(annotations)
    if labels:
        metadata["labels"] = dict(labels)
    obj = {"apiVersion": api_version, "kind": kind, "metadata": metadata}
    obj.update(fields)
    return obj


# ============================================================================
# Shared Fixtures
# ============================================================================


@pytest.fixture
def now():
    """Fixed current time used by engine clocks."""
    return NOW


@pytest.fixture
def clock():
    """Clock returning NOW."""
    return lambda: NOW


@pytest.fixture
def fake_client():
    """Empty in-memory cluster client."""
    return FakeClusterClient()


@pytest.fixture
def api_resource_factory():
    """Factory for discovery entries."""
    return api_resource


@pytest.fixture
def make_obj():
    """Factory for raw object dicts."""
    return make_object


@pytest.fixture
def make_resource():
    """Factory for Resource handles."""

    def _make(plural: Optional[str] = None, **kwargs: Any) -> Resource:
        return Resource(make_object(**kwargs), plural=plural)

    return _make


@pytest.fixture
def hours_ago():
    """Return NOW minus the given number of hours."""
    return lambda hours: NOW - timedelta(hours=hours)


@pytest.fixture(autouse=True)
def reset_hook_registry():
    """Isolate the hook registry singleton between tests."""
    HookRegistry.reset()
    yield
    HookRegistry.reset()
