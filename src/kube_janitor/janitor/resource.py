# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Resource handle for one cluster object.

A Resource wraps the generic structured representation returned by the
cluster API (nested dicts and lists). Predicates are evaluated against
that representation; the typed accessors below are convenience views
over it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

# Annotation keys
TTL_ANNOTATION = "janitor/ttl"
EXPIRY_ANNOTATION = "janitor/expires"
NOTIFIED_ANNOTATION = "janitor/notified"

Identity = Tuple[str, str, str]


def _parse_creation_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Resource:
    """A handle to one cluster object.

    Attributes:
        obj: Structured representation (``kind``, ``apiVersion``,
            ``metadata``, ``spec``, ...).
        plural: API plural name of the type the object was listed
            through. Defaults to ``type_name``.

    Example:
        >>> res = Resource.from_dict(
        ...     {"kind": "Pod", "metadata": {"name": "web", "namespace": "dev"}}
        ... )
        >>> res.identity
        ('Pod', 'dev', 'web')
    """

    obj: Dict[str, Any]
    plural: Optional[str] = None
    metadata: Dict[str, Any] = field(init=False, repr=False)

    def __post_init__(self):
        metadata = self.obj.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
            self.obj["metadata"] = metadata
        self.metadata = metadata
        if not self.plural:
            self.plural = self.type_name

    @classmethod
    def from_dict(
        cls,
        obj: Dict[str, Any],
        kind: Optional[str] = None,
        api_version: Optional[str] = None,
        plural: Optional[str] = None,
    ) -> "Resource":
        """Build a Resource, filling in ``kind``/``apiVersion`` when the
        list response omitted them on the items."""
        if kind and not obj.get("kind"):
            obj["kind"] = kind
        if api_version and not obj.get("apiVersion"):
            obj["apiVersion"] = api_version
        return cls(obj=obj, plural=plural)

    @property
    def kind(self) -> str:
        return self.obj.get("kind") or "Unknown"

    @property
    def api_version(self) -> str:
        return self.obj.get("apiVersion") or "v1"

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace") or ""

    @property
    def uid(self) -> Optional[str]:
        return self.metadata.get("uid")

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.get("annotations") or {}

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.get("labels") or {}

    @property
    def creation_timestamp(self) -> Optional[datetime]:
        return _parse_creation_timestamp(self.metadata.get("creationTimestamp"))

    @property
    def type_name(self) -> str:
        """Plural type name used by rules and counters (``pods``)."""
        return f"{self.kind.lower()}s"

    @property
    def identity(self) -> Identity:
        return (self.kind, self.namespace, self.name)

    def display_name(self) -> str:
        """``namespace/name`` for namespaced objects, ``name`` otherwise."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def was_notified(self) -> bool:
        return NOTIFIED_ANNOTATION in self.annotations

    def mark_notified(self) -> None:
        """Set the notified marker on the local representation."""
        annotations = self.metadata.get("annotations")
        if not isinstance(annotations, dict):
            annotations = {}
            self.metadata["annotations"] = annotations
        annotations[NOTIFIED_ANNOTATION] = "yes"

    def __str__(self) -> str:
        return f"{self.kind} {self.display_name()}"
