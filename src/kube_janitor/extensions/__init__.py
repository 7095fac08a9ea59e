"""
Extension point system for kube-janitor.

Protocols describe the collaborators the janitor consumes (cluster API,
notification sink, resource context hooks); the HookRegistry resolves
context hooks by name.

Usage:
    from kube_janitor.extensions import HookRegistry
    hook = HookRegistry.get().resolve("random_dice")
"""

from .protocols import (
    CLUSTER_CLIENT_VERSION,
    NOTIFIER_VERSION,
    ClusterClient,
    ContextHook,
    Notifier,
)
from .registry import HookRegistry

__all__ = [
    "CLUSTER_CLIENT_VERSION",
    "NOTIFIER_VERSION",
    "ClusterClient",
    "ContextHook",
    "Notifier",
    "HookRegistry",
]
