"""
External system integrations for kube-janitor.

- KubernetesClusterClient: ClusterClient over the official kubernetes client
- WebhookNotifier: Notifier posting JSON messages over HTTP
"""

from .kubernetes_client import KubernetesClusterClient
from .webhook import WebhookNotifier

__all__ = [
    "KubernetesClusterClient",
    "WebhookNotifier",
]
