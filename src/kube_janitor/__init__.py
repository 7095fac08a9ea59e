"""kube-janitor - Clean up Kubernetes resources after a configured TTL.

Deletes objects whose ``janitor/ttl`` annotation, matching rule TTL or
``janitor/expires`` timestamp has passed, optionally notifying ahead of
deletion.

Usage:
    # Preview one cleanup run
    kube-janitor --once --dry-run

    # Run every 60 seconds with rules
    kube-janitor --interval 60 --rules-file /config/rules.yaml

For installation:
    pip install kube-janitor
    pip install "kube-janitor[test]"      # + test dependencies
"""

try:
    from kube_janitor._version import __version__, __version_tuple__
except ImportError:
    # Package not installed (development mode without build)
    __version__ = "0.0.0.dev0"
    __version_tuple__ = (0, 0, 0, "dev0")

__all__ = [
    "__version__",
    "__version_tuple__",
]
