# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Janitor configuration.

This module provides:
- JanitorConfig dataclass with the defaults of the command line flags
- env_default() for environment-provided flag defaults
- split_list() to parse comma-separated flag values

Environment variables:
    INCLUDE_RESOURCES, EXCLUDE_RESOURCES, INCLUDE_NAMESPACES,
    EXCLUDE_NAMESPACES, RULES_FILE, WEBHOOK_URL, CONTEXT_NAME,
    RESOURCE_CONTEXT_HOOK
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from kube_janitor.errors import ConfigError
from kube_janitor.janitor.filters import ALL, ResourceFilter

DEFAULT_INTERVAL = 30
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"

DEFAULT_INCLUDE_RESOURCES = [ALL]
DEFAULT_EXCLUDE_RESOURCES = ["events", "controllerrevisions"]
DEFAULT_INCLUDE_NAMESPACES = [ALL]
DEFAULT_EXCLUDE_NAMESPACES = ["kube-system"]


def split_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated value, dropping blanks.

    Example:
        >>> split_list("a, b,,c")
        ['a', 'b', 'c']
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def env_default(name: str, default: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Non-empty environment value, or ``default``."""
    environ = os.environ if environ is None else environ
    return environ.get(name) or default


@dataclass
class JanitorConfig:
    """Runtime configuration of the janitor.

    Attributes:
        dry_run: Log what would be done without changing anything.
        debug: Enable DEBUG logging.
        quiet: Hide per-resource logs, keep deletion logs and the summary.
        once: Run one cleanup and exit.
        interval: Seconds between runs.
        wait_after_delete: Seconds to wait after each delete.
        delete_notification: Seconds before deletion to notify (0 disables).
        include_resources: Plural type names to include.
        exclude_resources: Plural type names to exclude.
        include_namespaces: Namespaces to include.
        exclude_namespaces: Namespaces to exclude.
        rules_file: Path of the YAML rules file.
        deployment_time_annotation: Annotation holding the last deployment time.
        include_cluster_resources: Also clean up cluster-scoped resources.
        parallelism: Worker threads (0 uses the CPU count).
        webhook_url: Notification webhook URL.
        context_name: Cluster name prefixed to notifications.
        resource_context_hook: Name of the registered context hook.
        log_format: ``logging`` format string.
    """

    dry_run: bool = False
    debug: bool = False
    quiet: bool = False
    once: bool = False
    interval: int = DEFAULT_INTERVAL
    wait_after_delete: int = 0
    delete_notification: int = 0
    include_resources: List[str] = field(default_factory=lambda: DEFAULT_INCLUDE_RESOURCES.copy())
    exclude_resources: List[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_RESOURCES.copy())
    include_namespaces: List[str] = field(default_factory=lambda: DEFAULT_INCLUDE_NAMESPACES.copy())
    exclude_namespaces: List[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_NAMESPACES.copy())
    rules_file: Optional[str] = None
    deployment_time_annotation: Optional[str] = None
    include_cluster_resources: bool = False
    parallelism: int = 0
    webhook_url: Optional[str] = None
    context_name: Optional[str] = None
    resource_context_hook: Optional[str] = None
    log_format: str = DEFAULT_LOG_FORMAT

    def validate(self) -> "JanitorConfig":
        """Check value ranges.

        Raises:
            ConfigError: On the first invalid setting.
        """
        if self.interval < 1:
            raise ConfigError("interval must be greater than 0")
        if self.delete_notification < 0:
            raise ConfigError("delete-notification must be greater than or equal to 0")
        if self.wait_after_delete < 0:
            raise ConfigError("wait-after-delete must be greater than or equal to 0")
        if self.parallelism < 0:
            raise ConfigError("parallelism must be greater than or equal to 0")
        return self

    @property
    def effective_parallelism(self) -> int:
        if self.parallelism > 0:
            return self.parallelism
        return os.cpu_count() or 1

    def resource_filter(self) -> ResourceFilter:
        return ResourceFilter(
            include_resources=list(self.include_resources),
            exclude_resources=list(self.exclude_resources),
            include_namespaces=list(self.include_namespaces),
            exclude_namespaces=list(self.exclude_namespaces),
            include_cluster_resources=self.include_cluster_resources,
        )
