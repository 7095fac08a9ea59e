# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Error taxonomy for kube-janitor.

- InvalidFormatError: malformed TTL / expiry strings (per object)
- PredicateError: rule predicate compilation or evaluation failure
- TransportError: any Kubernetes API or notification delivery failure
- ConfigError: unknown hook name, malformed rules document, bad settings

Per-resource errors never propagate past the dispatcher. Configuration
errors are fatal at startup.
"""

from typing import Optional


class JanitorError(Exception):
    """Base exception for kube-janitor errors."""

    pass


class InvalidFormatError(JanitorError, ValueError):
    """A TTL or timestamp string does not match any supported format."""

    pass


class PredicateError(JanitorError):
    """A rule predicate failed to compile."""

    pass


class TransportError(JanitorError):
    """A call to an external system (cluster API, webhook) failed."""

    pass


class NotFoundError(TransportError):
    """The target object does not exist (already deleted)."""

    pass


class NotificationError(TransportError):
    """Delivery to the notification sink failed."""

    pass


class ConfigError(JanitorError):
    """Invalid configuration detected before processing starts."""

    pass


class RuleValidationError(ConfigError):
    """A rule failed validation."""

    def __init__(self, rule_id: Optional[str], message: str):
        self.rule_id = rule_id
        super().__init__(message)


class UnknownHookError(ConfigError):
    """No resource context hook is registered under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Resource context hook '{name}' not found")
