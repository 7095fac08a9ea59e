# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Janitor core for TTL-based resource cleanup.

Provides:
- Time rules (TTL and expiry parsing)
- TTL rules with JMESPath predicates
- Resource context (PVC usage analysis, context hooks)
- Resource type discovery
- Lifecycle decisions and the concurrent dispatcher
- The runner orchestrating cleanup runs
"""

from kube_janitor.janitor.catalog import (
    DEPRECATED_APIS,
    Deprecation,
    ResourceTypeDescriptor,
    discover_resource_types,
    filter_deprecated_apis,
)
from kube_janitor.janitor.context import ContextProvider, RunCache
from kube_janitor.janitor.decision import (
    Decision,
    DecisionKind,
    Evaluation,
    LifecycleEngine,
)
from kube_janitor.janitor.dispatcher import Counters, DedupSet, Dispatcher, RunSummary
from kube_janitor.janitor.filters import ResourceFilter
from kube_janitor.janitor.resource import Resource
from kube_janitor.janitor.rules import Rule, load_rules, parse_rules
from kube_janitor.janitor.runner import JanitorRunner
from kube_janitor.janitor.scheduler import JanitorScheduler
from kube_janitor.janitor.ttl import FOREVER, format_duration, parse_expiry, parse_ttl

__all__ = [
    "ContextProvider",
    "Counters",
    "DEPRECATED_APIS",
    "Decision",
    "DecisionKind",
    "DedupSet",
    "Deprecation",
    "Dispatcher",
    "Evaluation",
    "FOREVER",
    "JanitorRunner",
    "JanitorScheduler",
    "LifecycleEngine",
    "Resource",
    "ResourceFilter",
    "ResourceTypeDescriptor",
    "Rule",
    "RunCache",
    "RunSummary",
    "discover_resource_types",
    "filter_deprecated_apis",
    "format_duration",
    "load_rules",
    "parse_expiry",
    "parse_rules",
    "parse_ttl",
]
