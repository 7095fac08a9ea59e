# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Lifecycle decision engine.

Classifies one resource per run as alive, pending notification or
expired, and performs the resulting side effects (events, notification,
deletion) through the cluster client.

Two branches are evaluated for every resource:

1. TTL branch: the ``janitor/ttl`` annotation, or else the TTL of the
   first matching rule, measured from the deployment time.
2. Expiry branch: the absolute ``janitor/expires`` annotation.

Both branches run unconditionally, so an object expired by both is
deleted twice within one pass; the second delete finds the object gone
and is logged as a warning.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from kube_janitor.errors import InvalidFormatError, NotFoundError, NotificationError, TransportError
from kube_janitor.extensions.protocols import ClusterClient, Notifier
from kube_janitor.janitor.context import ContextProvider, RunCache
from kube_janitor.janitor.resource import (
    EXPIRY_ANNOTATION,
    NOTIFIED_ANNOTATION,
    TTL_ANNOTATION,
    Resource,
)
from kube_janitor.janitor.rules import Rule, find_matching_rule
from kube_janitor.janitor.ttl import FOREVER, format_timestamp, parse_expiry, parse_ttl, utc_now

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "**DRY-RUN**:"

EVENT_SOURCE = "kube-janitor"
EVENT_GENERATE_NAME = "kube-janitor-"
EVENT_NAMESPACE_FALLBACK = "default"

# Event reasons
REASON_TTL_EXPIRED = "TTLExpired"
REASON_RULE_TTL_EXPIRED = "RuleTTLExpired"
REASON_EXPIRY_REACHED = "ExpiryTimeReached"
REASON_DELETE_NOTIFICATION = "DeleteNotification"


class DecisionKind(Enum):
    ALIVE = "alive"
    NOTIFY_PENDING = "notify_pending"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Decision:
    """Outcome of one branch for one resource.

    Attributes:
        kind: Classification.
        reason: Human-readable TTL source (``rule tmp, TTL 1h from ...``).
        notify_at: Start of the notification window (NOTIFY_PENDING only).
        expires_at: Expiry instant (NOTIFY_PENDING and EXPIRED).
    """

    kind: DecisionKind
    reason: Optional[str] = None
    notify_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def is_alive(self) -> bool:
        return self.kind is DecisionKind.ALIVE

    @property
    def is_expired(self) -> bool:
        return self.kind is DecisionKind.EXPIRED


ALIVE = Decision(DecisionKind.ALIVE)


@dataclass
class Evaluation:
    """Result of processing one resource.

    Attributes:
        decision: TTL/rule branch decision.
        expiry_decision: Absolute expiry branch decision, or None when
            the resource carries no expiry annotation.
        counters: Counter increments to merge into the run counters.
        errors: Per-object format errors (the run continues).
        deleted: A delete was counted for the resource.
        notified: A delete notification was counted for the resource.
    """

    decision: Decision = ALIVE
    expiry_decision: Optional[Decision] = None
    counters: Counter = field(default_factory=Counter)
    errors: List[str] = field(default_factory=list)
    deleted: bool = False
    notified: bool = False

    @property
    def expired(self) -> bool:
        return self.decision.is_expired or (
            self.expiry_decision is not None and self.expiry_decision.is_expired
        )


class LifecycleEngine:
    """Decides and acts on the lifecycle of individual resources.

    Thread-safe as long as the collaborators are: the engine holds no
    mutable state of its own, so one instance serves all workers.

    Attributes:
        client: Cluster API client for events, deletes and patches.
        rules: Ordered rules; the first match wins.
        context_provider: Computes ``_context`` facts for rule predicates.
        notifier: Outbound notification sink, optional.
        dry_run: Log mutating actions instead of performing them.
        delete_notification: Seconds before expiry to notify (0 disables).
        deployment_time_annotation: Annotation overriding the creation
            timestamp as the TTL start.
        wait_after_delete: Seconds to sleep after each real delete.
        context_name: Prefix for notification messages.
        quiet: Log per-resource informational lines at DEBUG.
        clock: Returns the current aware UTC time.

    Example:
        >>> engine = LifecycleEngine(client, rules, ContextProvider(client))
        >>> evaluation = engine.process(resource, RunCache())
        >>> evaluation.decision.kind
        <DecisionKind.EXPIRED: 'expired'>
    """

    def __init__(
        self,
        client: ClusterClient,
        rules: Optional[Sequence[Rule]] = None,
        context_provider: Optional[ContextProvider] = None,
        notifier: Optional[Notifier] = None,
        dry_run: bool = False,
        delete_notification: int = 0,
        deployment_time_annotation: Optional[str] = None,
        wait_after_delete: int = 0,
        context_name: Optional[str] = None,
        quiet: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.rules = list(rules or [])
        self.context_provider = context_provider or ContextProvider(client)
        self.notifier = notifier
        self.dry_run = dry_run
        self.delete_notification = delete_notification
        self.deployment_time_annotation = deployment_time_annotation
        self.wait_after_delete = wait_after_delete
        self.context_name = context_name
        self.quiet = quiet
        self.clock = clock

    def process(self, resource: Resource, cache: RunCache) -> Evaluation:
        """Evaluate both branches for one resource and apply side effects.

        Args:
            resource: Resource to evaluate.
            cache: Run-scoped cache for context hooks.

        Returns:
            Evaluation with decisions, counter increments and format errors.

        Raises:
            TransportError: If an event, delete or patch call fails
                (other than the object already being gone).
        """
        evaluation = Evaluation()
        logger.debug(f"Processing {resource}")

        evaluation.decision = self._evaluate_ttl(resource, cache, evaluation)
        evaluation.expiry_decision = self._evaluate_expiry(resource, evaluation)

        return evaluation

    def notification_message(self, resource: Resource, expires_at: datetime, reason: str) -> str:
        prefix = f"[{self.context_name}] " if self.context_name else ""
        return (
            f"{prefix}{resource.kind} {resource.display_name()} will be deleted at "
            f"{format_timestamp(expires_at)} ({reason})"
        )

    # TTL / rule branch

    def _evaluate_ttl(self, resource: Resource, cache: RunCache, evaluation: Evaluation) -> Decision:
        annotation = resource.annotations.get(TTL_ANNOTATION)

        if annotation is not None:
            self._info(f"{resource} has TTL annotation: {annotation}")
            try:
                ttl = parse_ttl(annotation)
            except InvalidFormatError as e:
                logger.warning(f"Invalid {TTL_ANNOTATION} annotation on {resource}: {e}")
                evaluation.errors.append(str(e))
                return ALIVE
            source = f"TTL {annotation}"
            event_reason = REASON_TTL_EXPIRED
        else:
            rule = self._find_rule(resource, cache)
            if rule is None:
                return ALIVE
            self._info(f"Rule {rule.id} matched {resource}")
            ttl = rule.ttl_value
            source = f"rule {rule.id}, TTL {rule.ttl}"
            event_reason = REASON_RULE_TTL_EXPIRED

        if ttl is FOREVER:
            logger.debug(f"{resource} has unlimited TTL, skipping")
            return ALIVE

        deployment_time = self._deployment_time(resource)
        if deployment_time is None:
            logger.warning(f"{resource} has no creation timestamp, skipping TTL")
            return ALIVE

        expires_at = deployment_time + ttl
        reason = f"{source} from {format_timestamp(deployment_time)}"
        now = self.clock()
        self._info(f"{resource} expires at {format_timestamp(expires_at)}")

        if now >= expires_at:
            message = (
                f"{resource.kind} {resource.display_name()} expired on "
                f"{format_timestamp(expires_at)} and will be deleted ({reason})"
            )
            self._create_event(resource, message, event_reason)
            self._delete(resource, evaluation)
            return Decision(DecisionKind.EXPIRED, reason=reason, expires_at=expires_at)

        return self._maybe_notify(resource, expires_at, reason, now, evaluation)

    def _find_rule(self, resource: Resource, cache: RunCache) -> Optional[Rule]:
        if not any(rule.applies_to(resource.type_name) for rule in self.rules):
            logger.debug(f"No rules apply to {resource.type_name}")
            return None

        context = self._get_context(resource, cache)
        return find_matching_rule(self.rules, resource.obj, context)

    def _get_context(self, resource: Resource, cache: RunCache) -> Dict[str, Any]:
        try:
            return self.context_provider.get_context(resource, cache)
        except TransportError as e:
            logger.warning(f"Failed to get context for {resource}: {e}")
            return {}

    def _deployment_time(self, resource: Resource) -> Optional[datetime]:
        if self.deployment_time_annotation:
            value = resource.annotations.get(self.deployment_time_annotation)
            if value:
                try:
                    deployment_time = parse_expiry(value)
                    logger.debug(f"Using deployment time from annotation: {value}")
                    return deployment_time
                except InvalidFormatError as e:
                    logger.debug(f"Ignoring deployment time annotation on {resource}: {e}")
        return resource.creation_timestamp

    # Absolute expiry branch

    def _evaluate_expiry(self, resource: Resource, evaluation: Evaluation) -> Optional[Decision]:
        value = resource.annotations.get(EXPIRY_ANNOTATION)
        if value is None:
            return None

        try:
            expires_at = parse_expiry(value)
        except InvalidFormatError as e:
            logger.warning(f"Invalid {EXPIRY_ANNOTATION} annotation on {resource}: {e}")
            evaluation.errors.append(str(e))
            return None

        reason = f"annotation {EXPIRY_ANNOTATION} is set"
        now = self.clock()

        if now > expires_at:
            message = (
                f"{resource.kind} {resource.display_name()} expired on {value} "
                f"and will be deleted ({reason})"
            )
            self._create_event(resource, message, REASON_EXPIRY_REACHED)
            self._delete(resource, evaluation)
            return Decision(DecisionKind.EXPIRED, reason=reason, expires_at=expires_at)

        return self._maybe_notify(resource, expires_at, reason, now, evaluation)

    # Side effects

    def _maybe_notify(
        self,
        resource: Resource,
        expires_at: datetime,
        reason: str,
        now: datetime,
        evaluation: Evaluation,
    ) -> Decision:
        if self.delete_notification <= 0:
            return ALIVE

        notify_at = expires_at - timedelta(seconds=self.delete_notification)
        if now < notify_at:
            return ALIVE
        # Dry-run leaves the object unmarked
        if resource.was_notified() or evaluation.notified:
            logger.debug(f"{resource} was already notified")
            return ALIVE

        self._info(f"Sending delete notification for {resource}")
        self._send_notification(resource, expires_at, reason)
        evaluation.counters[f"{resource.type_name}-notified"] += 1
        evaluation.notified = True
        return Decision(
            DecisionKind.NOTIFY_PENDING, reason=reason, notify_at=notify_at, expires_at=expires_at
        )

    def _send_notification(self, resource: Resource, expires_at: datetime, reason: str) -> None:
        message = self.notification_message(resource, expires_at, reason)
        self._create_event(resource, message, REASON_DELETE_NOTIFICATION)

        if self.dry_run:
            logger.info(f"{DRY_RUN_PREFIX} Would send delete notification for {resource}")
            logger.debug(f"Notification reason: {reason}")
            return

        if self.notifier is not None:
            try:
                self.notifier.notify(message)
            except NotificationError as e:
                logger.warning(f"Failed to send webhook notification: {e}")

        try:
            self.client.patch_annotations(
                resource.api_version,
                resource.plural,
                resource.name,
                resource.namespace or None,
                {NOTIFIED_ANNOTATION: "yes"},
            )
        except TransportError as e:
            logger.warning(f"Failed to mark {resource} as notified: {e}")
        resource.mark_notified()

    def _create_event(self, resource: Resource, message: str, reason: str) -> None:
        if self.dry_run:
            logger.info(f"{DRY_RUN_PREFIX} Would create event: {message}")
            return

        timestamp = format_timestamp(self.clock())
        namespace = resource.namespace or EVENT_NAMESPACE_FALLBACK
        event = {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {"generateName": EVENT_GENERATE_NAME, "namespace": namespace},
            "involvedObject": {
                "apiVersion": resource.api_version,
                "kind": resource.kind,
                "name": resource.name,
                "namespace": resource.namespace,
                "uid": resource.uid,
            },
            "reason": reason,
            "message": message,
            "firstTimestamp": timestamp,
            "lastTimestamp": timestamp,
            "count": 1,
            "type": "Normal",
            "source": {"component": EVENT_SOURCE},
        }
        self.client.create_event(namespace, event)

    def _delete(self, resource: Resource, evaluation: Evaluation) -> None:
        if self.dry_run:
            logger.info(f"{DRY_RUN_PREFIX} Would delete {resource}")
            # Counted once per resource, like a real delete
            if not evaluation.deleted:
                evaluation.counters[f"{resource.type_name}-deleted"] += 1
                evaluation.deleted = True
            return

        logger.info(f"Deleting {resource}")
        try:
            self.client.delete_object(
                resource.api_version,
                resource.plural,
                resource.name,
                resource.namespace or None,
            )
        except NotFoundError:
            logger.warning(f"{resource} was already deleted")
            return

        evaluation.counters[f"{resource.type_name}-deleted"] += 1
        evaluation.deleted = True

        if self.wait_after_delete > 0:
            self._info(f"Waiting {self.wait_after_delete} seconds after delete")
            time.sleep(self.wait_after_delete)

    def _info(self, message: str) -> None:
        if self.quiet:
            logger.debug(message)
        else:
            logger.info(message)
