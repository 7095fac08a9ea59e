# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""TTL rules: validation, loading and matching.

A rule applies a TTL to resources of the listed types whose structured
representation satisfies a JMESPath predicate. Context facts computed
for the resource are available to the predicate under ``_context``.

Rules file format (YAML):

    rules:
      - id: temporary-pr-namespaces
        resources: [namespaces]
        jmespath: "starts_with(metadata.name, 'pr-')"
        ttl: 4h

``predicate`` is accepted as an alias for ``jmespath``.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import jmespath
import yaml
from jmespath.exceptions import JMESPathError

from kube_janitor.errors import (
    ConfigError,
    InvalidFormatError,
    PredicateError,
    RuleValidationError,
)
from kube_janitor.janitor.ttl import TTL, parse_ttl

logger = logging.getLogger(__name__)

RULE_ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")

# Reserved key under which context facts are injected
CONTEXT_KEY = "_context"

WILDCARD = "*"


def is_truthy(value: Any) -> bool:
    """Coerce a predicate result to a match decision.

    Booleans are returned as-is; strings, lists and mappings match when
    non-empty; anything else (numbers, null) never matches.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return False


def compile_predicate(expression: str) -> Any:
    """Compile a JMESPath expression.

    Raises:
        PredicateError: If the expression does not compile.
    """
    if not isinstance(expression, str):
        raise PredicateError(f"predicate must be a string, got {type(expression).__name__}")
    try:
        return jmespath.compile(expression)
    except JMESPathError as e:
        raise PredicateError(f"invalid JMESPath expression {expression!r}: {e}") from e


@dataclass
class Rule:
    """A named TTL rule.

    Attributes:
        id: Lowercase kebab-case identifier.
        resources: Plural resource type names (``pods``) or ``*``.
        predicate: JMESPath expression evaluated against the resource.
        ttl: TTL string applied when the rule matches.
    """

    id: str
    resources: List[str]
    predicate: str
    ttl: str

    _expression: Any = field(default=None, init=False, repr=False, compare=False)
    _ttl_value: Optional[TTL] = field(default=None, init=False, repr=False, compare=False)

    def validate(self) -> "Rule":
        """Validate the rule and cache its compiled predicate and TTL.

        Returns:
            The rule itself, for chaining.

        Raises:
            RuleValidationError: Naming the offending rule.
        """
        if not isinstance(self.id, str) or not RULE_ID_PATTERN.match(self.id):
            raise RuleValidationError(
                self.id if isinstance(self.id, str) else None,
                f"invalid rule ID {self.id!r}: must match {RULE_ID_PATTERN.pattern}",
            )

        if not isinstance(self.resources, list) or not all(
            isinstance(r, str) for r in self.resources
        ):
            raise RuleValidationError(
                self.id, f"invalid resources in rule {self.id}: must be a list of strings"
            )

        try:
            ttl_value = parse_ttl(self.ttl)
        except InvalidFormatError as e:
            raise RuleValidationError(
                self.id, f"invalid TTL {self.ttl!r} in rule {self.id}: {e}"
            ) from e

        try:
            expression = compile_predicate(self.predicate)
        except PredicateError as e:
            raise RuleValidationError(
                self.id, f"invalid JMESPath expression in rule {self.id}: {e}"
            ) from e

        self._ttl_value = ttl_value
        self._expression = expression
        return self

    @property
    def is_compiled(self) -> bool:
        return self._expression is not None

    @property
    def ttl_value(self) -> TTL:
        """Parsed TTL (validated rules only)."""
        if self._ttl_value is None:
            self.validate()
        return self._ttl_value

    def applies_to(self, type_name: str) -> bool:
        """Resource-type gate."""
        return WILDCARD in self.resources or type_name in self.resources

    def matches(self, obj: Mapping[str, Any], context: Optional[Mapping[str, Any]] = None) -> bool:
        """Check whether the rule matches a resource.

        Args:
            obj: Structured representation of the resource.
            context: Context facts, injected under ``_context``.

        Returns:
            True if the type gate passes and the predicate is truthy.
            Evaluation errors make the rule non-matching.
        """
        kind = obj.get("kind")
        if not isinstance(kind, str):
            return False
        if not self.applies_to(f"{kind.lower()}s"):
            return False

        if self._expression is None:
            self.validate()

        document = dict(obj)
        document[CONTEXT_KEY] = dict(context or {})

        try:
            result = self._expression.search(document)
        except (JMESPathError, TypeError, ValueError) as e:
            logger.debug(f"Rule {self.id} failed to evaluate: {e}")
            return False

        return is_truthy(result)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rule":
        """Build an unvalidated rule from a rules-file entry."""
        predicate = data.get("jmespath", data.get("predicate"))
        return cls(
            id=data.get("id"),
            resources=data.get("resources", []),
            predicate=predicate,
            ttl=data.get("ttl"),
        )


def find_matching_rule(
    rules: Sequence[Rule],
    obj: Mapping[str, Any],
    context: Optional[Mapping[str, Any]] = None,
) -> Optional[Rule]:
    """Return the first rule that matches, or None."""
    for rule in rules:
        if rule.matches(obj, context):
            return rule
    return None


def parse_rules(source: Union[str, Mapping[str, Any], None]) -> List[Rule]:
    """Parse and validate a rules document.

    Args:
        source: YAML text, or an already-parsed mapping.

    Returns:
        Ordered list of validated rules.

    Raises:
        ConfigError: If the document is malformed or any rule is invalid.
            No partial rule sets are returned.
    """
    if isinstance(source, str):
        try:
            data = yaml.safe_load(source) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse rules file: {e}") from e
    else:
        data = source or {}

    if not isinstance(data, Mapping):
        raise ConfigError("failed to parse rules file: top level must be a mapping")

    entries = data.get("rules") or []
    if not isinstance(entries, list):
        raise ConfigError("failed to parse rules file: 'rules' must be a list")

    rules: List[Rule] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise ConfigError(f"invalid rule #{index}: must be a mapping")
        try:
            rules.append(Rule.from_dict(entry).validate())
        except RuleValidationError as e:
            raise ConfigError(f"invalid rule #{index}: {e}") from e

    return rules


def load_rules(path: Union[str, Path]) -> List[Rule]:
    """Load and validate rules from a YAML file.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    try:
        with open(path, "r") as f:
            text = f.read()
    except OSError as e:
        raise ConfigError(f"failed to read rules file: {e}") from e

    rules = parse_rules(text)
    logger.info(f"Loaded {len(rules)} rules from {path}")
    return rules


def rules_summary(rules: Sequence[Rule]) -> List[Dict[str, Any]]:
    """Plain-dict view of rules for logging."""
    return [{"id": r.id, "resources": list(r.resources), "ttl": r.ttl} for r in rules]
