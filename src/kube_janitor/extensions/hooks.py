# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Built-in resource context hooks.

Hooks are registered by name in the HookRegistry and selected at startup
through the ``RESOURCE_CONTEXT_HOOK`` environment variable.
"""

import random
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from kube_janitor.janitor.context import RunCache
    from kube_janitor.janitor.resource import Resource

CACHE_KEY_RANDOM_DICE = "random_dice"


def random_dice(resource: "Resource", cache: "RunCache") -> Dict[str, Any]:
    """Set ``_context.random_dice`` to a dice roll (1-6).

    The roll is cached, so every resource in one run sees the same value.
    Useful to delete a random subset of resources, e.g. with the predicate
    ``_context.random_dice == `6```.
    """
    dice_value = cache.get_or_set(CACHE_KEY_RANDOM_DICE, lambda: random.randint(1, 6))
    return {"random_dice": dice_value}


BUILTIN_HOOKS = {
    "random_dice": random_dice,
}
