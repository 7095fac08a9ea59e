# Copyright 2024-2025 Amiable Development
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Resource context hook registry for kube-janitor.

Singleton registry mapping hook names to hook functions. Built-in hooks
are registered when the singleton is created; deployments embedding the
janitor may register additional hooks before startup. The CLI resolves
the configured name exactly once and fails fast on unknown names.

Thread Safety:
- Registry initialization is thread-safe via class-level lock
- Registration and lookup take the instance lock
- Hooks themselves must be thread-safe (they run on every worker)
"""

from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional
import threading

from kube_janitor.errors import ConfigError, UnknownHookError
from kube_janitor.extensions.hooks import BUILTIN_HOOKS
from kube_janitor.extensions.protocols import ContextHook


@dataclass
class HookRegistry:
    """
    Central registry for resource context hooks.

    Usage (resolving at startup):
        registry = HookRegistry.get()
        hook = registry.resolve(os.environ["RESOURCE_CONTEXT_HOOK"])

    Usage (registering a custom hook):
        registry = HookRegistry.get()
        registry.register("owner_lookup", owner_lookup_hook)

    Attributes:
        hooks: Mapping of hook name to hook function.
    """

    hooks: Dict[str, ContextHook] = field(default_factory=lambda: dict(BUILTIN_HOOKS))

    # Singleton management (ClassVars are not dataclass fields)
    _instance: ClassVar[Optional["HookRegistry"]] = None
    _lock: ClassVar[threading.Lock]  # Initialized at module level

    def __post_init__(self):
        self._hooks_lock = threading.Lock()

    @classmethod
    def get(cls) -> "HookRegistry":
        """
        Get the singleton HookRegistry instance.

        Thread-safe: Uses double-checked locking pattern.
        """
        if cls._instance is None:
            with cls._lock:
                # Double-check after acquiring lock
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """
        Reset the singleton instance (for testing only).

        Example:
            def teardown_function():
                HookRegistry.reset()
        """
        with cls._lock:
            cls._instance = None

    def register(self, name: str, hook: ContextHook, replace: bool = False) -> None:
        """
        Register a hook under a name.

        Args:
            name: Hook name as used in ``RESOURCE_CONTEXT_HOOK``.
            hook: Callable ``(resource, cache) -> mapping``.
            replace: Allow replacing an existing registration.

        Raises:
            ConfigError: If the name is taken and ``replace`` is False,
                or the hook is not callable.
        """
        if not callable(hook):
            raise ConfigError(f"Resource context hook '{name}' is not callable")
        with self._hooks_lock:
            if name in self.hooks and not replace:
                raise ConfigError(f"Resource context hook '{name}' is already registered")
            self.hooks[name] = hook

    def resolve(self, name: str) -> ContextHook:
        """
        Look up a hook by name.

        Raises:
            UnknownHookError: If no hook is registered under the name.
        """
        with self._hooks_lock:
            hook = self.hooks.get(name)
        if hook is None:
            raise UnknownHookError(name)
        return hook

    def names(self) -> List[str]:
        """Registered hook names, sorted."""
        with self._hooks_lock:
            return sorted(self.hooks)


# Module-level lock for singleton (dataclass field default_factory doesn't work for ClassVar)
HookRegistry._lock = threading.Lock()
