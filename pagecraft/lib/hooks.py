"""Async action hooks fired around component and version changes.

Usage:
    from pagecraft.lib.hooks import action, AFTER_VERSION_CREATE

    @action(AFTER_VERSION_CREATE, priority=5)
    async def warm_cache(page, version):
        ...

Handlers run inside the caller's transaction, before it commits, so an
exception raised by a handler rolls the whole operation back.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(order=True)
class HookHandler:
    """A registered hook handler with priority."""

    priority: int
    callback: Callable = field(compare=False)

    async def call(self, *args: Any, **kwargs: Any) -> Any:
        """Call the handler, handling both sync and async callbacks."""
        result = self.callback(*args, **kwargs)
        if asyncio.iscoroutine(result):
            return await result
        return result


class HookRegistry:
    """Registry of action callbacks keyed by hook name."""

    def __init__(self) -> None:
        self._actions: dict[str, list[HookHandler]] = defaultdict(list)

    def add_action(
        self,
        hook_name: str,
        callback: Callable[..., Any],
        priority: int = 10,
    ) -> None:
        """Register an action callback.

        Args:
            hook_name: Name of the action hook
            callback: Function to call when action is triggered
            priority: Lower numbers execute first (default: 10)
        """
        handler = HookHandler(priority=priority, callback=callback)
        self._actions[hook_name].append(handler)
        self._actions[hook_name].sort()

    def remove_action(self, hook_name: str, callback: Callable[..., Any]) -> bool:
        handlers = self._actions.get(hook_name, [])
        for i, handler in enumerate(handlers):
            if handler.callback is callback:
                handlers.pop(i)
                return True
        return False

    def has_action(self, hook_name: str) -> bool:
        return bool(self._actions.get(hook_name))

    async def do_action(self, hook_name: str, *args: Any, **kwargs: Any) -> None:
        """Execute every callback registered for ``hook_name`` in priority order."""
        handlers = self._actions.get(hook_name, [])
        for handler in handlers:
            logger.debug("Running %s handler %r", hook_name, handler.callback)
            await handler.call(*args, **kwargs)

    def clear(self) -> None:
        """Clear all registered hooks. Useful for testing."""
        self._actions.clear()


# Global singleton registry
hooks = HookRegistry()


def action(hook_name: str, priority: int = 10) -> Callable[[Callable], Callable]:
    """Decorator registering a function as an action handler."""

    def decorator(func: Callable) -> Callable:
        hooks.add_action(hook_name, func, priority)
        return func

    return decorator


BEFORE_COMPONENT_SAVE = "before_component_save"
AFTER_COMPONENT_SAVE = "after_component_save"
AFTER_COMPONENT_DELETE = "after_component_delete"
AFTER_VERSION_CREATE = "after_version_create"
AFTER_VERSION_RESTORE = "after_version_restore"
AFTER_PAGE_PUBLISH = "after_page_publish"
