"""Tests for the action hook system."""

import asyncio

import pytest

from pagecraft.db.services import node_service
from pagecraft.lib.errors import NotFoundError
from pagecraft.lib.hooks import (
    AFTER_COMPONENT_DELETE,
    AFTER_COMPONENT_SAVE,
    BEFORE_COMPONENT_SAVE,
    HookRegistry,
    action,
    hooks,
)


@pytest.fixture
def registry():
    """Create a fresh HookRegistry for each test."""
    return HookRegistry()


class TestHookRegistry:
    """Test the HookRegistry class."""

    def test_add_action_registers_handler(self, registry):
        def my_handler():
            pass

        registry.add_action("test_action", my_handler)
        assert registry.has_action("test_action")
        assert not registry.has_action("other")

    def test_action_priority_ordering(self, registry):
        """Test that actions are called in priority order."""
        call_order = []

        def handler_low():
            call_order.append("low")

        def handler_high():
            call_order.append("high")

        registry.add_action("test", handler_high, priority=20)
        registry.add_action("test", handler_low, priority=5)

        asyncio.run(registry.do_action("test"))

        assert call_order == ["low", "high"]

    @pytest.mark.asyncio
    async def test_do_action_passes_arguments(self, registry):
        results = []

        def handler1(value, flag=False):
            results.append(("handler1", value, flag))

        def handler2(value, flag=False):
            results.append(("handler2", value, flag))

        registry.add_action("test", handler1)
        registry.add_action("test", handler2)

        await registry.do_action("test", "input", flag=True)

        assert results == [("handler1", "input", True), ("handler2", "input", True)]

    @pytest.mark.asyncio
    async def test_async_action_handler(self, registry):
        """Test that async action handlers are awaited."""
        results = []

        async def async_handler(value):
            results.append(value)

        registry.add_action("test", async_handler)
        await registry.do_action("test", "async_value")

        assert results == ["async_value"]

    @pytest.mark.asyncio
    async def test_handler_errors_propagate(self, registry):
        def broken():
            raise ValueError("boom")

        registry.add_action("test", broken)
        with pytest.raises(ValueError):
            await registry.do_action("test")

    @pytest.mark.asyncio
    async def test_unknown_hook_is_noop(self, registry):
        await registry.do_action("nothing_registered", 1, 2)

    def test_remove_action(self, registry):
        """Test removing an action handler."""

        def my_handler():
            pass

        registry.add_action("test", my_handler)
        assert registry.remove_action("test", my_handler) is True
        assert not registry.has_action("test")
        assert registry.remove_action("test", my_handler) is False

    def test_clear(self, registry):
        registry.add_action("a", lambda: None)
        registry.add_action("b", lambda: None)
        registry.clear()
        assert not registry.has_action("a")
        assert not registry.has_action("b")


class TestDecorator:
    def test_action_decorator_registers_globally(self):
        @action("decorated_hook", priority=3)
        def handler():
            pass

        assert hooks.has_action("decorated_hook")
        assert handler.__name__ == "handler"


class TestComponentHooks:
    @pytest.mark.asyncio
    async def test_save_hooks_fire_around_create_and_update(self, db_session, page_id, add_node):
        events = []
        hooks.add_action(BEFORE_COMPONENT_SAVE, lambda component, is_new: events.append(("before", is_new)))
        hooks.add_action(AFTER_COMPONENT_SAVE, lambda component, is_new: events.append(("after", is_new)))

        key = await add_node()
        await node_service.update_node(db_session, page_id, key, {"name": "Renamed"})

        assert events == [("before", True), ("after", True), ("before", False), ("after", False)]

    @pytest.mark.asyncio
    async def test_delete_hook_receives_keys(self, db_session, page_id, add_node):
        seen = []

        async def on_delete(page, keys, hard):
            seen.append((keys, hard))

        hooks.add_action(AFTER_COMPONENT_DELETE, on_delete)
        root = await add_node()
        child = await add_node(parent_key=root)

        await node_service.delete_subtree(db_session, page_id, root)

        assert seen == [([root, child], False)]

    @pytest.mark.asyncio
    async def test_failing_before_hook_aborts_create(self, db_session, page_id):
        def veto(component, is_new):
            raise NotFoundError("vetoed")

        hooks.add_action(BEFORE_COMPONENT_SAVE, veto)
        with pytest.raises(NotFoundError):
            await node_service.create_node(db_session, page_id, "section")

        assert await node_service.list_nodes(db_session, page_id) == []
