"""Designer session operations.

The designer addresses components by key and must echo back the page token
it last saw on every write. Each call returns the new token so the client
can keep going without reloading.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from pagecraft.config import get_settings
from pagecraft.db.models import Page, PageComponent, PageVersion
from pagecraft.db.services import (
    node_service,
    page_service,
    template_service,
    version_service,
)
from pagecraft.db.session import atomic
from pagecraft.lib.errors import InvalidError, TokenRequiredError
from pagecraft.lib.grid import GridPlacement
from pagecraft.lib.hooks import AFTER_PAGE_PUBLISH, hooks
from pagecraft.lib.tree import AssembledForest, AssemblyWarning, forest_from_dicts, normalize_orders

logger = logging.getLogger(__name__)


@dataclass
class DesignerPage:
    """Everything the designer needs to start editing a page."""

    page: Page
    forest: AssembledForest
    token: str

    @property
    def warnings(self) -> list[AssemblyWarning]:
        return self.forest.warnings


@dataclass
class EditResult:
    component: PageComponent | None
    token: str
    keys: list[str] | None = None


@dataclass
class PublishResult:
    page: Page
    version: PageVersion
    token: str


def require_token(token: str | None) -> str:
    if not token:
        raise TokenRequiredError("A concurrency token is required for this operation")
    return token


async def _current_token(db_session: AsyncSession, page_id: UUID) -> str:
    page = await page_service.get_live_page(db_session, page_id)
    return page_service.concurrency_token(page)


async def open_page(db_session: AsyncSession, page_id: UUID) -> DesignerPage:
    """Load a page, its assembled forest and its current token."""
    page = await page_service.get_live_page(db_session, page_id)
    forest = await node_service.load_forest(db_session, page_id)
    return DesignerPage(page=page, forest=forest, token=page_service.concurrency_token(page))


async def add_component(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    component_type: str,
    parent_key: str | None = None,
    index: int | None = None,
    placement: GridPlacement | None = None,
    name: str | None = None,
    properties: dict[str, Any] | None = None,
    user_id: str | None = None,
) -> EditResult:
    component = await node_service.create_node(
        db_session,
        page_id,
        component_type,
        parent_key=parent_key,
        placement=placement,
        index=index,
        name=name,
        properties=properties,
        expected_token=require_token(token),
        user_id=user_id,
    )
    return EditResult(component, await _current_token(db_session, page_id))


async def update_component(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    key: str,
    patch: dict[str, Any],
    user_id: str | None = None,
) -> EditResult:
    component = await node_service.update_node(
        db_session, page_id, key, patch, expected_token=require_token(token), user_id=user_id
    )
    return EditResult(component, await _current_token(db_session, page_id))


async def move_component(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    key: str,
    parent_key: str | None = None,
    index: int | None = None,
    placement: GridPlacement | None = None,
    user_id: str | None = None,
) -> EditResult:
    component = await node_service.move_node(
        db_session,
        page_id,
        key,
        new_parent_key=parent_key,
        index=index,
        placement=placement,
        expected_token=require_token(token),
        user_id=user_id,
    )
    return EditResult(component, await _current_token(db_session, page_id))


async def delete_component(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    key: str,
    cascade: bool = False,
    user_id: str | None = None,
) -> EditResult:
    """Soft-delete a component; ``cascade`` takes its live subtree with it."""
    delete = node_service.delete_subtree if cascade else node_service.delete_node
    keys = await delete(
        db_session, page_id, key, expected_token=require_token(token), user_id=user_id
    )
    return EditResult(None, await _current_token(db_session, page_id), keys=keys)


async def duplicate_component(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    key: str,
    user_id: str | None = None,
) -> EditResult:
    component = await node_service.duplicate_node(
        db_session, page_id, key, expected_token=require_token(token), user_id=user_id
    )
    return EditResult(component, await _current_token(db_session, page_id))


async def reorder_components(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    parent_key: str | None,
    keys: Sequence[str],
    user_id: str | None = None,
) -> EditResult:
    await node_service.reorder_children(
        db_session, page_id, parent_key, keys, expected_token=require_token(token), user_id=user_id
    )
    return EditResult(None, await _current_token(db_session, page_id), keys=list(keys))


def _with_keys(items: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Copy a nested component payload, giving unsaved components a key."""
    result = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidError("Components must be objects")
        copy = dict(item)
        if not copy.get("key"):
            copy["key"] = uuid4().hex
        copy["children"] = _with_keys(item.get("children") or [])
        result.append(copy)
    return result


async def save_page(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    components: Sequence[dict[str, Any]],
    create_version: bool = False,
    change_notes: str | None = None,
    user_id: str | None = None,
) -> DesignerPage:
    """Persist a whole edited forest in one go.

    Sibling order comes from list position and parent links from nesting.
    Components without a key are new. Live components missing from the
    payload are soft-deleted. Locked components must keep their parent.

    Args:
        components: Nested component dicts, as returned by ``forest_to_dicts``
        create_version: Also record a version of the saved state
    """
    expected = require_token(token)
    roots = forest_from_dicts(_with_keys(components))
    records = normalize_orders(roots, get_settings().designer.order_step)

    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        await page_service.advance_token(db_session, page, expected, user_id)

        templates = {t.type: t for t in await template_service.list_templates(db_session)}
        types = {r.key: r.type for r in records}
        for record in records:
            if record.parent_key is None:
                continue
            template = templates.get(types[record.parent_key])
            if template is not None and not template.allow_children:
                raise InvalidError(
                    f"Components of type {template.type!r} cannot contain children",
                    key=record.parent_key,
                )

        changes = await version_service.reconcile_nodes(
            db_session, page_id, records, user_id=user_id, enforce_locks=True
        )
        if create_version:
            await version_service.record_version(db_session, page, change_notes, user_id=user_id)

    logger.info(
        "Saved page %s: %d updated, %d created, %d deleted",
        page_id,
        len(changes.updated) + len(changes.revived),
        len(changes.created),
        len(changes.deleted),
    )
    return await open_page(db_session, page_id)


async def publish_page(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    change_notes: str | None = None,
    user_id: str | None = None,
) -> PublishResult:
    """Publish the page and record the published state as a new version."""
    expected = require_token(token)
    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        page_service.assert_status_transition(page.status, "published")
        await page_service.advance_token(db_session, page, expected, user_id)
        page.status = "published"

        version = await version_service.record_version(
            db_session, page, change_notes, publish=True, user_id=user_id
        )
        await hooks.do_action(AFTER_PAGE_PUBLISH, page, version)

    logger.info("Published page %s as version %d", page_id, version.version_number)
    return PublishResult(page, version, await _current_token(db_session, page_id))


async def unpublish_page(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    user_id: str | None = None,
) -> DesignerPage:
    await page_service.set_page_status(
        db_session, page_id, "draft", expected_token=require_token(token), user_id=user_id
    )
    return await open_page(db_session, page_id)


async def snapshot_page(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    change_notes: str | None = None,
    user_id: str | None = None,
) -> PageVersion:
    return await version_service.create_version(
        db_session,
        page_id,
        change_notes=change_notes,
        expected_token=require_token(token),
        user_id=user_id,
    )


async def restore_page(
    db_session: AsyncSession,
    page_id: UUID,
    token: str | None,
    version_number: int,
    user_id: str | None = None,
) -> DesignerPage:
    await version_service.restore_version(
        db_session,
        page_id,
        version_number,
        expected_token=require_token(token),
        user_id=user_id,
    )
    return await open_page(db_session, page_id)


async def get_component_library(db_session: AsyncSession) -> list[template_service.ComponentCategory]:
    return await template_service.get_component_library(db_session)
