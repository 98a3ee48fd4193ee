"""Component node store: create, update, move, duplicate and delete nodes.

Nodes are addressed by ``(page_id, key)``. Every mutating call runs in a
single transaction, checks the caller's concurrency token when one is given
and advances the page token on success.
"""

import logging
import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pagecraft.config import get_settings
from pagecraft.db.models import PageComponent, PageVersion
from pagecraft.db.services import page_service, template_service
from pagecraft.db.session import atomic
from pagecraft.lib.errors import (
    ConflictError,
    IntegrityViolationError,
    InvalidError,
    LockedError,
    NotFoundError,
)
from pagecraft.lib.grid import (
    GridPlacement,
    append_order,
    plan_insert,
    spaced_orders,
    validate_order,
    validate_placement,
)
from pagecraft.lib.hooks import (
    AFTER_COMPONENT_DELETE,
    AFTER_COMPONENT_SAVE,
    BEFORE_COMPONENT_SAVE,
    hooks,
)
from pagecraft.lib.tree import (
    DOCUMENT_FIELDS,
    AssembledForest,
    NodeRecord,
    assemble,
    flatten,
    forest_from_dicts,
)

logger = logging.getLogger(__name__)

TYPE_PATTERN = re.compile(r"^[a-z][a-z0-9_-]{0,99}$")

PLACEMENT_FIELDS = {
    "column": "grid_column",
    "column_span": "grid_column_span",
    "row": "grid_row",
    "row_span": "grid_row_span",
}
PATCHABLE_FIELDS = frozenset(
    {"name", "css_classes", "custom_css", "is_visible", "is_locked", *PLACEMENT_FIELDS, *DOCUMENT_FIELDS}
)


def _order_step() -> int:
    return get_settings().designer.order_step


def _validate_type(component_type: str) -> str:
    if not isinstance(component_type, str) or not TYPE_PATTERN.match(component_type):
        raise InvalidError(f"Invalid component type: {component_type!r}")
    return component_type


def validate_record(record: NodeRecord) -> NodeRecord:
    """Check a client- or snapshot-supplied record before it is persisted."""
    _validate_type(record.type)
    validate_order(record.sort_order)
    validate_placement(
        GridPlacement(
            column=record.column,
            column_span=record.column_span,
            row=record.row,
            row_span=record.row_span,
        )
    )
    for field_name in DOCUMENT_FIELDS:
        if not isinstance(getattr(record, field_name), dict):
            raise InvalidError(f"{field_name} must be an object", key=record.key, field=field_name)
    if not isinstance(record.key, str) or len(record.key) > 64:
        raise InvalidError("Component keys are strings of at most 64 characters", key=record.key)
    return record


def _sibling_key(component: PageComponent) -> tuple[int, int]:
    return (component.sort_order, component.insert_seq)


def placement_of(component: PageComponent) -> GridPlacement:
    return GridPlacement(
        column=component.grid_column,
        column_span=component.grid_column_span,
        row=component.grid_row,
        row_span=component.grid_row_span,
    )


async def load_components(
    db_session: AsyncSession,
    page_id: UUID,
    include_deleted: bool = False,
) -> list[PageComponent]:
    """All component rows of a page, in sibling order."""
    query = (
        select(PageComponent)
        .where(PageComponent.page_id == page_id)
        .order_by(PageComponent.sort_order.asc(), PageComponent.insert_seq.asc())
        .execution_options(populate_existing=True)
    )
    if not include_deleted:
        query = query.where(PageComponent.is_deleted == False)  # noqa: E712

    result = await db_session.execute(query)
    return list(result.scalars().all())


async def next_insert_seq(db_session: AsyncSession, page_id: UUID) -> int:
    """Next value of the page's insertion sequence (counts deleted rows too)."""
    result = await db_session.execute(
        select(func.coalesce(func.max(PageComponent.insert_seq), 0)).where(
            PageComponent.page_id == page_id
        )
    )
    return (result.scalar() or 0) + 1


async def _get_component(
    db_session: AsyncSession,
    page_id: UUID,
    key: str,
    include_deleted: bool = False,
) -> PageComponent | None:
    query = select(PageComponent).where(
        PageComponent.page_id == page_id,
        PageComponent.key == key,
    ).execution_options(populate_existing=True)
    if not include_deleted:
        query = query.where(PageComponent.is_deleted == False)  # noqa: E712
    result = await db_session.execute(query)
    return result.scalar_one_or_none()


async def get_node(db_session: AsyncSession, page_id: UUID, key: str) -> PageComponent:
    """Get a live component by key.

    Raises:
        NotFoundError: if no live component has this key on the page
    """
    component = await _get_component(db_session, page_id, key)
    if component is None:
        raise NotFoundError(f"Component {key!r} not found", page_id=str(page_id), key=key)
    return component


async def load_forest(db_session: AsyncSession, page_id: UUID) -> AssembledForest:
    """Assemble the live component forest of a page.

    Integrity warnings are logged and returned, never raised.
    """
    components = await load_components(db_session, page_id)
    forest = assemble(NodeRecord.from_component(c) for c in components)
    for warning in forest.warnings:
        logger.warning(
            "Page %s: component %s has %s (parent %s)",
            page_id,
            warning.key,
            warning.reason,
            warning.parent_key,
        )
    return forest


async def list_nodes(
    db_session: AsyncSession,
    page_id: UUID,
    include_deleted: bool = False,
) -> list[PageComponent]:
    """List a page's components, roots first, each followed by its descendants.

    Deleted rows, when requested, are appended after the live tree in
    sibling order.

    Raises:
        NotFoundError: if the page does not exist
    """
    await page_service.get_live_page(db_session, page_id)
    components = await load_components(db_session, page_id, include_deleted=include_deleted)
    live = [c for c in components if not c.is_deleted]
    by_key = {c.key: c for c in live}

    ordered = [by_key[r.key] for r in flatten(assemble(NodeRecord.from_component(c) for c in live).roots)]
    ordered.extend(c for c in components if c.is_deleted)
    return ordered


def children_index(components: Iterable[PageComponent]) -> dict[str | None, list[PageComponent]]:
    children: dict[str | None, list[PageComponent]] = defaultdict(list)
    for component in components:
        children[component.parent_key].append(component)
    for group in children.values():
        group.sort(key=_sibling_key)
    return children


def _subtree(
    root: PageComponent,
    children: dict[str | None, list[PageComponent]],
) -> list[PageComponent]:
    """Root followed by every descendant, parents before children."""
    result = [root]
    seen = {root.key}
    stack = [root]
    while stack:
        current = stack.pop()
        for child in children.get(current.key, ()):
            if child.key in seen:
                continue
            seen.add(child.key)
            result.append(child)
            stack.append(child)
    return result


def _ancestor_keys(start_key: str | None, by_key: dict[str, PageComponent]) -> list[str]:
    """Keys from ``start_key`` up to its root, inclusive."""
    chain: list[str] = []
    current = start_key
    while current is not None and current not in chain:
        chain.append(current)
        parent = by_key.get(current)
        current = parent.parent_key if parent is not None else None
    return chain


async def _check_parent_accepts_children(db_session: AsyncSession, parent: PageComponent) -> None:
    template = await template_service.get_template_for_type(db_session, parent.type)
    if template is not None and not template.allow_children:
        raise InvalidError(
            f"Components of type {parent.type!r} cannot contain children",
            key=parent.key,
        )


def _place(
    siblings: Sequence[PageComponent],
    index: int | None,
    user_id: str | None,
) -> int:
    """Pick a sort order at ``index`` among ordered siblings.

    Siblings are renumbered in place only when their orders collide.
    """
    step = _order_step()
    orders = [s.sort_order for s in siblings]
    if index is None:
        return append_order(orders, step)

    plan = plan_insert(orders, index, step)
    if plan.renumbered is not None:
        logger.debug("Respacing %d siblings", len(siblings))
        for sibling, new_order in zip(siblings, plan.renumbered):
            if sibling.sort_order != new_order:
                sibling.sort_order = new_order
                sibling.updated_by = user_id
    return plan.order


def _merged_documents(template, overrides: dict[str, Any | None]) -> dict[str, dict[str, Any]]:
    defaults = {
        "properties": dict(template.default_properties or {}) if template else {},
        "styles": dict(template.default_styles or {}) if template else {},
        "settings": dict(template.default_settings or {}) if template else {},
    }
    documents: dict[str, dict[str, Any]] = {}
    for field_name in DOCUMENT_FIELDS:
        value = overrides.get(field_name)
        if value is not None and not isinstance(value, dict):
            raise InvalidError(f"{field_name} must be an object", field=field_name)
        documents[field_name] = {**defaults.get(field_name, {}), **(value or {})}
    return documents


async def create_node(
    db_session: AsyncSession,
    page_id: UUID,
    component_type: str,
    parent_key: str | None = None,
    placement: GridPlacement | None = None,
    order: int | None = None,
    index: int | None = None,
    name: str | None = None,
    properties: dict[str, Any] | None = None,
    styles: dict[str, Any] | None = None,
    content: dict[str, Any] | None = None,
    settings: dict[str, Any] | None = None,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> PageComponent:
    """Create a component on a page.

    Args:
        db_session: Database session
        page_id: Owning page
        component_type: Type discriminator, looked up in the template catalog
        parent_key: Key of a live component on the same page, or None for a root
        placement: Grid placement; defaults to the template's column span
        order: Explicit sort order (ties fall back to insertion sequence)
        index: Sibling position to insert at; ignored when ``order`` is given
        expected_token: Concurrency token the caller last observed
        user_id: Current user, stamped on audit fields

    Returns:
        The created PageComponent

    Raises:
        NotFoundError: unknown page or parent
        InvalidError: bad type, placement, order or a parent that cannot hold children
        ConflictError: stale token
    """
    _validate_type(component_type)
    if order is not None:
        validate_order(order)

    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        await page_service.advance_token(db_session, page, expected_token, user_id)

        template = await template_service.get_template_for_type(db_session, component_type)

        if parent_key is not None:
            parent = await get_node(db_session, page_id, parent_key)
            await _check_parent_accepts_children(db_session, parent)

        if placement is None:
            span = template.default_column_span if template else get_settings().designer.default_column_span
            placement = GridPlacement(column_span=span)
        validate_placement(placement)

        components = await load_components(db_session, page_id)
        siblings = children_index(components).get(parent_key, [])
        if order is None:
            order = _place(siblings, index, user_id)

        key = uuid4().hex
        while await _get_component(db_session, page_id, key, include_deleted=True) is not None:
            key = uuid4().hex

        documents = _merged_documents(
            template,
            {"properties": properties, "styles": styles, "content": content, "settings": settings},
        )
        component = PageComponent(
            page_id=page_id,
            key=key,
            type=component_type,
            name=name or (template.display_name if template else component_type),
            parent_key=parent_key,
            sort_order=order,
            insert_seq=await next_insert_seq(db_session, page_id),
            is_visible=True,
            is_locked=False,
            is_deleted=False,
            created_by=user_id,
            updated_by=user_id,
            **placement.as_columns(),
            **documents,
        )

        await hooks.do_action(BEFORE_COMPONENT_SAVE, component, is_new=True)
        db_session.add(component)
        await db_session.flush()
        await hooks.do_action(AFTER_COMPONENT_SAVE, component, is_new=True)

    logger.info("Created component %s (%s) on page %s", component.key, component_type, page_id)
    return component


async def update_node(
    db_session: AsyncSession,
    page_id: UUID,
    key: str,
    patch: dict[str, Any],
    expected_token: str | None = None,
    user_id: str | None = None,
) -> PageComponent:
    """Apply a content, placement or flag patch to a component.

    Locked components accept updates; only tree-shape edits are blocked.

    Raises:
        InvalidError: unknown or non-patchable fields, bad placement, non-object documents
    """
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise InvalidError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        component = await get_node(db_session, page_id, key)
        await page_service.advance_token(db_session, page, expected_token, user_id)

        current = placement_of(component)
        placement = GridPlacement(
            column=patch.get("column", current.column),
            column_span=patch.get("column_span", current.column_span),
            row=patch.get("row", current.row),
            row_span=patch.get("row_span", current.row_span),
        )
        validate_placement(placement)
        for field_name in DOCUMENT_FIELDS:
            if field_name in patch and not isinstance(patch[field_name], dict):
                raise InvalidError(f"{field_name} must be an object", field=field_name)
        for field_name in ("is_visible", "is_locked"):
            if field_name in patch and not isinstance(patch[field_name], bool):
                raise InvalidError(f"{field_name} must be a boolean", field=field_name)

        await hooks.do_action(BEFORE_COMPONENT_SAVE, component, is_new=False)

        for attr, value in placement.as_columns().items():
            setattr(component, attr, value)
        for field_name in DOCUMENT_FIELDS:
            if field_name in patch:
                setattr(component, field_name, dict(patch[field_name]))
        for field_name in ("is_visible", "is_locked", "css_classes", "custom_css"):
            if field_name in patch:
                setattr(component, field_name, patch[field_name])
        if "name" in patch:
            component.name = patch["name"] or ""

        component.updated_by = user_id
        await db_session.flush()
        await hooks.do_action(AFTER_COMPONENT_SAVE, component, is_new=False)

    return component


async def move_node(
    db_session: AsyncSession,
    page_id: UUID,
    key: str,
    new_parent_key: str | None = None,
    index: int | None = None,
    placement: GridPlacement | None = None,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> PageComponent:
    """Reparent and/or reorder a component.

    Args:
        new_parent_key: Key of the new parent on the same page, or None for root
        index: Position among the new siblings (the node itself excluded);
            None appends at the end
        placement: Optional new grid placement

    Raises:
        LockedError: the component is locked
        NotFoundError: unknown component or target parent
        ConflictError: the target parent is the component or one of its descendants
    """
    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        component = await get_node(db_session, page_id, key)
        if component.is_locked:
            raise LockedError(f"Component {key!r} is locked", key=key)

        components = await load_components(db_session, page_id)
        by_key = {c.key: c for c in components}

        if new_parent_key is not None:
            parent = by_key.get(new_parent_key)
            if parent is None:
                raise NotFoundError(
                    f"Component {new_parent_key!r} not found", page_id=str(page_id), key=new_parent_key
                )
            if key in _ancestor_keys(new_parent_key, by_key):
                raise ConflictError(
                    f"Cannot move {key!r} under its own descendant {new_parent_key!r}",
                    key=key,
                    parent_key=new_parent_key,
                )
            await _check_parent_accepts_children(db_session, parent)

        if placement is not None:
            validate_placement(placement)

        await page_service.advance_token(db_session, page, expected_token, user_id)

        siblings = [
            s for s in children_index(components).get(new_parent_key, []) if s.key != key
        ]
        component = by_key[key]
        component.sort_order = _place(siblings, index, user_id)
        component.parent_key = new_parent_key
        if placement is not None:
            for attr, value in placement.as_columns().items():
                setattr(component, attr, value)
        component.updated_by = user_id

        await db_session.flush()
        await hooks.do_action(AFTER_COMPONENT_SAVE, component, is_new=False)

    logger.info("Moved component %s on page %s under %s", key, page_id, new_parent_key)
    return component


async def reorder_children(
    db_session: AsyncSession,
    page_id: UUID,
    parent_key: str | None,
    keys: Sequence[str],
    expected_token: str | None = None,
    user_id: str | None = None,
) -> list[PageComponent]:
    """Give a full sibling set a new order, evenly respaced.

    Raises:
        InvalidError: ``keys`` is not exactly the set of live children
        LockedError: a locked child would change position
    """
    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        components = await load_components(db_session, page_id)
        if parent_key is not None and parent_key not in {c.key for c in components}:
            raise NotFoundError(f"Component {parent_key!r} not found", key=parent_key)

        siblings = children_index(components).get(parent_key, [])
        if len(keys) != len(set(keys)) or set(keys) != {s.key for s in siblings}:
            raise InvalidError("Reorder must list every child exactly once")

        by_key = {s.key: s for s in siblings}
        for old_index, sibling in enumerate(siblings):
            if sibling.is_locked and keys[old_index] != sibling.key:
                raise LockedError(f"Component {sibling.key!r} is locked", key=sibling.key)

        await page_service.advance_token(db_session, page, expected_token, user_id)

        for new_order, child_key in zip(spaced_orders(len(keys), _order_step()), keys):
            child = by_key[child_key]
            if child.sort_order != new_order:
                child.sort_order = new_order
                child.updated_by = user_id

        await db_session.flush()

    return [by_key[k] for k in keys]


async def duplicate_node(
    db_session: AsyncSession,
    page_id: UUID,
    key: str,
    new_parent_key: str | None | object = page_service._UNSET,
    index: int | None = None,
    name: str | None = None,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> PageComponent:
    """Deep-copy a component and its live descendants under fresh keys.

    The copy lands right after the original unless a parent or index is
    given. The top-level copy is always unlocked.
    """
    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        original = await get_node(db_session, page_id, key)
        components = await load_components(db_session, page_id)
        children = children_index(components)
        by_key = {c.key: c for c in components}

        if new_parent_key is page_service._UNSET:
            new_parent_key = original.parent_key
            if index is None:
                siblings = children.get(new_parent_key, [])
                index = [s.key for s in siblings].index(key) + 1
        if new_parent_key is not None:
            parent = by_key.get(new_parent_key)
            if parent is None:
                raise NotFoundError(f"Component {new_parent_key!r} not found", key=new_parent_key)
            await _check_parent_accepts_children(db_session, parent)

        await page_service.advance_token(db_session, page, expected_token, user_id)

        source = _subtree(by_key[key], children)
        siblings = children.get(new_parent_key, [])
        top_order = _place(siblings, index, user_id)

        key_map = {c.key: uuid4().hex for c in source}
        seq = await next_insert_seq(db_session, page_id)
        copies: list[PageComponent] = []
        for offset, src in enumerate(source):
            is_top = src.key == key
            record = NodeRecord.from_component(src)
            copy = PageComponent(
                page_id=page_id,
                key=key_map[src.key],
                type=src.type,
                name=(name or f"{src.name} (Copy)") if is_top else src.name,
                parent_key=new_parent_key if is_top else key_map[src.parent_key],
                sort_order=top_order if is_top else src.sort_order,
                insert_seq=seq + offset,
                grid_column=src.grid_column,
                grid_column_span=src.grid_column_span,
                grid_row=src.grid_row,
                grid_row_span=src.grid_row_span,
                css_classes=src.css_classes,
                custom_css=src.custom_css,
                is_visible=src.is_visible,
                is_locked=False if is_top else src.is_locked,
                is_deleted=False,
                created_by=user_id,
                updated_by=user_id,
                **{f: record.to_dict()[f] for f in DOCUMENT_FIELDS},
            )
            db_session.add(copy)
            copies.append(copy)
            # Parents must exist before their children are inserted
            await db_session.flush()

        await hooks.do_action(AFTER_COMPONENT_SAVE, copies[0], is_new=True)

    logger.info("Duplicated component %s as %s (%d nodes)", key, copies[0].key, len(copies))
    return copies[0]


async def _version_referenced_keys(db_session: AsyncSession, page_id: UUID) -> set[str]:
    result = await db_session.execute(
        select(PageVersion.snapshot).where(PageVersion.page_id == page_id)
    )
    keys: set[str] = set()
    for snapshot in result.scalars():
        roots = forest_from_dicts(snapshot.get("components") or [])
        keys.update(record.key for record in flatten(roots))
    return keys


async def delete_subtree(
    db_session: AsyncSession,
    page_id: UUID,
    key: str,
    hard: bool = False,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> list[str]:
    """Delete a component and everything below it, atomically.

    Soft delete flags the node and all live descendants. Hard delete removes
    the rows (deleted descendants included) and is refused while any stored
    version still references one of them.

    Returns:
        Keys of the deleted components, parents before children

    Raises:
        NotFoundError: unknown component
        LockedError: the component or a descendant is locked
        IntegrityViolationError: hard delete of rows still referenced by a version
    """
    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        root = await get_node(db_session, page_id, key)

        live = await load_components(db_session, page_id)
        live_subtree = _subtree(root, children_index(live))
        locked = [c.key for c in live_subtree if c.is_locked]
        if locked:
            raise LockedError(f"Component {locked[0]!r} is locked", key=locked[0])

        await page_service.advance_token(db_session, page, expected_token, user_id)

        if not hard:
            for component in live_subtree:
                component.soft_delete(user_id)
            await db_session.flush()
            deleted = [c.key for c in live_subtree]
        else:
            every_row = await load_components(db_session, page_id, include_deleted=True)
            full_subtree = _subtree(root, children_index(every_row))
            deleted = [c.key for c in full_subtree]

            referenced = set(deleted) & await _version_referenced_keys(db_session, page_id)
            if referenced:
                raise IntegrityViolationError(
                    "Components are still referenced by stored versions",
                    keys=sorted(referenced),
                )

            ids = [c.id for c in full_subtree]
            await db_session.execute(
                update(PageComponent)
                .where(PageComponent.id.in_(ids))
                .values(parent_key=None)
                .execution_options(synchronize_session=False)
            )
            await db_session.execute(
                delete(PageComponent)
                .where(PageComponent.id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            for component in full_subtree:
                db_session.expunge(component)

        await hooks.do_action(AFTER_COMPONENT_DELETE, page, deleted, hard=hard)

    logger.info(
        "%s %d components under %s on page %s",
        "Purged" if hard else "Soft-deleted",
        len(deleted),
        key,
        page_id,
    )
    return deleted


async def delete_node(
    db_session: AsyncSession,
    page_id: UUID,
    key: str,
    hard: bool = False,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> list[str]:
    """Delete a single component that has no live children.

    Raises:
        IntegrityViolationError: the component still has live children
    """
    async with atomic(db_session):
        component = await get_node(db_session, page_id, key)
        live = await load_components(db_session, page_id)
        if any(c.parent_key == component.key for c in live):
            raise IntegrityViolationError(
                f"Component {key!r} has live children; delete or move them first",
                key=key,
            )
        return await delete_subtree(
            db_session,
            page_id,
            key,
            hard=hard,
            expected_token=expected_token,
            user_id=user_id,
        )
