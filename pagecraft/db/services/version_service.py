"""Version service: immutable page snapshots and key-based restore."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pagecraft.config import get_settings
from pagecraft.db.models import Page, PageComponent, PageVersion
from pagecraft.db.services import node_service, page_service
from pagecraft.db.session import atomic
from pagecraft.lib.errors import ConflictError, InvalidError, LockedError, NotFoundError
from pagecraft.lib.hooks import AFTER_VERSION_CREATE, AFTER_VERSION_RESTORE, hooks
from pagecraft.lib.tree import (
    SNAPSHOT_FORMAT,
    AssembledForest,
    NodeRecord,
    assemble,
    flatten,
    forest_from_dicts,
    forest_to_dicts,
)

logger = logging.getLogger(__name__)

# Record fields copied onto an existing row during reconciliation
_RECONCILED_FIELDS = (
    "type",
    "name",
    "sort_order",
    "properties",
    "styles",
    "content",
    "settings",
    "responsive_settings",
    "animation_settings",
    "interaction_settings",
    "css_classes",
    "custom_css",
    "is_visible",
    "is_locked",
)
_PLACEMENT_COLUMNS = {
    "column": "grid_column",
    "column_span": "grid_column_span",
    "row": "grid_row",
    "row_span": "grid_row_span",
}


@dataclass
class ReconcileResult:
    """Keys touched by a reconciliation, grouped by what happened to them."""

    updated: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    revived: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


@dataclass
class RestoreResult:
    restored_from: int
    version: PageVersion
    forest: AssembledForest
    changes: ReconcileResult


def build_snapshot(page: Page, forest: AssembledForest) -> dict[str, Any]:
    """Serialize a page and its assembled forest into a snapshot document."""
    return {
        "format": SNAPSHOT_FORMAT,
        "page": {
            "title": page.title,
            "slug": page.slug,
            "description": page.description,
            "status": page.status,
        },
        "components": forest_to_dicts(forest.roots),
    }


def snapshot_records(snapshot: dict[str, Any]) -> list[NodeRecord]:
    """Records of a snapshot document, parents before children.

    Raises:
        InvalidError: unknown snapshot format or malformed components
    """
    if snapshot.get("format") != SNAPSHOT_FORMAT:
        raise InvalidError(f"Unsupported snapshot format: {snapshot.get('format')!r}")
    return flatten(forest_from_dicts(snapshot.get("components") or []))


def version_forest(version: PageVersion) -> AssembledForest:
    """Re-assemble the forest stored in a version."""
    return assemble(snapshot_records(version.snapshot))


def _apply_record(row: PageComponent, record: NodeRecord) -> None:
    for field_name in _RECONCILED_FIELDS:
        value = getattr(record, field_name)
        if isinstance(value, dict):
            value = dict(value)
        setattr(row, field_name, value)
    for attr, column in _PLACEMENT_COLUMNS.items():
        setattr(row, column, getattr(record, attr))


def _check_locked_positions(rows: dict[str, PageComponent], records: list[NodeRecord]) -> None:
    """Refuse a sibling order in which a locked node changes place.

    Only siblings present both before and after are compared, so adding or
    deleting neighbours around a locked node is allowed.
    """
    live = [row for row in rows.values() if not row.is_deleted]
    before = node_service.children_index(live)

    after: dict[str | None, list[str]] = {}
    ranked = sorted(enumerate(records), key=lambda item: (item[1].sort_order, item[0]))
    for _, record in ranked:
        after.setdefault(record.parent_key, []).append(record.key)

    for parent_key, siblings in before.items():
        if not any(s.is_locked for s in siblings):
            continue
        new_keys = after.get(parent_key, [])
        kept = {s.key for s in siblings} & set(new_keys)
        old_order = [s.key for s in siblings if s.key in kept]
        new_order = [key for key in new_keys if key in kept]
        for sibling in siblings:
            if sibling.is_locked and old_order.index(sibling.key) != new_order.index(sibling.key):
                raise LockedError(f"Component {sibling.key!r} is locked", key=sibling.key)


async def reconcile_nodes(
    db_session: AsyncSession,
    page_id: UUID,
    records: list[NodeRecord],
    user_id: str | None = None,
    enforce_locks: bool = False,
) -> ReconcileResult:
    """Make the page's live node set match ``records``, matching rows by key.

    Keys in both sets are updated in place, keys only in ``records`` are
    created (or revived, when a deleted row still holds the key) and live
    keys missing from ``records`` are soft-deleted. Storage ids of matched
    rows never change.

    ``records`` must list parents before their children. Runs inside the
    caller's transaction.

    Raises:
        InvalidError: duplicate keys, or a parent key not present in ``records``
        LockedError: with ``enforce_locks``, a locked live node would be
            reparented, deleted or moved among its siblings
    """
    wanted: dict[str, NodeRecord] = {}
    for record in records:
        if record.key in wanted:
            raise InvalidError(f"Duplicate component key {record.key!r}", key=record.key)
        if record.parent_key is not None and record.parent_key not in wanted:
            raise InvalidError(
                f"Component {record.key!r} references unknown parent {record.parent_key!r}",
                key=record.key,
            )
        node_service.validate_record(record)
        wanted[record.key] = record

    rows = {row.key: row for row in await node_service.load_components(db_session, page_id, include_deleted=True)}

    if enforce_locks:
        for row in rows.values():
            if row.is_deleted or not row.is_locked:
                continue
            record = wanted.get(row.key)
            if record is None or record.parent_key != row.parent_key:
                raise LockedError(f"Component {row.key!r} is locked", key=row.key)
        _check_locked_positions(rows, records)

    result = ReconcileResult()
    seq = await node_service.next_insert_seq(db_session, page_id)

    # First pass: rows exist for every wanted key, without touching parent links
    for record in records:
        row = rows.get(record.key)
        if row is None:
            row = PageComponent(
                page_id=page_id,
                key=record.key,
                parent_key=None,
                insert_seq=record.insert_seq or seq,
                is_deleted=False,
                created_by=user_id,
            )
            seq += 1
            db_session.add(row)
            rows[record.key] = row
            result.created.append(record.key)
        elif row.is_deleted:
            row.undelete()
            result.revived.append(record.key)
        else:
            result.updated.append(record.key)
        _apply_record(row, record)
        row.updated_by = user_id
    await db_session.flush()

    # Second pass: every target row exists, so parent links can be set
    for record in records:
        rows[record.key].parent_key = record.parent_key
    await db_session.flush()

    for key, row in rows.items():
        if key not in wanted and not row.is_deleted:
            row.soft_delete(user_id)
            result.deleted.append(key)
    await db_session.flush()

    logger.debug(
        "Reconciled page %s: %d updated, %d created, %d revived, %d deleted",
        page_id,
        len(result.updated),
        len(result.created),
        len(result.revived),
        len(result.deleted),
    )
    return result


async def _next_version_number(db_session: AsyncSession, page_id: UUID) -> int:
    result = await db_session.execute(
        select(func.coalesce(func.max(PageVersion.version_number), 0)).where(
            PageVersion.page_id == page_id
        )
    )
    return (result.scalar() or 0) + 1


async def record_version(
    db_session: AsyncSession,
    page: Page,
    change_notes: str | None = None,
    publish: bool = False,
    user_id: str | None = None,
) -> PageVersion:
    """Snapshot the page's live forest inside the caller's transaction."""
    forest = await node_service.load_forest(db_session, page.id)
    now = datetime.now(UTC)
    if publish:
        page.published_at = now
        page.published_by = user_id

    version = PageVersion(
        page_id=page.id,
        version_number=await _next_version_number(db_session, page.id),
        snapshot=build_snapshot(page, forest),
        is_published=publish,
        published_at=now if publish else None,
        change_notes=change_notes,
        created_by=user_id,
    )
    db_session.add(version)
    try:
        await db_session.flush()
    except IntegrityError as exc:
        raise ConflictError(
            "Another version was saved at the same time; try again",
            page_id=str(page.id),
        ) from exc

    await hooks.do_action(AFTER_VERSION_CREATE, page, version)
    logger.info("Recorded version %d of page %s", version.version_number, page.id)
    return version


async def create_version(
    db_session: AsyncSession,
    page_id: UUID,
    change_notes: str | None = None,
    publish: bool = False,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> PageVersion:
    """Create a new immutable snapshot of a page.

    Args:
        db_session: Database session
        page_id: The page to snapshot
        change_notes: Optional free-text notes
        publish: Mark the version published and stamp the page's publisher
        expected_token: Concurrency token the caller last observed
        user_id: ID of user creating the version

    Returns:
        The created PageVersion
    """
    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        if publish:
            await page_service.advance_token(db_session, page, expected_token, user_id)
        elif expected_token is not None and expected_token != page_service.concurrency_token(page):
            raise ConflictError(
                "Page was modified by someone else; reload and try again",
                page_id=str(page_id),
            )
        version = await record_version(db_session, page, change_notes, publish, user_id)

    await db_session.refresh(version)
    return version


async def list_versions(
    db_session: AsyncSession,
    page_id: UUID,
    limit: int | None = None,
) -> list[PageVersion]:
    """List versions for a page, newest first.

    Args:
        db_session: Database session
        page_id: The page ID to get versions for
        limit: Maximum number of versions to return; defaults to the
            ``designer.max_versions_listed`` setting (None for all)

    Returns:
        List of PageVersion objects ordered by version_number descending
    """
    if limit is None:
        limit = get_settings().designer.max_versions_listed

    query = (
        select(PageVersion)
        .where(PageVersion.page_id == page_id)
        .order_by(PageVersion.version_number.desc())
    )
    if limit:
        query = query.limit(limit)

    result = await db_session.execute(query)
    return list(result.scalars().all())


async def get_version(
    db_session: AsyncSession,
    page_id: UUID,
    version_number: int,
) -> PageVersion:
    """Get version N of a page.

    Raises:
        NotFoundError: if the page has no such version
    """
    result = await db_session.execute(
        select(PageVersion).where(
            PageVersion.page_id == page_id,
            PageVersion.version_number == version_number,
        )
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise NotFoundError(
            f"Version {version_number} not found",
            page_id=str(page_id),
            version_number=version_number,
        )
    return version


async def get_version_count(db_session: AsyncSession, page_id: UUID) -> int:
    result = await db_session.execute(
        select(func.count(PageVersion.id)).where(PageVersion.page_id == page_id)
    )
    return result.scalar() or 0


async def restore_version(
    db_session: AsyncSession,
    page_id: UUID,
    version_number: int,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> RestoreResult:
    """Bring a page's live forest back to the state stored in a version.

    The snapshot is reconciled against the live nodes by key and the result
    is recorded as a new version, so numbering stays append-only. Locks do
    not block a restore. Either everything is applied or nothing is.

    Raises:
        NotFoundError: unknown page or version number
        ConflictError: stale token
    """
    async with atomic(db_session):
        page = await page_service.get_live_page(db_session, page_id)
        target = await get_version(db_session, page_id, version_number)
        records = snapshot_records(target.snapshot)

        await page_service.advance_token(db_session, page, expected_token, user_id)
        changes = await reconcile_nodes(db_session, page_id, records, user_id=user_id)

        page_meta = target.snapshot.get("page") or {}
        if page_meta.get("title"):
            page.title = page_meta["title"]
        if "description" in page_meta:
            page.description = page_meta["description"]

        version = await record_version(
            db_session,
            page,
            change_notes=f"Restored from version {version_number}",
            user_id=user_id,
        )
        await hooks.do_action(AFTER_VERSION_RESTORE, page, target, version)
        forest = await node_service.load_forest(db_session, page_id)

    logger.info(
        "Restored page %s to version %d as version %d",
        page_id,
        version_number,
        version.version_number,
    )
    return RestoreResult(
        restored_from=version_number,
        version=version,
        forest=forest,
        changes=changes,
    )
