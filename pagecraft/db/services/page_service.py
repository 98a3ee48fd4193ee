"""Page lifecycle and the optimistic-concurrency token."""

import logging
from datetime import datetime, timedelta, UTC
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from pagecraft.db.models import PAGE_STATUSES, Page, PageComponent, PageVersion
from pagecraft.db.session import atomic
from pagecraft.lib.errors import ConflictError, InvalidError, NotFoundError

logger = logging.getLogger(__name__)

# Explicit allowed status transitions
ALLOWED_STATUS_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"published", "archived"},
    "published": {"draft", "archived"},
    "archived": {"draft"},
}

_UNSET = object()  # Sentinel for distinguishing None from "not provided"


def concurrency_token(page: Page) -> str:
    """The token a designer session must echo back on its next write."""
    return page.updated_at.isoformat()


def assert_status_transition(from_status: str, to_status: str) -> None:
    if to_status not in PAGE_STATUSES:
        raise InvalidError(f"Unknown page status: {to_status}")
    if from_status == to_status:
        return
    if to_status not in ALLOWED_STATUS_TRANSITIONS.get(from_status, set()):
        raise InvalidError(f"Illegal page transition: {from_status} -> {to_status}")


async def get_page_by_id(
    db_session: AsyncSession,
    page_id: UUID,
    include_deleted: bool = False,
) -> Page | None:
    """Get a page by ID, always re-reading the row from the database."""
    query = select(Page).where(Page.id == page_id).execution_options(populate_existing=True)
    if not include_deleted:
        query = query.where(Page.is_deleted == False)  # noqa: E712
    result = await db_session.execute(query)
    return result.scalar_one_or_none()


async def get_live_page(db_session: AsyncSession, page_id: UUID) -> Page:
    """Get a page that has not been deleted.

    Raises:
        NotFoundError: if the page is unknown or soft-deleted
    """
    page = await get_page_by_id(db_session, page_id)
    if page is None:
        raise NotFoundError(f"Page {page_id} not found", page_id=str(page_id))
    return page


async def get_page_by_slug(db_session: AsyncSession, slug: str) -> Page | None:
    result = await db_session.execute(
        select(Page).where(Page.slug == slug, Page.is_deleted == False)  # noqa: E712
    )
    return result.scalar_one_or_none()


async def list_pages(
    db_session: AsyncSession,
    parent_page_id: UUID | None | object = _UNSET,
    status: str | None = None,
) -> list[Page]:
    """List live pages.

    Args:
        db_session: Database session
        parent_page_id: Restrict to children of this page (None for top level)
        status: Restrict to one lifecycle status
    """
    query = select(Page).where(Page.is_deleted == False)  # noqa: E712
    if parent_page_id is not _UNSET:
        query = query.where(Page.parent_page_id == parent_page_id)
    if status is not None:
        query = query.where(Page.status == status)

    result = await db_session.execute(query.order_by(Page.title.asc()))
    return list(result.scalars().all())


async def create_page(
    db_session: AsyncSession,
    slug: str,
    title: str,
    name: str | None = None,
    description: str | None = None,
    parent_page_id: UUID | None = None,
    user_id: str | None = None,
) -> Page:
    """Create a new draft page.

    Raises:
        InvalidError: missing title/slug, unknown parent page or duplicate slug
    """
    if not title or not slug:
        raise InvalidError("Both title and slug are required")

    async with atomic(db_session):
        if parent_page_id is not None:
            await get_live_page(db_session, parent_page_id)

        page = Page(
            slug=slug,
            title=title,
            name=name or title,
            description=description,
            status="draft",
            parent_page_id=parent_page_id,
            created_by=user_id,
            updated_by=user_id,
        )
        db_session.add(page)
        try:
            await db_session.flush()
        except IntegrityError as exc:
            raise InvalidError(f"A page with slug {slug!r} already exists") from exc

    await db_session.refresh(page)
    logger.info("Created page %s (%s)", page.id, page.slug)
    return page


async def advance_token(
    db_session: AsyncSession,
    page: Page,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> None:
    """Bump the page's modification timestamp, checking the caller's token.

    The bump is a compare-and-set on ``updated_at`` so two writers holding
    the same token cannot both succeed, even when neither saw the other.

    Raises:
        ConflictError: if ``expected_token`` is stale
    """
    current = page.updated_at
    if expected_token is not None and expected_token != concurrency_token(page):
        raise ConflictError(
            "Page was modified by someone else; reload and try again",
            page_id=str(page.id),
        )

    now = datetime.now(UTC)
    if current is not None and now <= current:
        now = current + timedelta(microseconds=1)

    stmt = update(Page).where(Page.id == page.id)
    if expected_token is not None:
        stmt = stmt.where(Page.updated_at == current)
    stmt = stmt.values(updated_at=now, updated_by=user_id).execution_options(
        synchronize_session=False
    )
    result = await db_session.execute(stmt)
    if result.rowcount == 0:
        raise ConflictError(
            "Page was modified by someone else; reload and try again",
            page_id=str(page.id),
        )

    set_committed_value(page, "updated_at", now)
    set_committed_value(page, "updated_by", user_id)


async def update_page(
    db_session: AsyncSession,
    page_id: UUID,
    expected_token: str | None = None,
    title: str | None = None,
    name: str | None = None,
    slug: str | None = None,
    description: str | None | object = _UNSET,
    parent_page_id: UUID | None | object = _UNSET,
    user_id: str | None = None,
) -> Page:
    """Update page metadata."""
    async with atomic(db_session):
        page = await get_live_page(db_session, page_id)
        await advance_token(db_session, page, expected_token, user_id)

        if title is not None:
            page.title = title
        if name is not None:
            page.name = name
        if slug is not None:
            page.slug = slug
        if description is not _UNSET:
            page.description = description
        if parent_page_id is not _UNSET:
            if parent_page_id == page.id:
                raise InvalidError("A page cannot be its own parent")
            if parent_page_id is not None:
                await get_live_page(db_session, parent_page_id)
            page.parent_page_id = parent_page_id

        try:
            await db_session.flush()
        except IntegrityError as exc:
            raise InvalidError(f"A page with slug {slug!r} already exists") from exc

    return page


async def set_page_status(
    db_session: AsyncSession,
    page_id: UUID,
    status: str,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> Page:
    """Move a page through its draft/published/archived lifecycle."""
    async with atomic(db_session):
        page = await get_live_page(db_session, page_id)
        assert_status_transition(page.status, status)
        await advance_token(db_session, page, expected_token, user_id)
        page.status = status
        if status == "published":
            page.published_at = datetime.now(UTC)
            page.published_by = user_id
    return page


async def delete_page(
    db_session: AsyncSession,
    page_id: UUID,
    expected_token: str | None = None,
    user_id: str | None = None,
) -> None:
    """Soft-delete a page together with all of its live components.

    Versions are kept so the page can still be inspected or purged later.
    """
    async with atomic(db_session):
        page = await get_live_page(db_session, page_id)
        await advance_token(db_session, page, expected_token, user_id)

        result = await db_session.execute(
            select(PageComponent).where(
                PageComponent.page_id == page.id,
                PageComponent.is_deleted == False,  # noqa: E712
            )
        )
        for component in result.scalars():
            component.soft_delete(user_id)
        page.soft_delete(user_id)

    logger.info("Soft-deleted page %s", page_id)


async def purge_page(db_session: AsyncSession, page_id: UUID) -> bool:
    """Physically remove a page, its components and its versions.

    Meant for retention jobs, not interactive editing.

    Returns:
        True if deleted, False if not found
    """
    async with atomic(db_session):
        page = await get_page_by_id(db_session, page_id, include_deleted=True)
        if page is None:
            return False

        # Detach parent links first so RESTRICT never fires mid-delete
        await db_session.execute(
            update(PageComponent)
            .where(PageComponent.page_id == page.id)
            .values(parent_key=None)
            .execution_options(synchronize_session=False)
        )
        await db_session.execute(
            delete(PageComponent)
            .where(PageComponent.page_id == page.id)
            .execution_options(synchronize_session=False)
        )
        await db_session.execute(
            delete(PageVersion)
            .where(PageVersion.page_id == page.id)
            .execution_options(synchronize_session=False)
        )
        await db_session.execute(
            update(Page)
            .where(Page.parent_page_id == page.id)
            .values(parent_page_id=None)
            .execution_options(synchronize_session=False)
        )
        await db_session.delete(page)

    logger.info("Purged page %s", page_id)
    return True
