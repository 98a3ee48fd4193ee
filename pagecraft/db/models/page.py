from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pagecraft.db.base import AuditMixin, Base, SoftDeleteMixin

if TYPE_CHECKING:
    from pagecraft.db.models.page_version import PageVersion

PAGE_STATUSES = ("draft", "published", "archived")


class Page(AuditMixin, SoftDeleteMixin, Base):
    """A designer page: metadata plus a forest of positioned components."""

    __tablename__ = "pages"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)

    # Page hierarchy (site navigation), unrelated to the component tree
    parent_page_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pages.id", ondelete="SET NULL"), nullable=True, index=True
    )

    published_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    published_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    versions: Mapped[list["PageVersion"]] = relationship(
        "PageVersion",
        back_populates="page",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(PageVersion.version_number)",
    )
