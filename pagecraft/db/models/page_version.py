"""Immutable snapshots of a page's component forest."""

from datetime import datetime
from typing import Any, TYPE_CHECKING
from uuid import UUID

from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pagecraft.db.base import Base

if TYPE_CHECKING:
    from pagecraft.db.models.page import Page


class PageVersion(Base):
    """Numbered, append-only snapshot of a page."""

    __tablename__ = "page_versions"
    __table_args__ = (
        UniqueConstraint("page_id", "version_number", name="uq_page_versions_page_number"),
    )

    page_id: Mapped[UUID] = mapped_column(
        ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    page: Mapped["Page"] = relationship("Page", back_populates="versions")

    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    change_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)


@event.listens_for(PageVersion, "before_update")
def prevent_version_mutation(mapper, connection, target):
    raise RuntimeError("Page versions are immutable")
