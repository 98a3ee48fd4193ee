"""Positioned component within a page's content forest."""

from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from pagecraft.db.base import AuditMixin, Base, SoftDeleteMixin


class PageComponent(AuditMixin, SoftDeleteMixin, Base):
    """One node of the component tree.

    ``key`` is the durable identity used by the designer and by version
    snapshots. The parent link is a same-page reference by key, enforced by
    a composite foreign key with RESTRICT so a row with children can never
    be removed out from under them.
    """

    __tablename__ = "page_components"
    __table_args__ = (
        UniqueConstraint("page_id", "key", name="uq_page_components_page_key"),
        ForeignKeyConstraint(
            ["page_id", "parent_key"],
            ["page_components.page_id", "page_components.key"],
            name="fk_page_components_parent",
            ondelete="RESTRICT",
        ),
        Index("ix_page_components_page_parent_order", "page_id", "parent_key", "sort_order"),
    )

    page_id: Mapped[UUID] = mapped_column(
        ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True
    )

    key: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    parent_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    insert_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    grid_column: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    grid_column_span: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    grid_row: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    grid_row_span: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    styles: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    responsive_settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    animation_settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    interaction_settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    css_classes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    custom_css: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
