"""Declarative base and shared column mixins."""

from datetime import datetime, UTC

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column


class Base(UUIDAuditBase):
    """UUID primary key plus created_at/updated_at in UTC."""

    __abstract__ = True


class AuditMixin:
    """Who created and last touched a row.

    User ids come from the external identity provider and are stored as
    opaque strings.
    """

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)


class SoftDeleteMixin:
    """Rows are flagged deleted and kept for history."""

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def soft_delete(self, user_id: str | None = None) -> None:
        self.is_deleted = True
        self.deleted_at = datetime.now(UTC)
        self.deleted_by = user_id

    def undelete(self) -> None:
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None
