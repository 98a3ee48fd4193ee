from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pagecraft.db.base import Base


class ComponentTemplate(Base):
    """Catalog entry describing a component type and its defaults."""

    __tablename__ = "component_templates"

    type: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str] = mapped_column(String(255), nullable=False, default="general", index=True)

    default_properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    default_styles: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    default_settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    config_schema: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    allow_children: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    default_column_span: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
