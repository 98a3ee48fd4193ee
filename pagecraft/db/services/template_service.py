"""Component template catalog lookups."""

from dataclasses import dataclass, field
from itertools import groupby
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pagecraft.db.models import ComponentTemplate
from pagecraft.db.session import atomic


@dataclass
class ComponentCategory:
    name: str
    templates: list[ComponentTemplate] = field(default_factory=list)


async def get_template_for_type(
    db_session: AsyncSession,
    component_type: str,
) -> ComponentTemplate | None:
    """Get the active template for a component type, if the catalog has one."""
    result = await db_session.execute(
        select(ComponentTemplate).where(
            ComponentTemplate.type == component_type,
            ComponentTemplate.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def list_templates(
    db_session: AsyncSession,
    include_inactive: bool = False,
) -> list[ComponentTemplate]:
    query = select(ComponentTemplate).order_by(
        ComponentTemplate.category.asc(),
        ComponentTemplate.sort_order.asc(),
        ComponentTemplate.display_name.asc(),
    )
    if not include_inactive:
        query = query.where(ComponentTemplate.is_active == True)  # noqa: E712

    result = await db_session.execute(query)
    return list(result.scalars().all())


async def get_component_library(db_session: AsyncSession) -> list[ComponentCategory]:
    """Active templates grouped by category, in catalog order."""
    templates = await list_templates(db_session)
    return [
        ComponentCategory(name=category, templates=list(items))
        for category, items in groupby(templates, key=lambda t: t.category)
    ]


async def register_template(
    db_session: AsyncSession,
    component_type: str,
    display_name: str,
    category: str = "general",
    allow_children: bool = False,
    default_column_span: int = 12,
    default_properties: dict[str, Any] | None = None,
    default_styles: dict[str, Any] | None = None,
    default_settings: dict[str, Any] | None = None,
    description: str | None = None,
    icon: str | None = None,
    sort_order: int = 0,
) -> ComponentTemplate:
    """Create or replace the catalog entry for a component type.

    Args:
        db_session: Database session
        component_type: Type discriminator the template describes
        display_name: Label shown in the component library
        category: Library grouping
        allow_children: Whether components of this type may contain others
        default_column_span: Span used when a component is created without one

    Returns:
        The created or updated ComponentTemplate
    """
    async with atomic(db_session):
        result = await db_session.execute(
            select(ComponentTemplate).where(ComponentTemplate.type == component_type)
        )
        template = result.scalar_one_or_none()
        if template is None:
            template = ComponentTemplate(type=component_type, name=component_type)
            db_session.add(template)

        template.display_name = display_name
        template.category = category
        template.allow_children = allow_children
        template.default_column_span = default_column_span
        template.default_properties = dict(default_properties or {})
        template.default_styles = dict(default_styles or {})
        template.default_settings = dict(default_settings or {})
        template.description = description
        template.icon = icon
        template.sort_order = sort_order
        template.is_active = True

    await db_session.refresh(template)
    return template


async def sync_templates(db_session: AsyncSession, definitions) -> list[ComponentTemplate]:
    """Register every template declared in configuration."""
    templates = []
    for definition in definitions:
        templates.append(
            await register_template(
                db_session,
                definition.type,
                definition.display_name,
                category=definition.category,
                allow_children=definition.allow_children,
                default_column_span=definition.default_column_span,
                default_properties=definition.default_properties,
                default_styles=definition.default_styles,
                default_settings=definition.default_settings,
                description=definition.description,
                icon=definition.icon,
                sort_order=definition.sort_order,
            )
        )
    return templates
