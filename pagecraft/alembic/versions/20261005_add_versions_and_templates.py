"""Add page_versions and component_templates tables.

Revision ID: b7d2f9a40c58
Revises: a1c4e7f20b31
Create Date: 2026-10-05
"""

from alembic import op
import sqlalchemy as sa
import advanced_alchemy.types

revision = "b7d2f9a40c58"
down_revision = "a1c4e7f20b31"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "page_versions",
        sa.Column("id", advanced_alchemy.types.GUID(length=16), nullable=False),
        sa.Column("page_id", advanced_alchemy.types.GUID(length=16), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=True),
        sa.Column("change_notes", sa.String(1000), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=False),
        sa.Column("updated_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_page_versions"),
        sa.ForeignKeyConstraint(
            ["page_id"], ["pages.id"], name="fk_page_versions_page_id_pages", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("page_id", "version_number", name="uq_page_versions_page_number"),
    )
    op.create_index("ix_page_versions_page_id", "page_versions", ["page_id"])

    op.create_table(
        "component_templates",
        sa.Column("id", advanced_alchemy.types.GUID(length=16), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(255), nullable=True),
        sa.Column("category", sa.String(255), nullable=False, server_default="general"),
        sa.Column("default_properties", sa.JSON(), nullable=False),
        sa.Column("default_styles", sa.JSON(), nullable=False),
        sa.Column("default_settings", sa.JSON(), nullable=False),
        sa.Column("config_schema", sa.JSON(), nullable=False),
        sa.Column("allow_children", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("default_column_span", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=False),
        sa.Column("updated_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_component_templates"),
    )
    op.create_index("ix_component_templates_type", "component_templates", ["type"], unique=True)
    op.create_index("ix_component_templates_category", "component_templates", ["category"])


def downgrade() -> None:
    op.drop_index("ix_component_templates_category", table_name="component_templates")
    op.drop_index("ix_component_templates_type", table_name="component_templates")
    op.drop_table("component_templates")
    op.drop_index("ix_page_versions_page_id", table_name="page_versions")
    op.drop_table("page_versions")
