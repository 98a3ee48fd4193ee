"""Create pages and page_components tables.

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa
import advanced_alchemy.types

revision = "a1c4e7f20b31"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("updated_by", sa.String(255), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(255), nullable=True),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=False),
        sa.Column("updated_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "pages",
        sa.Column("id", advanced_alchemy.types.GUID(length=16), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("parent_page_id", advanced_alchemy.types.GUID(length=16), nullable=True),
        sa.Column("published_at", advanced_alchemy.types.DateTimeUTC(timezone=True), nullable=True),
        sa.Column("published_by", sa.String(255), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_pages"),
        sa.ForeignKeyConstraint(
            ["parent_page_id"], ["pages.id"], name="fk_pages_parent_page_id_pages", ondelete="SET NULL"
        ),
    )
    op.create_index("ix_pages_slug", "pages", ["slug"], unique=True)
    op.create_index("ix_pages_status", "pages", ["status"])
    op.create_index("ix_pages_parent_page_id", "pages", ["parent_page_id"])
    op.create_index("ix_pages_is_deleted", "pages", ["is_deleted"])

    op.create_table(
        "page_components",
        sa.Column("id", advanced_alchemy.types.GUID(length=16), nullable=False),
        sa.Column("page_id", advanced_alchemy.types.GUID(length=16), nullable=False),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("parent_key", sa.String(64), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("insert_seq", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("grid_column", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("grid_column_span", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("grid_row", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("grid_row_span", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("properties", sa.JSON(), nullable=False),
        sa.Column("styles", sa.JSON(), nullable=False),
        sa.Column("content", sa.JSON(), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("responsive_settings", sa.JSON(), nullable=False),
        sa.Column("animation_settings", sa.JSON(), nullable=False),
        sa.Column("interaction_settings", sa.JSON(), nullable=False),
        sa.Column("css_classes", sa.String(500), nullable=True),
        sa.Column("custom_css", sa.Text(), nullable=True),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_page_components"),
        sa.ForeignKeyConstraint(
            ["page_id"], ["pages.id"], name="fk_page_components_page_id_pages", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("page_id", "key", name="uq_page_components_page_key"),
        sa.ForeignKeyConstraint(
            ["page_id", "parent_key"],
            ["page_components.page_id", "page_components.key"],
            name="fk_page_components_parent",
            ondelete="RESTRICT",
        ),
    )
    op.create_index("ix_page_components_page_id", "page_components", ["page_id"])
    op.create_index("ix_page_components_is_deleted", "page_components", ["is_deleted"])
    op.create_index(
        "ix_page_components_page_parent_order",
        "page_components",
        ["page_id", "parent_key", "sort_order"],
    )


def downgrade() -> None:
    op.drop_index("ix_page_components_page_parent_order", table_name="page_components")
    op.drop_index("ix_page_components_is_deleted", table_name="page_components")
    op.drop_index("ix_page_components_page_id", table_name="page_components")
    op.drop_table("page_components")
    op.drop_index("ix_pages_is_deleted", table_name="pages")
    op.drop_index("ix_pages_parent_page_id", table_name="pages")
    op.drop_index("ix_pages_status", table_name="pages")
    op.drop_index("ix_pages_slug", table_name="pages")
    op.drop_table("pages")
