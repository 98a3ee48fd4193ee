"""Tests for the component template catalog."""

import pytest

from pagecraft.config import TemplateDefinition
from pagecraft.db.services import template_service


class TestTemplateService:
    @pytest.mark.asyncio
    async def test_lookup_by_type(self, db_session, templates):
        template = await template_service.get_template_for_type(db_session, "text")
        assert template.display_name == "Text"
        assert template.default_column_span == 6
        assert await template_service.get_template_for_type(db_session, "video") is None

    @pytest.mark.asyncio
    async def test_library_grouped_by_category(self, db_session, templates):
        library = await template_service.get_component_library(db_session)
        assert [c.name for c in library] == ["basic", "layout", "media"]
        assert [t.type for t in library[1].templates] == ["section"]

    @pytest.mark.asyncio
    async def test_register_replaces_existing(self, db_session, templates):
        await template_service.register_template(db_session, "text", "Paragraph", category="basic")
        all_templates = await template_service.list_templates(db_session)
        texts = [t for t in all_templates if t.type == "text"]
        assert len(texts) == 1
        assert texts[0].display_name == "Paragraph"
        assert texts[0].default_properties == {}

    @pytest.mark.asyncio
    async def test_inactive_templates_hidden(self, db_session, templates):
        template = await template_service.get_template_for_type(db_session, "image")
        template.is_active = False
        await db_session.commit()

        assert await template_service.get_template_for_type(db_session, "image") is None
        assert "image" not in {t.type for t in await template_service.list_templates(db_session)}
        assert "image" in {
            t.type for t in await template_service.list_templates(db_session, include_inactive=True)
        }

    @pytest.mark.asyncio
    async def test_sync_from_definitions(self, db_session):
        definitions = [
            TemplateDefinition(type="hero", display_name="Hero", allow_children=True),
            TemplateDefinition(type="quote", display_name="Quote", default_properties={"cite": ""}),
        ]
        synced = await template_service.sync_templates(db_session, definitions)
        assert [t.type for t in synced] == ["hero", "quote"]
        quote = await template_service.get_template_for_type(db_session, "quote")
        assert quote.default_properties == {"cite": ""}
