"""Shared pytest fixtures."""

import pytest
import yaml

from pagecraft.config import DatabaseConfig, Settings, get_settings
from pagecraft.db import models  # noqa: F401
from pagecraft.db.base import Base
from pagecraft.db.services import node_service, page_service, template_service
from pagecraft.db.session import create_engine, create_session_maker
from pagecraft.lib.hooks import hooks


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture(autouse=True)
def clean_settings():
    """Drop cached settings so env and app.yaml changes are picked up."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_hooks():
    yield
    hooks.clear()


@pytest.fixture
def db_settings(tmp_path) -> Settings:
    return Settings(db=DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"))


@pytest.fixture
async def engine(db_settings):
    engine = create_engine(db_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def page(db_session):
    return await page_service.create_page(db_session, slug="home", title="Home", user_id="author")


@pytest.fixture
async def page_id(page):
    return page.id


@pytest.fixture
async def templates(db_session):
    """A small catalog: a container that holds children and two leaves."""
    await template_service.register_template(
        db_session, "section", "Section", category="layout", allow_children=True
    )
    await template_service.register_template(
        db_session,
        "text",
        "Text",
        category="basic",
        default_column_span=6,
        default_properties={"text": "Lorem ipsum", "align": "left"},
    )
    await template_service.register_template(
        db_session, "image", "Image", category="media", default_styles={"border": "none"}
    )
    return await template_service.list_templates(db_session)


@pytest.fixture
def add_node(db_session, page_id):
    """Create a node on the test page and return its key."""

    async def _add(component_type: str = "section", parent_key: str | None = None, **kwargs) -> str:
        component = await node_service.create_node(
            db_session, page_id, component_type, parent_key=parent_key, **kwargs
        )
        return component.key

    return _add
