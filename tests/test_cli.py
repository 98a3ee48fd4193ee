"""Tests for the version history CLI commands."""

import asyncio
from uuid import uuid4

import pytest
from click.testing import CliRunner

from pagecraft.cli import cli
from pagecraft.config import get_settings
from pagecraft.db.base import Base
from pagecraft.db.services import node_service, page_service, version_service
from pagecraft.db.session import create_engine, create_session_maker


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    """Point the CLI at a fresh database holding one page with two versions."""
    monkeypatch.setenv("PAGECRAFT_DB__URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("PAGECRAFT_CONFIG", str(tmp_path / "absent.yaml"))
    get_settings.cache_clear()

    async def seed():
        engine = create_engine(get_settings())
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with create_session_maker(engine)() as db_session:
            page = await page_service.create_page(db_session, slug="home", title="Home")
            await node_service.create_node(db_session, page.id, "section")
            await version_service.create_version(db_session, page.id, change_notes="first", user_id="ana")
            await node_service.create_node(db_session, page.id, "section")
            await version_service.create_version(db_session, page.id, publish=True)
            page_id = page.id
        await engine.dispose()
        return page_id

    return asyncio.run(seed())


class TestVersionsCommand:
    def test_lists_newest_first(self, cli_db):
        result = CliRunner().invoke(cli, ["versions", str(cli_db)])
        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("*    2")
        assert "first" in lines[1] and "ana" in lines[1]

    def test_limit(self, cli_db):
        result = CliRunner().invoke(cli, ["versions", str(cli_db), "--limit", "1"])
        assert len(result.output.strip().splitlines()) == 1

    def test_no_versions(self, cli_db):
        result = CliRunner().invoke(cli, ["versions", str(uuid4())])
        assert result.exit_code == 0
        assert "No versions." in result.output


class TestRestoreCommand:
    def test_restore(self, cli_db):
        result = CliRunner().invoke(cli, ["restore", str(cli_db), "1", "--user", "ops"])
        assert result.exit_code == 0, result.output
        assert "Restored version 1 as version 3" in result.output
        assert "1 removed" in result.output

    def test_unknown_version(self, cli_db):
        result = CliRunner().invoke(cli, ["restore", str(cli_db), "42"])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestDbCommand:
    def test_no_args_prints_help(self):
        result = CliRunner().invoke(cli, ["db"])
        assert result.exit_code == 0
        assert "Run database migrations via Alembic" in result.output
