"""Run the Alembic migrations against a scratch database and compare with the models."""

import importlib.util
from argparse import Namespace
from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic import command
from alembic.config import Config

from pagecraft.db import models  # noqa: F401
from pagecraft.db.base import Base

ALEMBIC_DIR = Path(__file__).resolve().parent.parent / "pagecraft" / "alembic"


def _revisions():
    """Map each migration's revision id to its down_revision."""
    chain = {}
    for path in sorted((ALEMBIC_DIR / "versions").glob("*.py")):
        spec = importlib.util.spec_from_file_location(path.stem, path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        assert module.revision not in chain, f"{path.name} reuses revision {module.revision}"
        chain[module.revision] = module.down_revision
    return chain


@pytest.fixture
def migrated(tmp_path):
    """Upgrade a fresh SQLite file to head; yield a sync engine and the Alembic config."""
    db_file = tmp_path / "migrated.db"
    cfg = Config(cmd_opts=Namespace(x=[f"url=sqlite+aiosqlite:///{db_file}"]))
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))

    command.upgrade(cfg, "head")
    engine = sa.create_engine(f"sqlite:///{db_file}")
    yield engine, cfg
    engine.dispose()


def test_revisions_form_one_line():
    chain = _revisions()
    roots = [rev for rev, down in chain.items() if down is None]
    heads = set(chain) - set(chain.values())
    assert len(roots) == 1
    assert len(heads) == 1


def test_upgrade_creates_every_model_table(migrated):
    engine, _ = migrated
    inspector = sa.inspect(engine)
    assert set(Base.metadata.tables) <= set(inspector.get_table_names())

    for name, table in Base.metadata.tables.items():
        migrated_columns = {c["name"] for c in inspector.get_columns(name)}
        missing = {c.name for c in table.columns} - migrated_columns
        assert not missing, f"{name} is missing {missing}"


def test_component_key_and_parent_constraints(migrated):
    engine, _ = migrated
    inspector = sa.inspect(engine)

    uniques = {u["name"]: u["column_names"] for u in inspector.get_unique_constraints("page_components")}
    assert uniques["uq_page_components_page_key"] == ["page_id", "key"]

    [parent_fk] = [fk for fk in inspector.get_foreign_keys("page_components") if fk["referred_table"] == "page_components"]
    assert parent_fk["constrained_columns"] == ["page_id", "parent_key"]
    assert parent_fk["referred_columns"] == ["page_id", "key"]
    assert parent_fk["options"].get("ondelete") == "RESTRICT"


def test_version_numbers_unique_per_page(migrated):
    engine, _ = migrated
    uniques = {u["name"]: u["column_names"] for u in sa.inspect(engine).get_unique_constraints("page_versions")}
    assert uniques["uq_page_versions_page_number"] == ["page_id", "version_number"]


def test_downgrade_to_base(migrated):
    engine, cfg = migrated
    command.downgrade(cfg, "base")
    remaining = set(sa.inspect(engine).get_table_names()) & set(Base.metadata.tables)
    assert remaining == set()
