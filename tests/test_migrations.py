"""
Fakturo - Migration Tests

The initial Alembic revision must build the same schema as the models,
and startup only creates tables in development.
"""

import importlib.util
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

import fakturo.models  # noqa: F401
import main
from fakturo.database import Base


VERSIONS_DIR = Path(__file__).resolve().parent.parent / "alembic" / "versions"


def load_revision(name):
    spec = importlib.util.spec_from_file_location(name, VERSIONS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def initial_revision():
    return load_revision("20260316_0900_initial_schema")


def run(connection, step):
    context = MigrationContext.configure(connection)
    with Operations.context(context):
        step()


class TestInitialRevision:

    def test_is_the_root(self, initial_revision):
        assert initial_revision.down_revision is None

    def test_matches_model_columns(self, initial_revision):
        engine = sa.create_engine("sqlite://")
        with engine.begin() as connection:
            run(connection, initial_revision.upgrade)
            inspector = sa.inspect(connection)

            assert set(inspector.get_table_names()) == set(Base.metadata.tables)
            for name, table in Base.metadata.tables.items():
                migrated = {column["name"] for column in inspector.get_columns(name)}
                assert migrated == set(table.columns.keys()), name

            foreign_keys = inspector.get_foreign_keys("time_entries")
            assert foreign_keys[0]["referred_table"] == "invoices"
            assert foreign_keys[0]["options"].get("ondelete") == "SET NULL"

            unique = inspector.get_unique_constraints("exchange_rates")
            assert unique[0]["column_names"] == ["base_currency", "target_currency", "rate_date"]
        engine.dispose()

    def test_downgrade_drops_everything(self, initial_revision):
        engine = sa.create_engine("sqlite://")
        with engine.begin() as connection:
            run(connection, initial_revision.upgrade)
            run(connection, initial_revision.downgrade)
            assert sa.inspect(connection).get_table_names() == []
        engine.dispose()


class TestStartup:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("app_env,creates_tables", [
        ("development", True),
        ("production", False),
    ])
    async def test_tables_created_only_in_development(self, app_env, creates_tables):
        init_db = AsyncMock()
        with patch.object(main.settings, "app_env", app_env), \
                patch("main.init_db", init_db), \
                patch("main.close_db", AsyncMock()), \
                patch("main.close_cache_service", AsyncMock()):
            async with main.lifespan(main.app):
                pass

        assert init_db.await_count == (1 if creates_tables else 0)
