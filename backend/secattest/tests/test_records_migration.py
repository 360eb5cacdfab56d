from __future__ import annotations

import importlib.util
from pathlib import Path

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

from secattest.storage.models import StoredRecord

VERSIONS_DIR = Path(__file__).resolve().parents[1] / "alembic" / "versions"


def _load_migration(name: str):
    path = VERSIONS_DIR / f"{name}.py"
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_records_migration_matches_model():
    migration = _load_migration("a1c3e5f7b9d2_create_records_table")
    engine = sa.create_engine("sqlite+pysqlite:///:memory:")

    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        with Operations.context(context):
            migration.upgrade()

        inspector = sa.inspect(connection)
        columns = {column["name"] for column in inspector.get_columns("records")}
        indexes = {index["name"] for index in inspector.get_indexes("records")}

    assert columns == {column.name for column in StoredRecord.__table__.columns}
    assert indexes == {index.name for index in StoredRecord.__table__.indexes}


def test_records_migration_downgrade_drops_table():
    migration = _load_migration("a1c3e5f7b9d2_create_records_table")
    engine = sa.create_engine("sqlite+pysqlite:///:memory:")

    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        with Operations.context(context):
            migration.upgrade()
            migration.downgrade()
        assert not sa.inspect(connection).has_table("records")
