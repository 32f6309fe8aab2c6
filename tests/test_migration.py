import importlib.util
import os

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect
from db import init_db

MIGRATION = os.path.join(os.path.dirname(__file__), "..", "alembic", "versions", "3f1c2a7b9d04_pool_schema.py")

# load the revision by path; alembic/versions is not a package
spec = importlib.util.spec_from_file_location("pool_schema", MIGRATION)
pool_schema = importlib.util.module_from_spec(spec)
spec.loader.exec_module(pool_schema)


def run(engine, step):
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            step()


def test_migration_matches_models(tmp_path):
    migrated = create_engine(f"sqlite:///{tmp_path}/migrated.db")
    run(migrated, pool_schema.upgrade)
    created = create_engine(f"sqlite:///{tmp_path}/created.db")
    init_db(created)

    got, want = inspect(migrated), inspect(created)
    assert sorted(got.get_table_names()) == sorted(want.get_table_names())
    for table in want.get_table_names():
        assert {c["name"] for c in got.get_columns(table)} == {c["name"] for c in want.get_columns(table)}, table
        assert {ix["name"] for ix in got.get_indexes(table)} == {ix["name"] for ix in want.get_indexes(table)}, table


def test_migration_downgrade_drops_everything(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path}/migrated.db")
    run(engine, pool_schema.upgrade)
    run(engine, pool_schema.downgrade)
    assert inspect(engine).get_table_names() == []
