import os
import sys
from datetime import datetime, timezone

import pytest

# ensure project root in sys.path so the flat modules import
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlmodel import SQLModel  # noqa: E402
import db as db_mod  # noqa: E402

NOW = datetime(2026, 10, 19, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    """Each test runs against a fresh sqlite database."""
    new_engine = db_mod.make_engine(f"sqlite:///{tmp_path}/test.db")
    monkeypatch.setattr(db_mod, "engine", new_engine)
    db_mod.init_db(new_engine)
    yield new_engine
    SQLModel.metadata.drop_all(new_engine)
    new_engine.dispose()
