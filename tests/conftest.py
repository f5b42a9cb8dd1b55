from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker

import stockbook.persistence.db as db
from stockbook.core.config import get_settings
from stockbook.persistence.memory_store import MemoryFabricStore
from stockbook.persistence.models import Base, FabricBatchModel, FabricModel
from stockbook.persistence.sql_store import SqlFabricStore


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.store_backend = "sql"
    settings.delete_exhausted_batches = True

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    db.engine = engine
    db.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables(configure_test_engine):
    yield
    with db.session_scope() as s:
        s.execute(delete(FabricBatchModel))
        s.execute(delete(FabricModel))


@pytest.fixture()
def client(configure_test_engine):
    from stockbook.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def session(configure_test_engine):
    with db.session_scope() as s:
        yield s


@pytest.fixture()
def sql_store(configure_test_engine) -> SqlFabricStore:
    return SqlFabricStore()


@pytest.fixture()
def memory_store() -> MemoryFabricStore:
    return MemoryFabricStore()


@pytest.fixture(params=["sql", "memory"])
def store(request, sql_store: SqlFabricStore, memory_store: MemoryFabricStore):
    return sql_store if request.param == "sql" else memory_store
