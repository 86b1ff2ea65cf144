"""
Shared fixtures: in-memory SQLite database, API client and a fake text generator
"""

import os

os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.errors import UpstreamGenerationError
from app.main import app
from app.routers.learning import get_llm_client
from app.services.monitoring import reset_llm_breaker

from factories import FakeGenerator

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite handles BEGIN itself and breaks SAVEPOINT; let SQLAlchemy emit it
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def fresh_breaker():
    reset_llm_breaker()
    yield
    reset_llm_breaker()


@pytest.fixture
def fake_llm():
    return FakeGenerator(content=" ".join(["reference"] * 350))


@pytest.fixture
def failing_llm():
    return FakeGenerator(error=UpstreamGenerationError("Text generation failed: 529 overloaded",
                                                       feature="knowledge_entry"))


@pytest.fixture
def client(db_session, fake_llm):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
