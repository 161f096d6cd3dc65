import importlib
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from alembic import command
from alembic.config import Config

from tests.db_utils import TemporaryPostgresDatabase


def _setup_app(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    os.environ["SECRET_KEY"] = "test-secret"

    import app.evstock.core.config as config
    import app.evstock.db.session as session
    import app.main as main

    importlib.reload(config)
    importlib.reload(session)
    importlib.reload(main)

    return main.create_app(), session


def _run_migrations(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    config = Config("alembic.ini")
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


@pytest.fixture()
def client(tmp_path: Path):
    database_url = os.getenv("DATABASE_URL", "")
    temporary = None

    if database_url.startswith("postgres"):
        temporary = TemporaryPostgresDatabase(database_url)
        database_url = temporary.create()
    else:
        database_url = f"sqlite+pysqlite:///{tmp_path / 'evstock.db'}"

    _run_migrations(database_url)
    app, session = _setup_app(database_url)

    with TestClient(app) as client:
        yield client

    session.engine.dispose()
    if temporary is not None:
        temporary.drop()


@pytest.fixture()
def db_session(client):
    from app.evstock.db.session import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def room_events(client):
    """Every notification published through the app's hub, as (room, event, payload)."""
    events = []
    unsubscribe = client.app.state.notification_hub.subscribe(
        lambda room, event, payload: events.append((room, event, payload))
    )
    yield events
    unsubscribe()
