import os
from datetime import datetime

import pytest
from google.oauth2 import id_token

# The module-level WSGI app is built on import; keep it off disk and quiet
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUN_STARTUP_ARCHIVE"] = "false"

import models  # noqa: E402
from app import create_app  # noqa: E402
from models import Task  # noqa: E402

# Fixed evaluation time for service-level tests
NOW = datetime(2025, 3, 15, 12, 0, 0)

USER_EMAIL = "ops@example.com"
CRON_SECRET = "cron-secret"
AUTH = {"Authorization": "Bearer good-token"}


@pytest.fixture()
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'tasks.sqlite3'}"


@pytest.fixture()
def db(database_url):
    models.configure_database(database_url)
    session = models.SessionLocal()
    yield session
    session.close()
    models.engine.dispose()


@pytest.fixture()
def make_task(db):
    def _make(title="Task", **fields):
        task = Task(title=title, **fields)
        db.add(task)
        db.commit()
        db.refresh(task)
        return task
    return _make


def _fake_verify(token, request, audience):
    if token != "good-token":
        raise ValueError("Token is invalid")
    return {"email": USER_EMAIL, "name": "Ops", "sub": "42"}


@pytest.fixture()
def app(db, database_url, tmp_path, monkeypatch):
    monkeypatch.setattr(id_token, "verify_oauth2_token", _fake_verify)
    app = create_app({
        "TESTING": True,
        "DATABASE_URL": database_url,
        "GOOGLE_CLIENT_ID": "test-client",
        "ALLOWED_EMAILS": [USER_EMAIL],
        "CRON_SECRET": CRON_SECRET,
        "ARCHIVE_MARKER_PATH": str(tmp_path / "last_auto_archive_run"),
        "RUN_STARTUP_ARCHIVE": False,
    })
    yield app
    app.extensions["archive_scheduler"].cancel()


@pytest.fixture()
def client(app):
    return app.test_client()
