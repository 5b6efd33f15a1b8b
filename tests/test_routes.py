from datetime import timedelta

from sqlalchemy import event
from sqlalchemy.exc import OperationalError

import app as wsgi
import models
from models import Task, TaskStatus, utcnow
from services import archive_service
from services.errors import StoreUnavailable
from services.results import SweepResult
from tests.conftest import AUTH, CRON_SECRET, USER_EMAIL

COMPLETED = TaskStatus.COMPLETED.value
CRON_AUTH = {"Authorization": f"Bearer {CRON_SECRET}"}


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.get_json() == {"status": "healthy"}


def test_task_routes_require_google_token(client):
    assert client.get("/tasks").status_code == 401
    assert client.get("/tasks", headers={"Authorization": "Bearer forged"}).status_code == 401


def test_create_and_get_task(client):
    resp = client.post("/tasks", json={
        "title": "  Prepare invoice  ",
        "priority": "High",
        "deadline": "2025-04-01",
        "assigned_to_id": 7,
    }, headers=AUTH)

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["title"] == "Prepare invoice"
    assert data["status"] == TaskStatus.TODO.value
    assert data["deadline"] == "2025-04-01"
    assert data["assigned_to_id"] == "7"
    assert data["assigned_by_id"] == USER_EMAIL
    assert data["archived"] is False
    assert data["completed_at"] is None

    fetched = client.get(f"/tasks/{data['id']}", headers=AUTH)
    assert fetched.get_json()["data"]["id"] == data["id"]


def test_create_task_validation(client):
    assert client.post("/tasks", json={"title": " "}, headers=AUTH).status_code == 400
    assert client.post("/tasks", json={"title": "x", "priority": "Urgent"}, headers=AUTH).status_code == 400
    assert client.post("/tasks", json={"title": "x", "archived": True}, headers=AUTH).status_code == 400
    assert client.post("/tasks", json={"title": "x", "deadline": "01/04/2025"}, headers=AUTH).status_code == 400


def test_get_missing_task(client):
    assert client.get("/tasks/999", headers=AUTH).status_code == 404


def test_status_change_tracks_completion(client, db, make_task):
    task = make_task("Ship order", status=TaskStatus.IN_PROGRESS.value)

    done = client.put(f"/tasks/{task.id}/status", json={"status": COMPLETED}, headers=AUTH)
    assert done.status_code == 200
    assert done.get_json()["data"]["status"] == COMPLETED
    assert done.get_json()["data"]["completed_at"] is not None

    reopened = client.put(f"/tasks/{task.id}/status", json={"status": "Revision Required"}, headers=AUTH)
    assert reopened.status_code == 200
    assert reopened.get_json()["data"]["completed_at"] is None

    db.expire_all()
    stored = db.get(Task, task.id)
    assert stored.status == TaskStatus.REVISION_REQUIRED.value
    assert stored.completed_at is None


def test_status_change_validation(client, make_task):
    task = make_task("Ship order")

    assert client.put(f"/tasks/{task.id}/status", json={"status": "Done"}, headers=AUTH).status_code == 400
    assert client.put("/tasks/999/status", json={"status": COMPLETED}, headers=AUTH).status_code == 404


def test_status_change_blocked_while_archived(client, db, make_task):
    task = make_task("Ship order", status=COMPLETED, completed_at=utcnow() - timedelta(days=5),
                     archived=True, archived_at=utcnow())

    resp = client.put(f"/tasks/{task.id}/status", json={"status": "To Do"}, headers=AUTH)

    assert resp.status_code == 409
    db.expire_all()
    stored = db.get(Task, task.id)
    assert stored.status == COMPLETED
    assert stored.completed_at is not None


def test_manual_archive_and_unarchive(client, make_task):
    task = make_task("Ship order", status=COMPLETED, completed_at=utcnow() - timedelta(hours=2))

    archived = client.post(f"/tasks/{task.id}/archive", headers=AUTH)
    assert archived.status_code == 200
    assert archived.get_json()["data"]["archived"] is True
    assert archived.get_json()["data"]["archived_at"] is not None

    listed = client.get("/tasks/archive", headers=AUTH).get_json()["data"]
    assert [t["id"] for t in listed] == [task.id]

    restored = client.post(f"/tasks/{task.id}/unarchive", headers=AUTH)
    assert restored.status_code == 200
    data = restored.get_json()["data"]
    assert data["archived"] is False
    assert data["archived_at"] is None
    assert data["status"] == COMPLETED


def test_manual_archive_errors(client, make_task):
    open_task = make_task("Still open")

    assert client.post(f"/tasks/{open_task.id}/archive", headers=AUTH).status_code == 409
    assert client.post("/tasks/999/archive", headers=AUTH).status_code == 404
    assert client.post("/tasks/999/unarchive", headers=AUTH).status_code == 404


def test_listing_tasks_runs_daily_archive_once(client, app, make_task):
    old = make_task("Old", status=COMPLETED, completed_at=utcnow() - timedelta(days=5))
    recent = make_task("Recent", status=COMPLETED, completed_at=utcnow() - timedelta(days=1))

    listed = client.get("/tasks", headers=AUTH).get_json()["data"]

    assert [t["id"] for t in listed] == [recent.id]
    scheduler = app.extensions["archive_scheduler"]
    assert scheduler.last_run == utcnow().date()

    # Guarded for the rest of the day, even with a new eligible task
    make_task("Also old", status=COMPLETED, completed_at=utcnow() - timedelta(days=7))
    listed = client.get("/tasks", headers=AUTH).get_json()["data"]
    assert len(listed) == 2

    archived = client.get("/tasks/archive", headers=AUTH).get_json()["data"]
    assert [t["id"] for t in archived] == [old.id]


def test_near_archive_route(client, make_task):
    soon = make_task("Soon", status=COMPLETED, completed_at=utcnow() - timedelta(days=1))
    make_task("Open")

    data = client.get("/tasks/archive/near", headers=AUTH).get_json()["data"]

    assert [t["id"] for t in data] == [soon.id]


def test_archive_stats_route(client, make_task):
    now = utcnow()
    make_task("a", status=COMPLETED, completed_at=now - timedelta(days=9),
              archived=True, archived_at=now - timedelta(days=2))
    make_task("b", status=COMPLETED, completed_at=now - timedelta(days=30),
              archived=True, archived_at=now - timedelta(days=20))

    resp = client.get("/tasks/archive/stats", headers=AUTH)

    assert resp.status_code == 200
    assert resp.get_json()["data"] == {
        "total_archived": 2,
        "archived_this_week": 1,
        "archived_this_month": 2,
        "last_auto_archive_run": None,
    }


def test_cron_rejects_missing_or_wrong_secret(client, app):
    assert client.post("/cron/auto-archive").status_code == 401

    resp = client.post("/cron/auto-archive", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.get_json() == {"success": False, "error": "Unauthorized"}

    app.config["CRON_SECRET"] = None
    assert client.post("/cron/auto-archive", headers={"Authorization": "Bearer "}).status_code == 401


def test_cron_sweeps_every_call(client, app, make_task):
    make_task("Old", status=COMPLETED, completed_at=utcnow() - timedelta(days=4))

    first = client.post("/cron/auto-archive", headers=CRON_AUTH)
    second = client.post("/cron/auto-archive", headers=CRON_AUTH)

    assert first.status_code == 200
    body = first.get_json()
    assert body["success"] is True
    assert body["archivedCount"] == 1
    assert body["timestamp"]
    assert second.get_json()["archivedCount"] == 0
    # The remote path leaves the local daily guard alone
    assert app.extensions["archive_scheduler"].last_run is None


def test_cron_reports_failure(client, app, monkeypatch):
    scheduler = app.extensions["archive_scheduler"]
    monkeypatch.setattr(scheduler, "run_remote",
                        lambda: SweepResult(archived_count=0, error=StoreUnavailable("database unavailable")))

    resp = client.post("/cron/auto-archive", headers=CRON_AUTH)

    assert resp.status_code == 500
    assert resp.get_json() == {"success": False, "error": "database unavailable", "archivedCount": 0}


def test_status_change_commit_failure_leaves_task_untouched(client, db, make_task):
    completed_at = utcnow() - timedelta(days=1)
    task = make_task("Ship order", status=COMPLETED, completed_at=completed_at)

    def refuse_commit(session):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    event.listen(models.SessionLocal, "before_commit", refuse_commit)
    try:
        resp = client.put(f"/tasks/{task.id}/status", json={"status": "To Do"}, headers=AUTH)
    finally:
        event.remove(models.SessionLocal, "before_commit", refuse_commit)

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["success"] is False
    assert "disk I/O error" in body["error"]
    db.expire_all()
    stored = db.get(Task, task.id)
    assert stored.status == COMPLETED
    assert stored.completed_at == completed_at


def test_archive_stats_route_reports_failed_count(client, monkeypatch):
    def broken_count(db, since=None):
        raise OperationalError("SELECT count", {}, Exception("connection reset"))

    monkeypatch.setattr(archive_service, "_count_archived", broken_count)

    resp = client.get("/tasks/archive/stats", headers=AUTH)

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["success"] is False
    assert "total_archived" in body["error"]


def test_cron_unexpected_error(client, app, monkeypatch):
    def explode():
        raise RuntimeError("scheduler crashed")

    monkeypatch.setattr(app.extensions["archive_scheduler"], "run_remote", explode)

    resp = client.post("/cron/auto-archive", headers=CRON_AUTH)

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"] == "Internal server error"
    assert body["archivedCount"] == 0


def test_module_exposes_wsgi_app():
    assert wsgi.app.url_map.bind("localhost").match("/cron/auto-archive", method="POST")
    assert wsgi.app.config["RUN_STARTUP_ARCHIVE"] is False
    assert wsgi.app.extensions["archive_scheduler"]._timer is None
