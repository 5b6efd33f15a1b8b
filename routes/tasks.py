import logging
from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from auth import require_auth
from models import get_db, Task, TaskStatus
from services.archive_service import (
    archive_stats, archive_task, list_active_tasks, list_archived_tasks,
    list_near_auto_archive, unarchive_task,
)
from services.completion_service import on_status_change
from services.errors import InvalidTransition, NotFound, StoreUnavailable
from services.mappers import serialize_task, task_fields_from_payload

tasks_bp = Blueprint("tasks", __name__)

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in TaskStatus]


def _ok(data, message=None, status=200):
    return jsonify({"success": True, "data": data, "error": None, "message": message}), status


def _fail(error, status=None):
    if status is None:
        if isinstance(error, NotFound):
            status = 404
        elif isinstance(error, InvalidTransition):
            status = 409
        else:
            status = 500
    return jsonify({"success": False, "data": None, "error": str(error), "message": None}), status


def _task_list(result):
    if result.error:
        return _fail(result.error)
    return _ok([serialize_task(t) for t in result.tasks])


# NOTE: /archive routes must be registered BEFORE /<int:id> to avoid route conflicts
@tasks_bp.route("/archive", methods=["GET"])
@require_auth
def list_archive():
    db = next(get_db())
    try:
        return _task_list(list_archived_tasks(db))
    finally:
        db.close()


@tasks_bp.route("/archive/near", methods=["GET"])
@require_auth
def list_near_archive():
    db = next(get_db())
    try:
        lookahead = timedelta(days=current_app.config["NEAR_ARCHIVE_LOOKAHEAD_DAYS"])
        return _task_list(list_near_auto_archive(db, lookahead=lookahead))
    finally:
        db.close()


@tasks_bp.route("/archive/stats", methods=["GET"])
@require_auth
def get_archive_stats():
    db = next(get_db())
    try:
        stats = archive_stats(db)
        if stats.error:
            return _fail(stats.error)

        last_run = current_app.extensions["archive_scheduler"].last_run
        data = stats.to_dict()
        data["last_auto_archive_run"] = last_run.isoformat() if last_run else None
        return _ok(data)
    finally:
        db.close()


@tasks_bp.route("/", methods=["GET"])
@tasks_bp.route("", methods=["GET"])
@require_auth
def list_tasks():
    # Lazy archival, at most once per day from this process
    current_app.extensions["archive_scheduler"].run_local()

    db = next(get_db())
    try:
        return _task_list(list_active_tasks(db))
    finally:
        db.close()


@tasks_bp.route("/", methods=["POST"])
@tasks_bp.route("", methods=["POST"])
@require_auth
def create_task():
    db = next(get_db())
    try:
        body = request.get_json(silent=True)
        if not body or not (body.get("title") or "").strip():
            return jsonify({"success": False, "data": None, "error": "Title is required", "message": None}), 400

        try:
            fields = task_fields_from_payload(body)
        except ValueError as exc:
            return jsonify({"success": False, "data": None, "error": str(exc), "message": None}), 400

        fields.setdefault("assigned_by_id", request.user_info["email"])
        task = Task(**fields)
        db.add(task)
        db.commit()
        db.refresh(task)

        return _ok(serialize_task(task), message="Task created", status=201)
    finally:
        db.close()


@tasks_bp.route("/<int:id>", methods=["GET"])
@require_auth
def get_task(id):
    db = next(get_db())
    try:
        task = db.get(Task, id)
        if not task:
            return jsonify({"success": False, "data": None, "error": "Task not found", "message": None}), 404
        return _ok(serialize_task(task))
    finally:
        db.close()


@tasks_bp.route("/<int:id>/status", methods=["PUT"])
@require_auth
def update_task_status(id):
    db = next(get_db())
    try:
        task = db.get(Task, id)
        if not task:
            return jsonify({"success": False, "data": None, "error": "Task not found", "message": None}), 404

        body = request.get_json(silent=True)
        new_status = body.get("status") if body else None
        if not new_status or new_status not in VALID_STATUSES:
            return jsonify({"success": False, "data": None, "error": f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}", "message": None}), 400

        if task.archived:
            return _fail(InvalidTransition("Archived tasks must be unarchived before changing status"))

        # completed_at first: the tracker reads the outgoing status from the row
        result = on_status_change(db, id, new_status, commit=False)
        if not result.success:
            return _fail(result.error)

        try:
            task.status = new_status
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Error changing status of task %s: %s", id, exc)
            return _fail(StoreUnavailable(str(exc)))
        db.refresh(task)

        return _ok(serialize_task(task), message=f"Status changed to {new_status}")
    finally:
        db.close()


@tasks_bp.route("/<int:id>/archive", methods=["POST"])
@require_auth
def archive(id):
    db = next(get_db())
    try:
        result = archive_task(db, id)
        if not result.success:
            return _fail(result.error)
        return _ok(serialize_task(db.get(Task, id)), message="Task archived")
    finally:
        db.close()


@tasks_bp.route("/<int:id>/unarchive", methods=["POST"])
@require_auth
def unarchive(id):
    db = next(get_db())
    try:
        result = unarchive_task(db, id)
        if not result.success:
            return _fail(result.error)
        return _ok(serialize_task(db.get(Task, id)), message="Task restored")
    finally:
        db.close()
