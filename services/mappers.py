"""
Task <-> API payload conversion.

Every writable payload key maps to exactly one column of the same name.
status, completed_at, archived and archived_at are read-only here: they
change only through the status route and the archive services.
"""
from datetime import date

from models import TaskPriority

WRITABLE_FIELDS = (
    "title", "description", "priority", "deadline",
    "assigned_to_id", "assigned_by_id", "project_id", "client_id",
)


def _iso(value):
    return value.isoformat() if value else None


def serialize_task(task):
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "deadline": _iso(task.deadline),
        "assigned_to_id": task.assigned_to_id,
        "assigned_by_id": task.assigned_by_id,
        "project_id": task.project_id,
        "client_id": task.client_id,
        "completed_at": _iso(task.completed_at),
        "archived": task.archived,
        "archived_at": _iso(task.archived_at),
        "created_at": _iso(task.created_at),
        "last_updated": _iso(task.last_updated),
    }


def task_fields_from_payload(body):
    """
    Column values for the writable keys present in ``body``.
    Raises ValueError with a user-facing message on bad input.
    """
    unknown = set(body) - set(WRITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")

    fields = {}
    if "title" in body:
        title = (body["title"] or "").strip()
        if not title:
            raise ValueError("Title cannot be empty")
        fields["title"] = title

    if "description" in body:
        fields["description"] = (body["description"] or "").strip() or None

    if "priority" in body:
        try:
            fields["priority"] = TaskPriority(body["priority"]).value
        except ValueError:
            valid = ", ".join(p.value for p in TaskPriority)
            raise ValueError(f"Invalid priority. Must be one of: {valid}") from None

    if "deadline" in body:
        try:
            fields["deadline"] = date.fromisoformat(body["deadline"]) if body["deadline"] else None
        except (TypeError, ValueError):
            raise ValueError("Deadline must be an ISO date (YYYY-MM-DD)") from None

    for key in ("assigned_to_id", "assigned_by_id", "project_id", "client_id"):
        if key in body:
            fields[key] = str(body[key]) if body[key] is not None else None

    return fields
