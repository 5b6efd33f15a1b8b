import logging

from sqlalchemy.exc import SQLAlchemyError

from models import Task, TaskStatus, utcnow
from services.errors import InvalidTransition, NotFound, StoreUnavailable
from services.results import OperationResult

logger = logging.getLogger(__name__)


def on_status_change(db, task_id, new_status, now=None, commit=True):
    """
    Keep completed_at in step with a status change. Must run before the new
    status itself is set on the row.

    Moving into 'Completed' always stamps a fresh completed_at. Moving to
    anything else clears it, but only when the stored row is still
    'Completed'; the stored row is read here rather than trusting the caller.

    With ``commit=False`` the change is left pending in ``db`` so the caller
    can write it in the same commit as the new status.
    """
    now = now or utcnow()
    try:
        new_status = TaskStatus(new_status)
    except ValueError:
        return OperationResult.failed(InvalidTransition(f"Unknown status {new_status!r}"))

    try:
        task = db.get(Task, task_id)
        if not task:
            return OperationResult.failed(NotFound(f"Task {task_id} not found"))

        if new_status == TaskStatus.COMPLETED:
            task.completed_at = now
            logger.info("Set completed_at for task %s", task_id)
        elif task.status == TaskStatus.COMPLETED.value and task.completed_at is not None:
            task.completed_at = None
            logger.info("Cleared completed_at for task %s", task_id)
        else:
            return OperationResult()

        if commit:
            db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error updating completed_at for task %s: %s", task_id, exc)
        return OperationResult.failed(StoreUnavailable(str(exc)))

    return OperationResult()
