import calendar
import logging
from datetime import timedelta

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from models import Task, TaskStatus, utcnow
from services.errors import InvalidTransition, NotFound, PartialQueryFailure, StoreUnavailable
from services.results import ArchiveStats, OperationResult, SweepResult, TaskListResult

logger = logging.getLogger(__name__)

ARCHIVE_AFTER = timedelta(days=3)
NEAR_ARCHIVE_LOOKAHEAD = timedelta(days=1)


def archive_cutoff(now):
    return now - ARCHIVE_AFTER


def one_month_before(moment):
    """Same wall-clock time one calendar month earlier, clamping the day to the month's length."""
    if moment.month == 1:
        year, month = moment.year - 1, 12
    else:
        year, month = moment.year, moment.month - 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _completed_unarchived():
    return (
        Task.status == TaskStatus.COMPLETED.value,
        Task.archived == False,
        Task.completed_at != None,
    )


def sweep_eligible(db, now=None):
    """
    Archive every task that has been 'Completed' for strictly longer than 3 days.

    The ids are captured by the select and the update is keyed on exactly that
    list, so a concurrent sweep can only repeat a harmless write. Safe to call
    any number of times: archived rows never match again.
    """
    now = now or utcnow()
    cutoff = archive_cutoff(now)
    logger.info("Auto-archiving tasks completed before %s", cutoff.isoformat())

    try:
        rows = db.query(Task.id, Task.title, Task.completed_at).filter(
            *_completed_unarchived(),
            Task.completed_at < cutoff
        ).all()

        if not rows:
            logger.info("No tasks found for auto-archiving")
            return SweepResult(archived_count=0)

        task_ids = [row.id for row in rows]
        db.execute(
            update(Task)
            .where(Task.id.in_(task_ids))
            .values(archived=True, archived_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Auto-archive failed: %s", exc)
        return SweepResult(archived_count=0, error=StoreUnavailable(str(exc)))

    for row in rows:
        logger.debug("Archived task %s %r (completed %s)", row.id, row.title, row.completed_at)
    logger.info("Auto-archived %d tasks", len(task_ids))
    return SweepResult(archived_count=len(task_ids))


def archive_task(db, task_id, now=None):
    """
    Archive one task by hand. Age is not checked, but unlike the plain
    "archive anything" contract the task must be 'Completed' with a
    completed_at, so an archived task is always a completed one. Anything
    else fails with InvalidTransition.
    """
    now = now or utcnow()
    try:
        task = db.get(Task, task_id)
        if not task:
            return OperationResult.failed(NotFound(f"Task {task_id} not found"))
        if task.status != TaskStatus.COMPLETED.value or task.completed_at is None:
            return OperationResult.failed(
                InvalidTransition(f"Task {task_id} must be completed before it can be archived")
            )

        task.archived = True
        task.archived_at = now
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error archiving task %s: %s", task_id, exc)
        return OperationResult.failed(StoreUnavailable(str(exc)))

    logger.info("Archived task %s", task_id)
    return OperationResult()


def unarchive_task(db, task_id):
    """Restore an archived task. Status and completed_at are left as they are."""
    try:
        task = db.get(Task, task_id)
        if not task:
            return OperationResult.failed(NotFound(f"Task {task_id} not found"))

        task.archived = False
        task.archived_at = None
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error unarchiving task %s: %s", task_id, exc)
        return OperationResult.failed(StoreUnavailable(str(exc)))

    logger.info("Unarchived task %s", task_id)
    return OperationResult()


def _list_tasks(db, *criteria, order_by):
    try:
        tasks = db.query(Task).filter(*criteria).order_by(*order_by).all()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error listing tasks: %s", exc)
        return TaskListResult(error=StoreUnavailable(str(exc)))
    return TaskListResult(tasks=tasks)


def list_active_tasks(db):
    return _list_tasks(
        db, Task.archived == False,
        order_by=(Task.created_at.desc(), Task.id.desc())
    )


def list_archived_tasks(db):
    return _list_tasks(
        db, Task.archived == True,
        order_by=(Task.archived_at.desc(), Task.id.desc())
    )


def list_near_auto_archive(db, now=None, lookahead=NEAR_ARCHIVE_LOOKAHEAD):
    """
    Completed, unarchived tasks whose completion falls in the archive window
    shifted forward by ``lookahead`` (one daily run by default):
    ``[now + lookahead - 3 days, now + lookahead)``.
    """
    now = now or utcnow()
    horizon = now + lookahead
    return _list_tasks(
        db,
        *_completed_unarchived(),
        Task.completed_at >= archive_cutoff(horizon),
        Task.completed_at < horizon,
        order_by=(Task.completed_at.asc(), Task.id.asc())
    )


def _count_archived(db, since=None):
    query = db.query(func.count(Task.id)).filter(Task.archived == True)
    if since is not None:
        query = query.filter(Task.archived_at >= since)
    return query.scalar() or 0


def archive_stats(db, now=None):
    """
    Archived task counts: overall, over the last 7 days and over the last
    calendar month. The first failing count stops the rest; counts that were
    never reached stay None.
    """
    now = now or utcnow()
    stats = ArchiveStats()
    counts = (
        ("total_archived", None),
        ("archived_this_week", now - timedelta(days=7)),
        ("archived_this_month", one_month_before(now)),
    )

    for name, since in counts:
        try:
            setattr(stats, name, _count_archived(db, since))
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Error getting archive stats (%s): %s", name, exc)
            stats.error = PartialQueryFailure(name, exc)
            break

    return stats
