"""
Two ways into the auto-archive sweep.

The local path runs when this process starts (after a short delay) and on the
lazy check from the task list, and is throttled to one attempt per calendar
day by a date marker kept on local disk. The remote path is the
authenticated cron endpoint and always sweeps; whoever calls it decides the
cadence. Neither path locks across processes: the sweep itself never
re-archives a row, so overlapping runs are harmless.
"""
import enum
import logging
import threading
from datetime import date
from pathlib import Path

from models import utcnow
from services.archive_service import sweep_eligible

logger = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class FileMarkerStore:
    """Last local archive run, stored as a YYYY-MM-DD string in a single file."""

    def __init__(self, path):
        self.path = Path(path)

    def read(self):
        try:
            text = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read archive marker %s: %s", self.path, exc)
            return None

        try:
            return date.fromisoformat(text)
        except ValueError:
            logger.warning("Ignoring unreadable archive marker %s: %r", self.path, text)
            return None

    def write(self, day):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(day.isoformat())


class ArchiveScheduler:
    def __init__(self, session_factory, marker_store, clock=utcnow):
        self._session_factory = session_factory
        self._marker_store = marker_store
        self._clock = clock
        self._lock = threading.Lock()
        self._timer = None
        self.state = SchedulerState.IDLE

    @property
    def last_run(self):
        return self._marker_store.read()

    def _sweep(self, now):
        db = self._session_factory()
        try:
            return sweep_eligible(db, now=now)
        finally:
            db.close()

    def run_local(self):
        """
        Sweep unless a local run was already attempted today. Returns the
        SweepResult, or None when skipped. Never raises.
        """
        now = self._clock()
        today = now.date()

        with self._lock:
            if self.state is SchedulerState.RUNNING:
                logger.info("Auto-archive already running, skipping")
                return None
            if self._marker_store.read() == today:
                logger.info("Auto-archive already ran today, skipping")
                return None
            self.state = SchedulerState.RUNNING

        result = None
        try:
            result = self._sweep(now)
            if result.error:
                logger.error("Auto-archive failed: %s", result.error_message)
            else:
                logger.info("Auto-archive completed, archived %d tasks", result.archived_count)
        except Exception:
            logger.exception("Unexpected error in auto-archive")
        finally:
            # Marked as attempted even on failure; the next try is tomorrow or the cron endpoint
            try:
                self._marker_store.write(today)
            except OSError as exc:
                logger.error("Could not record auto-archive run: %s", exc)
            with self._lock:
                self.state = SchedulerState.IDLE

        return result

    def run_remote(self):
        """Sweep unconditionally. The local marker is neither read nor written."""
        return self._sweep(self._clock())

    def schedule_startup_run(self, delay_seconds):
        self.cancel()
        self._timer = threading.Timer(delay_seconds, self.run_local)
        self._timer.daemon = True
        self._timer.start()
        return self._timer

    def cancel(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
