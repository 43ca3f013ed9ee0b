"""
Auto clock-out sweep.

Closes open attendance records once the staff member's shift end plus the
configured buffer has passed. The recorded clock-out is the computed instant,
not the time the sweep ran, so late runs do not change recorded hours.
Records flagged overtime or double duty are left for a human to close.
"""
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Attendance, User
from .attendance import close_attendance
from .filters import Eq, IsNull, Range, apply_filters
from .time_rules import auto_clock_out_time, ensure_utc, local_today, utc_now


logger = structlog.get_logger(__name__)


def run_auto_clock_out_sweep(
    db: Session,
    now: Optional[datetime] = None,
    max_run_seconds: Optional[float] = None,
) -> Dict[str, int]:
    """
    One sweep over open, unflagged attendance dated today or earlier.

    Returns counts of records checked, closed, skipped (staff missing or
    another writer closed the record first) and whether the run stopped at
    its time bound.
    """
    now = ensure_utc(now) if now else utc_now()
    if max_run_seconds is None:
        max_run_seconds = settings.auto_clock_out_max_run_seconds
    started = time.monotonic()

    query = db.query(Attendance, User).outerjoin(User, User.id == Attendance.staff_id)
    query = apply_filters(query, [
        IsNull(Attendance.clock_out),
        Range(Attendance.attendance_date, lte=local_today(now)),
        Eq(Attendance.overtime, False),
        Eq(Attendance.double_duty, False),
    ])
    rows = query.order_by(Attendance.attendance_date, Attendance.clock_in).all()

    stats = {"checked": 0, "closed": 0, "skipped": 0, "timed_out": 0}
    for attendance, staff in rows:
        if max_run_seconds and time.monotonic() - started > max_run_seconds:
            stats["timed_out"] = 1
            logger.warning("auto_clock_out.run_bounded", remaining=len(rows) - stats["checked"])
            break
        stats["checked"] += 1

        if staff is None:
            stats["skipped"] += 1
            continue

        clock_out_at = auto_clock_out_time(attendance.attendance_date, staff.shift_end_time)
        if now < clock_out_at:
            continue

        if close_attendance(db, attendance.id, clock_out_at, clocked_out_by=None, require_unflagged=True):
            stats["closed"] += 1
            logger.info(
                "auto_clock_out.closed",
                attendance_id=str(attendance.id),
                staff_id=str(attendance.staff_id),
                clock_out=clock_out_at.isoformat(),
            )
        else:
            stats["skipped"] += 1

    if stats["closed"]:
        logger.info("auto_clock_out.sweep_done", **stats)
    return stats


class AutoClockOutScheduler:
    """
    Background thread running the sweep on a fixed interval.

    Started once from the application startup hook and stopped on shutdown.
    A tick that finds the previous run still executing is skipped.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_seconds: Optional[float] = None,
        max_run_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.auto_clock_out_interval_seconds
        self.max_run_seconds = max_run_seconds if max_run_seconds is not None else settings.auto_clock_out_max_run_seconds
        self._stop = threading.Event()
        self._running = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_alive:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="auto-clock-out", daemon=True)
        self._thread.start()
        logger.info("auto_clock_out.scheduler_started", interval_seconds=self.interval_seconds)

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("auto_clock_out.scheduler_stopped")

    def _loop(self) -> None:
        # First sweep runs one interval after start
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def run_once(self, now: Optional[datetime] = None) -> Optional[Dict[str, int]]:
        """Run a sweep unless one is already in progress. Errors are logged, never raised."""
        if not self._running.acquire(blocking=False):
            logger.warning("auto_clock_out.skipped_overlap")
            return None
        db = self.session_factory()
        try:
            return run_auto_clock_out_sweep(db, now=now, max_run_seconds=self.max_run_seconds)
        except Exception as e:
            db.rollback()
            logger.error("auto_clock_out.failed", error=str(e), exc_info=True)
            return None
        finally:
            db.close()
            self._running.release()
