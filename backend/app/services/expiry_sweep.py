"""Expiry sweep — durable write-time expiry of overdue pending holds.

``run_expiry_sweep`` is a single idempotent pass; each hold is expired in
its own transaction so a hold that moved concurrently is skipped without
affecting the rest. ``ExpirySweeper`` repeats the pass on a background
thread. Several instances may run at once: the optimistic lock on the hold
decides which one writes.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models.pencil_hold import HoldStatus
from app.services.pencil_hold_service import expire_pencil_hold, find_holds_by_status_and_expiry
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def run_expiry_sweep(db: Session, now: Optional[datetime] = None) -> dict[str, Any]:
    """Expire every pending hold with ``expires_at <= now``."""
    now = now or utcnow()
    candidates = [h.hold_id for h in find_holds_by_status_and_expiry(db, [HoldStatus.pending], now)]

    expired_count = 0
    for hold_id in candidates:
        try:
            if expire_pencil_hold(db, hold_id, now):
                expired_count += 1
        except SQLAlchemyError:
            # Left pending; the next pass retries it
            logger.exception("Failed to expire pencil hold %s", hold_id)

    logger.info("Expiry sweep at %s: %d candidate(s), %d expired", now.isoformat(), len(candidates), expired_count)
    return {"expired_count": expired_count}


class ExpirySweeper:
    """Runs ``run_expiry_sweep`` every ``interval_seconds`` on a daemon thread."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.EXPIRY_SWEEP_INTERVAL_SECONDS
        self.runs = 0
        self.failures = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        db = self.session_factory()
        try:
            return run_expiry_sweep(db)["expired_count"]
        finally:
            db.close()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info("Expiry sweeper started (every %ds)", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Expiry sweeper stopped after %d run(s), %d failure(s)", self.runs, self.failures)

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
                self.runs += 1
            except Exception:
                self.failures += 1
                logger.exception("Expiry sweep run failed")
            self._stop.wait(self.interval_seconds)
