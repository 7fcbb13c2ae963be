import logging
import threading
from datetime import timedelta
from typing import Callable, Optional

from app.clock import Clock
from app.lending import LendingEngine

from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)


class OverdueSweeper:
    """
    Periodically reports overdue loans.

    Policy: the sweep only reports. Each overdue loan is logged at WARNING
    level; loans are never auto-returned and books are never restocked.

    Internal Working:
    - run_once() opens its own session, walks LendingEngine.scan_overdue()
      and closes the session again
    - start() runs run_once() on a daemon thread every ``interval`` until
      stop() is called. A failed sweep is logged and the next one still runs.

    Args:
        session_factory: Callable returning a new Session
        clock: Clock used to decide what is overdue
        interval: Time between sweeps, one day by default
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock,
        interval: timedelta = timedelta(days=1),
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> int:
        """Log every overdue loan and return how many there were."""
        count = 0
        db = self.session_factory()
        try:
            for loan in LendingEngine(db, self.clock).scan_overdue():
                logger.warning(
                    "Overdue loan detected: loan_id=%s book_id=%s user_id=%s due_date=%s",
                    loan.id,
                    loan.book_id,
                    loan.user_id,
                    loan.due_date.isoformat(),
                )
                count += 1
        finally:
            db.close()
        logger.info("Overdue sweep finished: %d overdue loan(s)", count)
        return count

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="overdue-sweeper", daemon=True
        )
        self._thread.start()
        logger.info("Overdue sweeper started (every %s)", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self.interval.total_seconds()):
            try:
                self.run_once()
            except Exception:
                logger.exception("Overdue sweep failed")
