"""
Periodic sync trigger.

Runs SyncEngine.run_full_pass every `interval_minutes` on a daemon thread.
A failing pass is logged and the next firing goes ahead as usual. Overlap is
prevented by the engine's own lock, which also covers manual triggers.
"""

import logging
import threading

import schedule

from intake.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Scheduler for running the spreadsheet sync on a fixed interval."""

    def __init__(self, engine: SyncEngine, interval_minutes: int, poll_seconds: float = 1.0):
        self.engine = engine
        self.interval_minutes = interval_minutes
        self.poll_seconds = poll_seconds
        self.stop_event = threading.Event()
        self.thread = None
        self.scheduler = schedule.Scheduler()

    def start(self):
        """Start the scheduler thread."""
        if self.thread is not None and self.thread.is_alive():
            logger.warning("Scheduler is already running")
            return

        self.stop_event.clear()
        self.scheduler.clear()
        self.scheduler.every(self.interval_minutes).minutes.do(self.run_once)
        self.thread = threading.Thread(target=self._run, name="sheet-sync", daemon=True)
        self.thread.start()
        logger.info("Sync scheduler started (every %d minutes)", self.interval_minutes)

    def stop(self):
        """Stop the scheduler thread."""
        if self.thread is None or not self.thread.is_alive():
            return

        logger.info("Stopping sync scheduler...")
        self.stop_event.set()
        self.thread.join(timeout=5)
        self.scheduler.clear()
        logger.info("Sync scheduler stopped")

    def _run(self):
        """Main scheduler loop."""
        while not self.stop_event.is_set():
            self.scheduler.run_pending()
            self.stop_event.wait(self.poll_seconds)

    def run_once(self, acquired: bool = False):
        """Run one pass, never letting an error escape into the scheduler."""
        logger.info("Starting sync job...")
        try:
            report = self.engine.run_full_pass(acquired=acquired)
        except Exception:
            logger.exception("Sync error")
            return None
        if report is not None:
            logger.info("Sync job complete.")
        return report

    def trigger_now(self) -> bool:
        """
        Run a pass on a worker thread right away.
        Returns False when a pass is already in progress.
        """
        # the lock is taken here so two requests cannot both get a 202
        if not self.engine.try_acquire():
            return False
        threading.Thread(
            target=self.run_once, kwargs={"acquired": True}, name="sheet-sync-manual", daemon=True
        ).start()
        return True
