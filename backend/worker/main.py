"""
Due-dose poller.

Every few seconds, find pending doses whose time has come and surface the
ones not surfaced before. The set of surfaced ids lives in memory only, so a
restart may re-surface doses that are still due.
"""
import time
import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Set

from backend.api.config import Settings
from backend.api.database import build_store
from backend.api.logging_config import AppError, DatabaseError, log_error, setup_logging
from backend.api.schemas import Schedule
from backend.dosing.lifecycle import find_due
from backend.dosing.notifications import build_notifier, reminder_text

logger = logging.getLogger(__name__)

def log_due(schedules: List[Schedule]) -> None:
    for schedule in schedules:
        logger.info(
            f"Dose due at {schedule.scheduled_time.isoformat()}",
            extra={
                "schedule_id": schedule.id,
                "medicine_id": schedule.medicine_id,
                "profile_id": schedule.profile_id
            }
        )

class DueScheduleWatcher:
    def __init__(self, store, on_due: Optional[Callable[[List[Schedule]], None]] = None):
        self.store = store
        self.on_due = on_due or log_due
        self.seen: Set[str] = set()

    def poll(self, now: Optional[datetime] = None) -> List[Schedule]:
        """Return due doses that have not been surfaced yet, and surface them"""
        now = now or datetime.now()
        due = find_due(self.store.schedules.get_due(now), now)
        due_ids = {s.id for s in due}

        fresh = [s for s in due if s.id not in self.seen]
        # Resolved doses never become due again, so forgetting them keeps the set bounded
        self.seen = (self.seen & due_ids) | {s.id for s in fresh}

        if fresh:
            self.on_due(fresh)
        return fresh

    def _poll_safely(self) -> float:
        """Poll once; returns how long to wait before the next poll"""
        try:
            self.poll()
            return 1.0
        except DatabaseError as e:
            log_error(logger, e, {"endpoint": "due_watcher"})
            return 5.0  # Wait longer on error

    def run_forever(self, interval: float = 5.0):
        logger.info("Due watcher started. Polling for due doses...")
        while True:
            time.sleep(interval * self._poll_safely())

    async def run_async(self, interval: float = 5.0):
        """Same loop, for running inside the API process; polls run off the event loop"""
        logger.info("Due watcher task started")
        while True:
            backoff = await asyncio.to_thread(self._poll_safely)
            await asyncio.sleep(interval * backoff)

def run_worker():
    """Main worker loop."""
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    store = build_store(settings)
    notifier = build_notifier(settings)

    def surface(schedules: List[Schedule]):
        log_due(schedules)
        for schedule in schedules:
            medicine = store.medicines.get(schedule.medicine_id)
            if medicine is None:
                continue
            title, body = reminder_text(store.profiles.get(schedule.profile_id), medicine)
            try:
                notifier.schedule(schedule.id, datetime.now(), title, body)
            except AppError as e:
                log_error(logger, e, {"schedule_id": schedule.id})

    watcher = DueScheduleWatcher(store, on_due=surface)
    try:
        watcher.run_forever(settings.poll_interval_seconds)
    finally:
        store.dispose()

if __name__ == "__main__":
    run_worker()
