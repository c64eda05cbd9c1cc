import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from backend.api.logging_config import NotFoundError, StateConflict, ValidationError
from backend.api.schemas import Schedule
from .notifications import NotificationSink, cancel_reminders

logger = logging.getLogger(__name__)

ACTION_STATUS = {
    "take": "taken",
    "skip": "skipped",
}

def display_status(schedule: Schedule, now: datetime) -> str:
    """Status to show for a stored schedule; overdue is derived, never stored"""
    if schedule.status == "pending" and schedule.scheduled_time < now:
        return "overdue"
    return schedule.status

def find_due(schedules: Iterable[Schedule], now: datetime) -> List[Schedule]:
    """Pending schedules whose time has come, oldest first"""
    due = [s for s in schedules if s.status == "pending" and s.scheduled_time <= now]
    return sorted(due, key=lambda s: s.scheduled_time)

def transition(schedule: Schedule, action: str, now: datetime) -> Schedule:
    """
    Resolve a pending schedule. Returns a new Schedule; the input is untouched.
    Raises StateConflict if the schedule is already taken or skipped.
    """
    if action not in ACTION_STATUS:
        raise ValidationError(f"Action must be one of: {', '.join(ACTION_STATUS)}", field="action")

    if schedule.status != "pending":
        raise StateConflict(schedule.id, schedule.status)

    status = ACTION_STATUS[action]
    return schedule.model_copy(update={
        "status": status,
        "actual_taken_time": now if status == "taken" else None
    })

@dataclass
class TransitionResult:
    schedule: Schedule
    changed: bool

def apply_action(schedule: Schedule, action: str, now: datetime) -> TransitionResult:
    """Idempotent transition: resolving an already resolved schedule is a no-op"""
    try:
        return TransitionResult(transition(schedule, action, now), True)
    except StateConflict as e:
        logger.info(e.message, extra={"schedule_id": schedule.id})
        return TransitionResult(schedule, False)

class DoseTracker:
    """Applies take/skip actions against the record store"""

    def __init__(self, store, notifier: Optional[NotificationSink] = None):
        self.store = store
        self.notifier = notifier

    def resolve(self, schedule_id: str, action: str, now: datetime) -> TransitionResult:
        # Re-read so a duplicate action sees the status written by the first one
        schedule = self.store.schedules.get(schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule", schedule_id)

        result = apply_action(schedule, action, now)
        if not result.changed:
            return result

        self.store.schedules.update(result.schedule)
        logger.info(
            f"Dose {result.schedule.status}",
            extra={
                "schedule_id": schedule_id,
                "medicine_id": schedule.medicine_id,
                "profile_id": schedule.profile_id
            }
        )

        cancel_reminders(self.notifier, [schedule_id])
        return result
