import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from backend.api.logging_config import DatabaseError, NotFoundError, log_error
from backend.api.schemas import Medicine, Profile, Schedule
from .generator import generate_schedules
from .notifications import NotificationSink, cancel_reminders, schedule_reminders

logger = logging.getLogger(__name__)

@dataclass
class CourseResult:
    medicine: Medicine
    schedules: List[Schedule]
    reminders_scheduled: int

def create_course(store,
                  notifier: Optional[NotificationSink],
                  profile: Profile,
                  medicine: Medicine,
                  now: datetime,
                  overflow_policy: str = "truncate") -> CourseResult:
    """
    Persist a new medicine together with every dose of its course.

    Schedules are generated before anything is written. If the schedule batch
    cannot be stored the medicine row is removed again, so a course is either
    stored whole or not at all.
    """
    schedules = generate_schedules(medicine, profile, overflow_policy)

    store.medicines.add(medicine)
    try:
        store.schedules.add_many(schedules)
    except DatabaseError:
        try:
            store.medicines.delete(medicine.id)
        except DatabaseError as cleanup_error:
            log_error(logger, cleanup_error, {"medicine_id": medicine.id})
        raise

    logger.info(
        f"Course created with {len(schedules)} doses",
        extra={"medicine_id": medicine.id, "profile_id": profile.id}
    )

    reminders = schedule_reminders(notifier, profile, medicine, schedules, now)
    return CourseResult(medicine, schedules, reminders)

def delete_medicine(store, notifier: Optional[NotificationSink], medicine_id: str) -> int:
    """Delete a medicine, its schedules and their reminders. Returns the number of schedules removed."""
    medicine = store.medicines.get(medicine_id)
    if medicine is None:
        raise NotFoundError("Medicine", medicine_id)

    schedules = store.schedules.get_by_medicine_id(medicine_id)
    cancel_reminders(notifier, [s.id for s in schedules])

    for schedule in schedules:
        store.schedules.delete(schedule.id)
    store.medicines.delete(medicine_id)

    logger.info(
        f"Medicine deleted with {len(schedules)} doses",
        extra={"medicine_id": medicine_id, "profile_id": medicine.profile_id}
    )
    return len(schedules)

def delete_profile(store, notifier: Optional[NotificationSink], profile_id: str) -> int:
    """Delete a profile and everything it owns. Returns the number of medicines removed."""
    if store.profiles.get(profile_id) is None:
        raise NotFoundError("Profile", profile_id)

    medicines = store.medicines.get_by_profile_id(profile_id)
    for medicine in medicines:
        delete_medicine(store, notifier, medicine.id)

    store.profiles.delete(profile_id)
    logger.info(f"Profile deleted with {len(medicines)} medicines", extra={"profile_id": profile_id})
    return len(medicines)
