import uuid
import logging
from datetime import datetime, timedelta
from typing import Iterator, List
from dateutil import rrule

from backend.api.logging_config import ValidationError
from backend.api.schemas import Medicine, Profile, Schedule
from .time_window import TimeWindow, resolve_window

logger = logging.getLogger(__name__)

OVERFLOW_POLICIES = ("truncate", "wrap")
MINUTES_PER_DAY = 24 * 60

def course_days(start_date: datetime, days: int) -> Iterator[datetime]:
    """Midnight of each calendar day of a course, starting on start_date's day"""
    if days <= 0:
        return iter(())
    first_day = start_date.replace(hour=0, minute=0, second=0, microsecond=0)
    return iter(rrule.rrule(rrule.DAILY, dtstart=first_day, count=days))

class ScheduleGenerator:
    """
    Expand a medicine's dosing rule into the dose instants of its whole course.

    overflow_policy controls every-X-hours doses that land past midnight:
    "truncate" drops them (each day restarts from the start hour), "wrap"
    keeps them on the following calendar date.
    """

    def __init__(self, overflow_policy: str = "truncate"):
        if overflow_policy not in OVERFLOW_POLICIES:
            raise ValidationError(
                f"Overflow policy must be one of: {', '.join(OVERFLOW_POLICIES)}",
                field="overflow_policy"
            )
        self.overflow_policy = overflow_policy

    def generate(self, medicine: Medicine, profile: Profile) -> List[Schedule]:
        window = resolve_window(profile.wake_time, profile.sleep_time)

        dose_times: List[datetime] = []
        for day in course_days(medicine.start_date, medicine.course_days):
            dose_times.extend(self.dose_times_for_day(medicine, window, day))

        dose_times.sort()
        schedules = [self._new_schedule(medicine, ts) for ts in dose_times]

        logger.debug(
            f"Generated {len(schedules)} doses over {medicine.course_days} days",
            extra={"medicine_id": medicine.id, "profile_id": medicine.profile_id}
        )
        return schedules

    def dose_times_for_day(self, medicine: Medicine, window: TimeWindow, day: datetime) -> List[datetime]:
        """Dose instants for one course day; day is that day's midnight"""
        # Before-sleep ignores the frequency fields entirely
        if medicine.instructions == "before_sleep":
            return [day + timedelta(hours=window.effective_sleep_hour, minutes=window.sleep_minute)]

        if medicine.frequency_value <= 0:
            return []

        if medicine.frequency_type == "every_x_hours":
            return self._every_x_hours(medicine, day)

        return self._times_a_day(medicine, window, day)

    def _every_x_hours(self, medicine: Medicine, day: datetime) -> List[datetime]:
        every = medicine.frequency_value
        doses_per_day = 24 // every

        times = []
        for i in range(doses_per_day):
            ts = day + timedelta(hours=medicine.start_date.hour + i * every)
            if ts.date() != day.date() and self.overflow_policy == "truncate":
                continue
            times.append(ts)
        return times

    def _times_a_day(self, medicine: Medicine, window: TimeWindow, day: datetime) -> List[datetime]:
        count = medicine.frequency_value
        times = []
        for i in range(count):
            # wake + i * (duration / count) hours, truncated to whole minutes
            minutes = window.wake_hour * 60 + (i * window.duration * 60) // count
            # Past-midnight doses stay on the course day
            times.append(day + timedelta(minutes=minutes % MINUTES_PER_DAY))
        return sorted(times)

    def _new_schedule(self, medicine: Medicine, scheduled_time: datetime) -> Schedule:
        return Schedule(
            id=str(uuid.uuid4()),
            medicine_id=medicine.id,
            profile_id=medicine.profile_id,
            scheduled_time=scheduled_time,
            status="pending",
            actual_taken_time=None
        )

def generate_schedules(medicine: Medicine, profile: Profile, overflow_policy: str = "truncate") -> List[Schedule]:
    """Generate the full, time-ordered course of schedules for a medicine (not persisted)"""
    return ScheduleGenerator(overflow_policy).generate(medicine, profile)
