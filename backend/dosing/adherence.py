from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Iterable

from backend.api.schemas import Schedule

@dataclass(frozen=True)
class AdherenceSummary:
    adherence_pct: float
    past: int
    taken: int
    skipped: int
    missed: int  # still pending although its time has passed

    def to_dict(self) -> dict:
        return asdict(self)

def calculate_adherence(schedules: Iterable[Schedule], now: datetime) -> AdherenceSummary:
    """
    Share of past-due doses that were taken.

    Only schedules before `now` count. Skipped and missed doses both count
    against the ratio. With nothing in the past adherence is 100%.
    """
    past = [s for s in schedules if s.scheduled_time < now]
    taken = sum(1 for s in past if s.status == "taken")
    skipped = sum(1 for s in past if s.status == "skipped")
    missed = len(past) - taken - skipped

    if not past:
        return AdherenceSummary(100.0, 0, 0, 0, 0)

    pct = round(100.0 * taken / len(past), 1)
    return AdherenceSummary(pct, len(past), taken, skipped, missed)

def adherence_by_medicine(schedules: Iterable[Schedule], now: datetime) -> Dict[str, AdherenceSummary]:
    """Adherence per medicine id"""
    grouped = defaultdict(list)
    for schedule in schedules:
        grouped[schedule.medicine_id].append(schedule)
    return {medicine_id: calculate_adherence(items, now) for medicine_id, items in grouped.items()}
