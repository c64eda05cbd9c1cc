from datetime import datetime
from typing import Dict, List

from backend.api.schemas import Medicine, Profile, Schedule
from .adherence import adherence_by_medicine, calculate_adherence
from .lifecycle import display_status

def build_report(profile: Profile,
                 medicines: List[Medicine],
                 schedules: List[Schedule],
                 start: datetime,
                 end: datetime,
                 now: datetime) -> Dict:
    """
    Assemble the data an exporter needs to render a dose history document.
    Rows are newest first; only medicines with doses in the period are listed.
    """
    medicine_map = {m.id: m for m in medicines}
    in_period = [s for s in schedules if start <= s.scheduled_time <= end and s.medicine_id in medicine_map]

    rows = []
    for schedule in sorted(in_period, key=lambda s: s.scheduled_time, reverse=True):
        medicine = medicine_map[schedule.medicine_id]
        rows.append({
            "schedule_id": schedule.id,
            "scheduled_time": schedule.scheduled_time,
            "medicine_name": medicine.name,
            "dose": medicine.dose,
            "status": display_status(schedule, now),
            "actual_taken_time": schedule.actual_taken_time,
        })

    relevant_ids = {s.medicine_id for s in in_period}

    return {
        "profile": profile,
        "start": start,
        "end": end,
        "generated_at": now,
        "medicines": [m for m in medicines if m.id in relevant_ids],
        "rows": rows,
        "adherence": calculate_adherence(in_period, now).to_dict(),
        "adherence_by_medicine": {
            medicine_id: summary.to_dict()
            for medicine_id, summary in adherence_by_medicine(in_period, now).items()
        },
    }
