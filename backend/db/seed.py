import uuid
from datetime import datetime, timedelta

from backend.api.config import Settings
from backend.api.database import build_store
from backend.api.logging_config import setup_logging
from backend.api.schemas import Medicine, Profile
from backend.dosing import LogNotifier, apply_action, create_course

def seed_database(store=None, now: datetime = None):
    """Seed the store with a demo profile, two medicines and a little dose history."""
    now = now or datetime.now()
    store = store or build_store(Settings.from_env())
    notifier = LogNotifier()

    print("Creating demo profile...")
    profile = Profile(
        id=str(uuid.uuid4()),
        name="Demo Patient",
        wake_time="07:00",
        sleep_time="22:30"
    )
    store.profiles.add(profile)

    # Started three days ago so there is history to look at
    start = (now - timedelta(days=3)).replace(hour=8, minute=0, second=0, microsecond=0)

    print("Creating medicine courses...")
    medicines = [
        Medicine(
            id=str(uuid.uuid4()),
            profile_id=profile.id,
            name="Amoxicillin",
            dose="500 mg",
            course_days=7,
            instructions="after_food",
            frequency_type="times_a_day",
            frequency_value=3,
            start_date=start,
            doctor_name="Dr. Rivera",
            notes="Finish the whole course",
            created_at=start
        ),
        Medicine(
            id=str(uuid.uuid4()),
            profile_id=profile.id,
            name="Melatonin",
            dose="3 mg",
            course_days=14,
            instructions="before_sleep",
            frequency_type="times_a_day",
            frequency_value=1,
            start_date=start,
            created_at=start
        ),
    ]

    schedules = []
    for medicine in medicines:
        result = create_course(store, notifier, profile, medicine, now)
        schedules.extend(result.schedules)
        print(f"  {medicine.name}: {len(result.schedules)} doses")

    print("Resolving past doses...")
    past = [s for s in schedules if s.scheduled_time < now]
    for i, schedule in enumerate(past):
        # Skip every fifth dose so adherence is not a flat 100%
        action = "skip" if i % 5 == 4 else "take"
        resolved = apply_action(schedule, action, schedule.scheduled_time + timedelta(minutes=10))
        store.schedules.update(resolved.schedule)

    print(f"Seeded profile {profile.id} with {len(schedules)} doses ({len(past)} resolved)")
    return profile.id

if __name__ == "__main__":
    setup_logging()
    seed_database()
