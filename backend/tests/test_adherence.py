import pytest
from datetime import timedelta
from backend.dosing.adherence import adherence_by_medicine, calculate_adherence

class TestAdherence:
    """Taken share of past-due doses"""

    def test_no_schedules_is_full_adherence(self, now):
        summary = calculate_adherence([], now)
        assert summary.adherence_pct == 100.0
        assert summary.past == 0

    @pytest.mark.parametrize("status", ["pending", "taken", "skipped"])
    def test_nothing_in_the_past_is_full_adherence(self, status, make_schedule, now):
        schedules = [make_schedule(now + timedelta(hours=h), status=status) for h in (1, 5)]
        assert calculate_adherence(schedules, now).adherence_pct == 100.0

    def test_one_taken_one_skipped_is_half(self, make_schedule, now):
        schedules = [
            make_schedule(now - timedelta(hours=4), status="taken"),
            make_schedule(now - timedelta(hours=2), status="skipped"),
        ]
        summary = calculate_adherence(schedules, now)
        assert summary.adherence_pct == 50.0
        assert (summary.past, summary.taken, summary.skipped, summary.missed) == (2, 1, 1, 0)

    def test_missed_doses_count_against(self, make_schedule, now):
        schedules = [
            make_schedule(now - timedelta(hours=6), status="taken"),
            make_schedule(now - timedelta(hours=3)),
            make_schedule(now - timedelta(hours=1)),
        ]
        summary = calculate_adherence(schedules, now)
        assert summary.adherence_pct == 33.3
        assert summary.missed == 2

    def test_future_taken_dose_is_ignored(self, make_schedule, now):
        schedules = [
            make_schedule(now - timedelta(hours=1), status="skipped"),
            make_schedule(now + timedelta(hours=1), status="taken"),
        ]
        assert calculate_adherence(schedules, now).adherence_pct == 0.0

    def test_dose_exactly_now_is_not_past(self, make_schedule, now):
        assert calculate_adherence([make_schedule(now)], now).past == 0

    def test_grouped_by_medicine(self, make_schedule, now):
        schedules = [
            make_schedule(now - timedelta(hours=2), status="taken", medicine_id="a"),
            make_schedule(now - timedelta(hours=1), status="skipped", medicine_id="b"),
            make_schedule(now - timedelta(hours=1), status="taken", medicine_id="b"),
        ]
        by_medicine = adherence_by_medicine(schedules, now)
        assert by_medicine["a"].adherence_pct == 100.0
        assert by_medicine["b"].adherence_pct == 50.0
