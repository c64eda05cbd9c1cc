import json
import pytest
import httpx
from datetime import timedelta
from unittest.mock import MagicMock
from backend.api.config import Settings
from backend.api.logging_config import ExternalServiceError
from backend.dosing.notifications import (
    LogNotifier, WebhookNotifier, build_notifier, cancel_reminders,
    reminder_text, schedule_reminders
)

def webhook(handler):
    return WebhookNotifier("https://push.example.com/hook", client=httpx.Client(transport=httpx.MockTransport(handler)))

class TestWebhookNotifier:
    """JSON POSTs to the push gateway"""

    def test_schedule_payload(self, now):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(202)

        webhook(handler).schedule("schedule-1", now, "Time for Alex's medication!", "Take Amoxicillin (500 mg)")

        assert requests == [{
            "action": "schedule",
            "id": "schedule-1",
            "fire_at": "2024-01-15T12:00:00",
            "title": "Time for Alex's medication!",
            "body": "Take Amoxicillin (500 mg)"
        }]

    def test_cancel_payload(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200)

        webhook(handler).cancel("schedule-1")
        assert requests == [{"action": "cancel", "id": "schedule-1"}]

    def test_error_status_raises(self, now):
        notifier = webhook(lambda request: httpx.Response(500))

        with pytest.raises(ExternalServiceError) as exc:
            notifier.schedule("schedule-1", now, "t", "b")
        assert exc.value.details["status_code"] == 500

    def test_transport_failure_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        with pytest.raises(ExternalServiceError):
            webhook(handler).cancel("schedule-1")

class TestReminderHelpers:
    def test_reminder_text(self, profile, make_medicine):
        title, body = reminder_text(profile, make_medicine())
        assert title == "Time for Alex's medication!"
        assert body == "Take Amoxicillin (500 mg)"

    def test_reminder_text_without_profile(self, make_medicine):
        title, _ = reminder_text(None, make_medicine())
        assert title == "Time for A profile's medication!"

    def test_only_future_doses_are_scheduled(self, notifier, profile, make_medicine, make_schedule, now):
        schedules = [
            make_schedule(now - timedelta(hours=1)),
            make_schedule(now),
            make_schedule(now + timedelta(hours=1)),
            make_schedule(now + timedelta(hours=5)),
        ]

        count = schedule_reminders(notifier, profile, make_medicine(), schedules, now)

        assert count == 2
        scheduled_ids = [call.args[0] for call in notifier.schedule.call_args_list]
        assert scheduled_ids == [schedules[2].id, schedules[3].id]

    def test_missing_sink_schedules_nothing(self, profile, make_medicine, make_schedule, now):
        schedules = [make_schedule(now + timedelta(hours=1))]
        assert schedule_reminders(None, profile, make_medicine(), schedules, now) == 0

    def test_failed_reminder_does_not_stop_the_rest(self, profile, make_medicine, make_schedule, now):
        notifier = MagicMock()
        notifier.schedule.side_effect = [ExternalServiceError("Notification webhook", "down"), None]
        schedules = [make_schedule(now + timedelta(hours=h)) for h in (1, 2)]

        assert schedule_reminders(notifier, profile, make_medicine(), schedules, now) == 1
        assert notifier.schedule.call_count == 2

    def test_cancel_reminders(self, notifier):
        assert cancel_reminders(notifier, ["a", "b"]) == 2
        assert cancel_reminders(None, ["a"]) == 0

    def test_log_notifier_accepts_everything(self, now):
        notifier = LogNotifier()
        notifier.schedule("schedule-1", now, "t", "b")
        notifier.cancel("schedule-1")

class TestBuildNotifier:
    def test_log_sink_without_webhook(self):
        assert isinstance(build_notifier(Settings()), LogNotifier)

    def test_webhook_sink_when_configured(self):
        notifier = build_notifier(Settings(notify_webhook_url="https://push.example.com/hook"))
        assert isinstance(notifier, WebhookNotifier)
        notifier.close()
