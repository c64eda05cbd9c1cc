"""
Reminder delivery.

Delivery is best effort: helpers here log failures and carry on, so dose
generation and tracking never depend on reminders being deliverable.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

import httpx

from backend.api.logging_config import AppError, ExternalServiceError, log_error
from backend.api.schemas import Medicine, Profile, Schedule

logger = logging.getLogger(__name__)

class NotificationSink:
    """Interface for anything that can fire a reminder at a time and cancel it by id"""

    def schedule(self, reminder_id: str, fire_at: datetime, title: str, body: str) -> None:
        raise NotImplementedError

    def cancel(self, reminder_id: str) -> None:
        raise NotImplementedError

class LogNotifier(NotificationSink):
    """Records reminders in the log only"""

    def schedule(self, reminder_id: str, fire_at: datetime, title: str, body: str) -> None:
        logger.info(f"Reminder scheduled for {fire_at.isoformat()}: {title}", extra={"schedule_id": reminder_id})

    def cancel(self, reminder_id: str) -> None:
        logger.info("Reminder cancelled", extra={"schedule_id": reminder_id})

class WebhookNotifier(NotificationSink):
    """Forwards reminders to a push gateway as JSON POSTs"""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.client = client or httpx.Client(timeout=timeout)

    def _post(self, payload: dict) -> None:
        try:
            response = self.client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise ExternalServiceError("Notification webhook", str(e))

        if response.status_code >= 400:
            raise ExternalServiceError(
                "Notification webhook",
                f"unexpected response {response.status_code}",
                response.status_code
            )

    def schedule(self, reminder_id: str, fire_at: datetime, title: str, body: str) -> None:
        self._post({
            "action": "schedule",
            "id": reminder_id,
            "fire_at": fire_at.isoformat(),
            "title": title,
            "body": body
        })

    def cancel(self, reminder_id: str) -> None:
        self._post({"action": "cancel", "id": reminder_id})

    def close(self) -> None:
        self.client.close()

def reminder_text(profile: Optional[Profile], medicine: Medicine) -> tuple:
    profile_name = profile.name if profile else "A profile"
    return (
        f"Time for {profile_name}'s medication!",
        f"Take {medicine.name} ({medicine.dose})"
    )

def schedule_reminders(notifier: Optional[NotificationSink],
                       profile: Optional[Profile],
                       medicine: Medicine,
                       schedules: Iterable[Schedule],
                       now: datetime) -> int:
    """Register a reminder for every future schedule. Returns how many were accepted."""
    if notifier is None:
        logger.warning("Notification sink is not available; reminders not scheduled",
                       extra={"medicine_id": medicine.id})
        return 0

    title, body = reminder_text(profile, medicine)
    scheduled = 0
    for schedule in schedules:
        if schedule.scheduled_time <= now:
            continue
        try:
            notifier.schedule(schedule.id, schedule.scheduled_time, title, body)
            scheduled += 1
        except (AppError, httpx.HTTPError) as e:
            log_error(logger, e, {"schedule_id": schedule.id, "medicine_id": medicine.id})
    return scheduled

def cancel_reminders(notifier: Optional[NotificationSink], schedule_ids: Iterable[str]) -> int:
    """Cancel reminders by schedule id, including ones that may already have fired"""
    if notifier is None:
        return 0

    cancelled = 0
    for schedule_id in schedule_ids:
        try:
            notifier.cancel(schedule_id)
            cancelled += 1
        except (AppError, httpx.HTTPError) as e:
            log_error(logger, e, {"schedule_id": schedule_id})
    return cancelled

def build_notifier(settings) -> NotificationSink:
    """Webhook sink when a URL is configured, log-only otherwise"""
    if settings.notify_webhook_url:
        logger.info("Using webhook notification sink")
        return WebhookNotifier(settings.notify_webhook_url, settings.notify_timeout_seconds)
    return LogNotifier()
