from .time_window import TimeWindow, resolve_window
from .generator import ScheduleGenerator, generate_schedules
from .lifecycle import DoseTracker, apply_action, display_status, find_due, transition
from .adherence import calculate_adherence, adherence_by_medicine
from .courses import create_course, delete_medicine, delete_profile
from .notifications import LogNotifier, WebhookNotifier, build_notifier
from .report import build_report

__all__ = [
    'TimeWindow',
    'resolve_window',
    'ScheduleGenerator',
    'generate_schedules',
    'DoseTracker',
    'apply_action',
    'display_status',
    'find_due',
    'transition',
    'calculate_adherence',
    'adherence_by_medicine',
    'create_course',
    'delete_medicine',
    'delete_profile',
    'LogNotifier',
    'WebhookNotifier',
    'build_notifier',
    'build_report'
]
