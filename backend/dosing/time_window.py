from dataclasses import dataclass

from backend.api.validation import parse_clock

@dataclass(frozen=True)
class TimeWindow:
    """A profile's daily waking window, in hours from midnight"""
    wake_hour: int
    wake_minute: int
    sleep_hour: int
    sleep_minute: int

    @property
    def effective_sleep_hour(self) -> int:
        # Sleeping past midnight is modelled as an hour beyond 24
        if self.sleep_hour < self.wake_hour:
            return self.sleep_hour + 24
        return self.sleep_hour

    @property
    def duration(self) -> int:
        """Waking hours available to spread times-a-day doses over"""
        return self.effective_sleep_hour - self.wake_hour

def resolve_window(wake_time: str, sleep_time: str) -> TimeWindow:
    """
    Resolve wake/sleep clock strings into a TimeWindow.
    Raises ValidationError for unparseable times.
    """
    wake_hour, wake_minute = parse_clock(wake_time, "wake_time")
    sleep_hour, sleep_minute = parse_clock(sleep_time, "sleep_time")
    return TimeWindow(wake_hour, wake_minute, sleep_hour, sleep_minute)
