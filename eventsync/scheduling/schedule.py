"""
eventsync.scheduling.schedule

Scheduling semantics for recurring jobs.
Supports interval-based and cron-based schedules.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any

from croniter import croniter


@dataclass(frozen=True)
class Schedule:
    type: str  # "interval" | "cron"
    value: str | int

    def summary(self) -> str:
        return f"{self.type}: {self.value}"

    def next_after(self, base: datetime.datetime) -> datetime.datetime:
        """Return the first run time strictly after ``base``."""
        if self.type == "interval":
            return base + datetime.timedelta(seconds=int(self.value))
        return croniter(str(self.value), base).get_next(datetime.datetime)


def parse_schedule(config: dict[str, Any]) -> Schedule | None:
    """
    Parse schedule from config dict.
    Expected formats:
      {"frequency": "1h"}
      {"frequency": "3600"} (seconds)
      {"frequency": "0 0 * * *"} (cron)
    """
    freq = config.get("frequency")
    if freq is None:
        return None

    if isinstance(freq, int):
        return Schedule(type="interval", value=freq) if freq > 0 else None

    s_freq = str(freq).strip()
    if not s_freq:
        return None

    # Try interval parsing (e.g., "1h", "30m", "10s")
    seconds = None
    if s_freq.endswith("h") and s_freq[:-1].isdigit():
        seconds = int(s_freq[:-1]) * 3600
    elif s_freq.endswith("m") and s_freq[:-1].isdigit():
        seconds = int(s_freq[:-1]) * 60
    elif s_freq.endswith("s") and s_freq[:-1].isdigit():
        seconds = int(s_freq[:-1])
    elif s_freq.isdigit():
        seconds = int(s_freq)
    if seconds is not None:
        return Schedule(type="interval", value=seconds) if seconds > 0 else None

    # Otherwise assume cron
    if len(s_freq.split()) == 5 and croniter.is_valid(s_freq):
        return Schedule(type="cron", value=s_freq)

    return None


def next_run_times(
    schedule: Schedule, start_ts: float, n: int = 5, tz: datetime.tzinfo = datetime.timezone.utc
) -> list[datetime.datetime]:
    """
    Calculate next N run times starting from start_ts.
    """
    out = []
    current = datetime.datetime.fromtimestamp(start_ts, tz=tz)
    for _ in range(n):
        current = schedule.next_after(current)
        out.append(current)
    return out
