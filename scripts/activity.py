"""
Hourly, daily and weekday activity histograms over historical log events.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from log_events import EventKind, LogEvent, LogReader, parse_event_datetime

logger = logging.getLogger(__name__)

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
ACTIVITY_SCAN_LIMIT = 10000


@dataclass
class ActivitySnapshot:
    hourly_activity: dict[int, int]
    daily_activity: dict[str, int]
    weekday_activity: dict[str, int]
    most_active_hour: int
    most_active_day: str
    peak_players: int
    peak_players_date: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "hourlyActivity": self.hourly_activity,
            "dailyActivity": self.daily_activity,
            "weekdayActivity": self.weekday_activity,
            "mostActiveHour": self.most_active_hour,
            "mostActiveDay": self.most_active_day,
            "peakPlayers": self.peak_players,
            "peakPlayersDate": self.peak_players_date,
        }


def _first_max(counts: dict[Any, int]) -> Any:
    # max() keeps the first key on ties, in insertion order.
    return max(counts, key=counts.__getitem__)


def compute_activity(events: Iterable[LogEvent]) -> ActivitySnapshot:
    hourly = {hour: 0 for hour in range(24)}
    daily: dict[str, int] = {}
    weekday = {name: 0 for name in WEEKDAYS}
    joiners_by_date: dict[str, set[str]] = {}

    for event in events:
        try:
            moment = parse_event_datetime(event.full_date_time)
        except ValueError:
            logger.debug("Error parsing event date: %s", event.full_date_time)
            continue

        hourly[moment.hour] += 1
        daily[event.date] = daily.get(event.date, 0) + 1
        weekday[WEEKDAYS[moment.weekday()]] += 1

        # Distinct joiners per calendar date, not overlapping presence.
        if event.kind is EventKind.JOIN and event.player_name:
            joiners_by_date.setdefault(event.date, set()).add(event.player_name)

    peak_date = _first_max({d: len(names) for d, names in joiners_by_date.items()}) if joiners_by_date else None

    return ActivitySnapshot(
        hourly_activity=hourly,
        daily_activity=daily,
        weekday_activity=weekday,
        most_active_hour=_first_max(hourly),
        most_active_day=_first_max(weekday),
        peak_players=len(joiners_by_date[peak_date]) if peak_date else 0,
        peak_players_date=peak_date or "N/A",
    )


def activity_stats(reader: LogReader, days: int = 30) -> ActivitySnapshot:
    return compute_activity(reader.historical_events(days, ACTIVITY_SCAN_LIMIT))
