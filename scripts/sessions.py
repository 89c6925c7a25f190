"""
Rebuild player sessions from an ordered stream of log events.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from log_events import EventKind, LogEvent, LogReader, parse_event_datetime

logger = logging.getLogger(__name__)

ONLINE_LABEL = "online"
RECENT_SESSIONS = 20
SESSION_SCAN_LIMIT = 5000


@dataclass(frozen=True)
class PlayerSession:
    player_name: str
    join_time: str
    join_timestamp: int
    leave_time: str | None
    leave_timestamp: int | None
    duration_minutes: int | None
    duration_formatted: str
    player_uuid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerName": self.player_name,
            "playerUuid": self.player_uuid,
            "joinTime": self.join_time,
            "joinTimestamp": self.join_timestamp,
            "leaveTime": self.leave_time,
            "leaveTimestamp": self.leave_timestamp,
            "durationMinutes": self.duration_minutes,
            "durationFormatted": self.duration_formatted,
        }


@dataclass
class SessionStats:
    total_sessions: int = 0
    average_session_minutes: int = 0
    average_session_formatted: str = "< 1 min"
    longest_session: PlayerSession | None = None
    recent_sessions: list[PlayerSession] = field(default_factory=list)
    sessions_by_player: dict[str, list[PlayerSession]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSessions": self.total_sessions,
            "averageSessionMinutes": self.average_session_minutes,
            "averageSessionFormatted": self.average_session_formatted,
            "longestSession": self.longest_session.to_dict() if self.longest_session else None,
            "recentSessions": [s.to_dict() for s in self.recent_sessions],
            "sessionsByPlayer": {
                player: [s.to_dict() for s in sessions]
                for player, sessions in self.sessions_by_player.items()
            },
        }


def format_duration(minutes: int) -> str:
    if minutes < 1:
        return "< 1 min"
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if mins else f"{hours}h"


def epoch_millis(full_date_time: str) -> int:
    return int(parse_event_datetime(full_date_time).timestamp() * 1000)


def _close(join: LogEvent, join_ms: int, end: LogEvent, end_ms: int, closed_by_new_join: bool) -> PlayerSession:
    minutes = (end_ms - join_ms) // 60000 if end_ms > join_ms else 0
    return PlayerSession(
        player_name=join.player_name or "Unknown",
        join_time=join.full_date_time,
        join_timestamp=join_ms,
        # A new join only tells us the player was gone by then, not when they left.
        leave_time=None if closed_by_new_join else end.full_date_time,
        leave_timestamp=None if closed_by_new_join else end_ms,
        duration_minutes=minutes,
        duration_formatted=format_duration(minutes),
    )


def build_sessions(events: Iterable[LogEvent]) -> list[PlayerSession]:
    """Pair joins with leaves, in the order the sessions close.

    Orphan leaves are dropped; joins still open at the end of the stream
    become sessions without a leave.
    """
    sessions: list[PlayerSession] = []
    open_joins: dict[str, tuple[LogEvent, int]] = {}

    for event in events:
        if event.kind not in (EventKind.JOIN, EventKind.LEAVE) or not event.player_name:
            continue
        try:
            event_ms = epoch_millis(event.full_date_time)
        except ValueError:
            logger.debug("Skipping event with unparseable time: %s", event.full_date_time)
            continue

        player = event.player_name
        if event.kind is EventKind.JOIN:
            previous = open_joins.get(player)
            if previous:
                sessions.append(_close(previous[0], previous[1], event, event_ms, closed_by_new_join=True))
            open_joins[player] = (event, event_ms)
        else:
            previous = open_joins.pop(player, None)
            if previous:
                sessions.append(_close(previous[0], previous[1], event, event_ms, closed_by_new_join=False))

    for player, (join, join_ms) in open_joins.items():
        sessions.append(
            PlayerSession(
                player_name=player,
                join_time=join.full_date_time,
                join_timestamp=join_ms,
                leave_time=None,
                leave_timestamp=None,
                duration_minutes=None,
                duration_formatted=ONLINE_LABEL,
            )
        )
    return sessions


def summarize_sessions(sessions: list[PlayerSession], recent: int = RECENT_SESSIONS) -> SessionStats:
    completed = [s for s in sessions if s.duration_minutes is not None and s.duration_minutes > 0]
    average = int(sum(s.duration_minutes for s in completed) / len(completed)) if completed else 0
    longest = max(completed, key=lambda s: s.duration_minutes) if completed else None

    by_player: dict[str, list[PlayerSession]] = {}
    for session in sessions:
        by_player.setdefault(session.player_name, []).append(session)

    return SessionStats(
        total_sessions=len(sessions),
        average_session_minutes=average,
        average_session_formatted=format_duration(average),
        longest_session=longest,
        recent_sessions=list(reversed(sessions[-recent:])) if recent > 0 else [],
        sessions_by_player=by_player,
    )


def session_stats(reader: LogReader, days: int = 30) -> SessionStats:
    events = reader.historical_events(days, SESSION_SCAN_LIMIT)
    return summarize_sessions(build_sessions(events))
