#!/usr/bin/env python3
"""
Classify Minecraft server console lines into typed events.

Usage:
    python scripts/log_events.py logs/ --days 7 --limit 200 [--chat]
Reads `latest.log` as today's log and `YYYY-MM-DD-N.log.gz` archives as older days.
"""
from __future__ import annotations

import argparse
import enum
import gzip
import json
import logging
import re
import zlib
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Iterable, Iterator
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

SERVER_TIMEZONE = ZoneInfo("Europe/Madrid")
DATE_FORMAT = "%d/%m/%Y"
DATE_TIME_FORMAT = "%d/%m/%Y %H:%M:%S"
LIVE_LOG_NAME = "latest.log"

TIMESTAMP_RE = re.compile(r"\[(?P<time>\d{2}:\d{2}:\d{2})\]")
CHAT_RE = re.compile(r"\[Server thread/INFO\]: (?:\[Not Secure\] )?<(?P<player>\w+)> (?P<text>.+)")
JOIN_RE = re.compile(r"\[Server thread/INFO\]: (?P<player>\w+)\[.+\] logged in")
LEAVE_RE = re.compile(r"\[Server thread/INFO\]: (?P<player>\w+) left the game")
DEATH_RE = re.compile(
    r"\[Server thread/INFO\]: (?P<player>\w+) (?P<cause>"
    r"was slain|was killed|drowned|fell|burned|starved|died|blew up|hit the ground|"
    r"went up in flames|walked into|tried to swim|was shot|was pummeled|was fireballed|"
    r"was impaled|was squashed|was skewered|was pricked|suffocated|experienced kinetic|"
    r"was blown up|was struck|withered"
    r")"
)
ADVANCEMENT_RE = re.compile(
    r"\[Server thread/INFO\]: (?P<player>\w+) has "
    r"(?:made the advancement|completed the challenge|reached the goal) \[(?P<title>.+)\]"
)
ARCHIVE_NAME_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})-(?P<index>\d+)\.log\.gz$")

MESSAGE_MARKER = "INFO]: "


class EventKind(str, enum.Enum):
    CHAT = "CHAT"
    JOIN = "JOIN"
    LEAVE = "LEAVE"
    DEATH = "DEATH"
    ADVANCEMENT = "ADVANCEMENT"
    OTHER = "OTHER"


@dataclass(frozen=True)
class LogEvent:
    timestamp: str
    full_date_time: str
    date: str
    kind: EventKind
    player_name: str | None
    message: str
    raw_line: str

    def to_dict(self) -> dict[str, str | None]:
        return {
            "timestamp": self.timestamp,
            "fullDateTime": self.full_date_time,
            "date": self.date,
            "type": self.kind.value,
            "playerName": self.player_name,
            "message": self.message,
            "rawLine": self.raw_line,
        }


def _after_marker(line: str) -> str:
    _, sep, rest = line.partition(MESSAGE_MARKER)
    return rest if sep else line


@dataclass(frozen=True)
class LineShape:
    """One line shape: a pattern plus how its match becomes a message."""

    kind: EventKind
    pattern: re.Pattern[str]
    render: Callable[[re.Match[str], str], str]

    def match(self, line: str) -> tuple[str, str] | None:
        found = self.pattern.search(line)
        if not found:
            return None
        return found.group("player"), self.render(found, line)


# Evaluated in order; the first shape that matches wins.
LINE_SHAPES: tuple[LineShape, ...] = (
    LineShape(EventKind.CHAT, CHAT_RE, lambda m, line: m.group("text")),
    LineShape(EventKind.JOIN, JOIN_RE, lambda m, line: f"{m.group('player')} joined the game"),
    LineShape(EventKind.LEAVE, LEAVE_RE, lambda m, line: f"{m.group('player')} left the game"),
    LineShape(EventKind.DEATH, DEATH_RE, lambda m, line: _after_marker(line)),
    LineShape(
        EventKind.ADVANCEMENT,
        ADVANCEMENT_RE,
        lambda m, line: f"{m.group('player')} earned [{m.group('title')}]",
    ),
)


def classify_line(line: str, log_date: date) -> LogEvent | None:
    """Turn one console line into an event dated ``log_date``.

    Returns None when the line carries no ``[HH:MM:SS]`` timestamp.
    """
    line = line.rstrip("\r\n")
    ts_match = TIMESTAMP_RE.search(line)
    if not ts_match:
        return None
    clock = ts_match.group("time")
    day = log_date.strftime(DATE_FORMAT)

    kind, player, message = EventKind.OTHER, None, _after_marker(line)
    for shape in LINE_SHAPES:
        matched = shape.match(line)
        if matched:
            kind = shape.kind
            player, message = matched
            break

    return LogEvent(
        timestamp=clock,
        full_date_time=f"{day} {clock}",
        date=day,
        kind=kind,
        player_name=player,
        message=message,
        raw_line=line,
    )


def parse_event_datetime(value: str) -> datetime:
    """Parse a stored ``full_date_time`` back into an aware datetime."""
    return datetime.strptime(value, DATE_TIME_FORMAT).replace(tzinfo=SERVER_TIMEZONE)


def archive_date(path: Path) -> date | None:
    match = ARCHIVE_NAME_RE.match(path.name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group("date"), "%Y-%m-%d").date()
    except ValueError:
        return None


def archive_index(path: Path) -> int:
    """Rotation number of an archive name, 0 when the name does not match."""
    match = ARCHIVE_NAME_RE.match(path.name)
    return int(match.group("index")) if match else 0


def _classify_all(lines: Iterable[str], log_date: date) -> Iterator[LogEvent]:
    for line in lines:
        event = classify_line(line, log_date)
        if event is not None:
            yield event


def _read_archive(path: Path) -> list[str]:
    with gzip.open(path, "rt", encoding="utf-8", errors="ignore") as fh:
        return fh.readlines()


class LogReader:
    """Reads the live log and its rotated archives from one logs directory."""

    def __init__(
        self,
        logs_dir: Path,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.logs_dir = Path(logs_dir)
        self._today = today or (lambda: datetime.now(SERVER_TIMEZONE).date())

    @property
    def live_log(self) -> Path:
        return self.logs_dir / LIVE_LOG_NAME

    def today(self) -> date:
        return self._today()

    def _live_lines(self, max_lines: int | None = None) -> list[str]:
        path = self.live_log
        if not path.is_file():
            logger.warning("Latest log not found: %s", path)
            return []
        try:
            with path.open("r", encoding="utf-8", errors="ignore") as fh:
                if max_lines is None:
                    return fh.readlines()
                return list(deque(fh, maxlen=max_lines))
        except OSError as exc:
            logger.warning("Error reading %s: %s", path, exc)
            return []

    def recent_logs(self, max_lines: int = 100) -> list[LogEvent]:
        """Classify the last ``max_lines`` lines of the live log, any kind."""
        return list(_classify_all(self._live_lines(max_lines), self.today()))

    def recent_events(self, max_events: int = 50) -> list[LogEvent]:
        events = [e for e in self.recent_logs(500) if e.kind is not EventKind.OTHER]
        return _take_last(events, max_events)

    def recent_chat(self, max_messages: int = 30) -> list[LogEvent]:
        events = [e for e in self.recent_logs(500) if e.kind is EventKind.CHAT]
        return _take_last(events, max_messages)

    def archives(self, days: int) -> list[tuple[Path, date]]:
        """Archives dated on or after ``today - days``, oldest first.

        Same-day rotations are ordered by their numeric suffix, so ``-2`` comes before ``-10``.
        """
        if not self.logs_dir.is_dir():
            logger.warning("Logs directory not found: %s", self.logs_dir)
            return []
        cutoff = self.today() - timedelta(days=days)
        selected: list[tuple[date, int, Path]] = []
        try:
            for child in self.logs_dir.iterdir():
                log_date = archive_date(child)
                if log_date is None:
                    if child.name.endswith(".gz"):
                        logger.debug("Skipping archive with unexpected name: %s", child.name)
                    continue
                if log_date >= cutoff and child.is_file():
                    selected.append((log_date, archive_index(child), child))
        except OSError as exc:
            logger.warning("Error listing %s: %s", self.logs_dir, exc)
            return []
        selected.sort(key=lambda item: (item[0], item[1]))
        return [(path, log_date) for log_date, _, path in selected]

    def scan(self, days: int) -> Iterator[LogEvent]:
        """Every event of the window: archives in order, then the live log."""
        for path, log_date in self.archives(days):
            try:
                lines = _read_archive(path)
            except (OSError, EOFError, zlib.error) as exc:
                logger.warning("Skipping unreadable archive %s: %s", path.name, exc)
                continue
            yield from _classify_all(lines, log_date)
        yield from _classify_all(self._live_lines(), self.today())

    def historical_events(self, days: int = 30, max_events: int = 500) -> list[LogEvent]:
        events = [e for e in self.scan(days) if e.kind is not EventKind.OTHER]
        return _take_last(events, max_events)

    def historical_chat(self, days: int = 30, max_messages: int = 500) -> list[LogEvent]:
        events = [e for e in self.scan(days) if e.kind is EventKind.CHAT]
        return _take_last(events, max_messages)


def _take_last(events: list[LogEvent], limit: int) -> list[LogEvent]:
    if limit <= 0:
        return []
    return events[-limit:]


def main() -> None:
    parser = argparse.ArgumentParser(description="Print classified Minecraft log events as JSON.")
    parser.add_argument("logs_dir", type=Path, help="Directory holding latest.log and .log.gz archives.")
    parser.add_argument("--days", type=int, default=1, help="How many days of archives to include.")
    parser.add_argument("--limit", type=int, default=100, help="Keep only the newest N events.")
    parser.add_argument("--chat", action="store_true", help="Only chat messages.")
    args = parser.parse_args()

    reader = LogReader(args.logs_dir)
    if args.chat:
        events = reader.historical_chat(args.days, args.limit)
    else:
        events = reader.historical_events(args.days, args.limit)
    print(json.dumps([event.to_dict() for event in events], indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
