"""
Online roster and server status: RCON first, the live log as fallback.
"""
from __future__ import annotations

import json
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from log_events import EventKind, LogReader
from rcon import RconClient

logger = logging.getLogger(__name__)

DEFAULT_STATS_PATH = "/data/world/stats"
DEFAULT_RCON_HOST = "minecraft.minecraft.svc.cluster.local"
DEFAULT_RCON_PORT = 25575
DEFAULT_MAX_PLAYERS = 20
FALLBACK_SCAN_LINES = 200

PASSWORD_RE = re.compile(r"RCON_PASSWORD=(.+)")


def server_root(stats_path: str) -> Path:
    """``/data/world/stats`` -> ``/data``."""
    head, sep, _ = stats_path.rpartition("/world")
    return Path(head if sep else stats_path)


@dataclass(frozen=True)
class ServerPaths:
    root: Path

    @classmethod
    def from_stats_path(cls, stats_path: str) -> "ServerPaths":
        return cls(server_root(stats_path))

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def rcon_env(self) -> Path:
        return self.root / ".rcon-cli.env"

    @property
    def server_properties(self) -> Path:
        return self.root / "server.properties"

    @property
    def fabric_manifest(self) -> Path:
        return self.root / ".fabric-manifest.json"


@dataclass(frozen=True)
class OnlinePlayer:
    name: str
    uuid: str | None = None
    joined_at: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"name": self.name, "uuid": self.uuid, "joinedAt": self.joined_at}


@dataclass
class ServerStatus:
    online: bool
    player_count: int
    max_players: int
    online_players: list[OnlinePlayer] = field(default_factory=list)
    motd: str = ""
    version: str = "Unknown"
    source: str = "logs"
    last_updated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "online": self.online,
            "playerCount": self.player_count,
            "maxPlayers": self.max_players,
            "onlinePlayers": [p.to_dict() for p in self.online_players],
            "motd": self.motd,
            "version": self.version,
            "source": self.source,
            "lastUpdated": self.last_updated,
        }


def read_rcon_password(path: Path) -> str | None:
    if not path.is_file():
        return None
    try:
        content = path.read_text(encoding="utf-8", errors="ignore")
    except OSError as exc:
        logger.warning("Could not read RCON password: %s", exc)
        return None
    match = PASSWORD_RE.search(content)
    if not match:
        return None
    return match.group(1).strip() or None


def load_server_properties(path: Path) -> dict[str, str]:
    props: dict[str, str] = {}
    if not path.is_file():
        return props
    try:
        lines = path.read_text(encoding="utf-8", errors="ignore").splitlines()
    except OSError as exc:
        logger.error("Error loading server.properties: %s", exc)
        return props
    for line in lines:
        line = line.strip()
        if not line or line[0] in "#!":
            continue
        key, sep, value = line.partition("=")
        if sep:
            props[key.strip()] = value.strip()
    return props


def read_server_version(path: Path) -> str:
    if not path.is_file():
        return "Unknown"
    try:
        manifest = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read fabric manifest: %s", exc)
        return "Unknown"
    version = manifest.get("version") if isinstance(manifest, dict) else None
    return f"Fabric {version}" if version else "Unknown"


def roster_from_logs(reader: LogReader, max_lines: int = FALLBACK_SCAN_LINES) -> list[OnlinePlayer]:
    """Approximate roster: last join per player, dropped again on leave."""
    online: dict[str, OnlinePlayer] = {}
    for event in reader.recent_logs(max_lines):
        if not event.player_name:
            continue
        if event.kind is EventKind.JOIN:
            online[event.player_name] = OnlinePlayer(event.player_name, joined_at=event.timestamp)
        elif event.kind is EventKind.LEAVE:
            online.pop(event.player_name, None)
    return list(online.values())


class StatusResolver:
    def __init__(
        self,
        paths: ServerPaths,
        reader: LogReader | None = None,
        rcon_host: str = DEFAULT_RCON_HOST,
        rcon_port: int = DEFAULT_RCON_PORT,
        rcon_factory: Callable[[str, int, str], RconClient] = RconClient,
    ) -> None:
        self.paths = paths
        self.reader = reader or LogReader(paths.logs_dir)
        self.rcon_host = rcon_host
        self.rcon_port = rcon_port
        self._rcon_factory = rcon_factory
        self._lock = threading.Lock()
        self._cached: ServerStatus | None = None

    def _players_via_rcon(self) -> list[OnlinePlayer] | None:
        password = read_rcon_password(self.paths.rcon_env)
        if password is None:
            return None
        names = self._rcon_factory(self.rcon_host, self.rcon_port, password).online_players()
        if names is None:
            logger.warning("Could not get online players via RCON")
            return None
        return [OnlinePlayer(name) for name in names]

    def online_players(self) -> tuple[list[OnlinePlayer], str]:
        players = self._players_via_rcon()
        if players is not None:
            return players, "rcon"
        return roster_from_logs(self.reader), "logs"

    def online_roster(self) -> list[str]:
        players, _ = self.online_players()
        return [p.name for p in players]

    def refresh_status(self) -> ServerStatus:
        players, source = self.online_players()
        props = load_server_properties(self.paths.server_properties)
        try:
            max_players = int(props.get("max-players", DEFAULT_MAX_PLAYERS))
        except ValueError:
            max_players = DEFAULT_MAX_PLAYERS
        status = ServerStatus(
            online=True,
            player_count=len(players),
            max_players=max_players,
            online_players=players,
            motd=props.get("motd", ""),
            version=read_server_version(self.paths.fabric_manifest),
            source=source,
            last_updated=int(time.time() * 1000),
        )
        with self._lock:
            self._cached = status
        return status

    def server_status(self, max_age: float | None = None) -> ServerStatus:
        """Last status, refreshed when there is none or it is older than ``max_age`` seconds."""
        with self._lock:
            cached = self._cached
        if cached is None:
            return self.refresh_status()
        if max_age is not None and time.time() * 1000 - cached.last_updated >= max_age * 1000:
            return self.refresh_status()
        return cached
