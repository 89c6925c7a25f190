from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SCRIPTS = ROOT / "scripts"
if str(SCRIPTS) not in sys.path:
    sys.path.insert(0, str(SCRIPTS))

from log_events import LogReader  # type: ignore  # noqa: E402
from server_status import (  # type: ignore  # noqa: E402
    ServerPaths,
    StatusResolver,
    load_server_properties,
    read_rcon_password,
    read_server_version,
    roster_from_logs,
    server_root,
)

LIVE_LOG = """\
[10:00:00] [Server thread/INFO]: Alice[/1.1.1.1:1] logged in with entity id 1 at (0, 0, 0)
[10:01:00] [Server thread/INFO]: Bob[/2.2.2.2:2] logged in with entity id 2 at (0, 0, 0)
[10:02:00] [Server thread/INFO]: <Bob> hi
[10:03:00] [Server thread/INFO]: Alice left the game
[10:04:00] [Server thread/INFO]: Carol[/3.3.3.3:3] logged in with entity id 3 at (0, 0, 0)
[10:05:00] [Server thread/INFO]: Dave left the game
"""


class FakeRcon:
    calls: list[tuple[str, int, str]] = []
    names: list[str] | None = None

    def __init__(self, host: str, port: int, password: str) -> None:
        FakeRcon.calls.append((host, port, password))

    def online_players(self) -> list[str] | None:
        return FakeRcon.names


@pytest.fixture()
def server_dir(tmp_path: Path) -> Path:
    root = tmp_path / "server"
    logs = root / "logs"
    logs.mkdir(parents=True)
    (logs / "latest.log").write_text(LIVE_LOG, encoding="utf-8")
    FakeRcon.calls = []
    FakeRcon.names = None
    return root


def make_resolver(root: Path) -> StatusResolver:
    paths = ServerPaths(root)
    return StatusResolver(
        paths,
        reader=LogReader(paths.logs_dir, today=lambda: date(2024, 1, 1)),
        rcon_host="rcon.test",
        rcon_port=25575,
        rcon_factory=FakeRcon,
    )


def test_server_root_strips_world_suffix() -> None:
    assert server_root("/data/world/stats") == Path("/data")
    assert server_root("/minecraft-data/world/stats") == Path("/minecraft-data")
    assert server_root("/srv/mc") == Path("/srv/mc")


def test_read_rcon_password(tmp_path: Path) -> None:
    env = tmp_path / ".rcon-cli.env"
    assert read_rcon_password(env) is None
    env.write_text("RCON_PORT=25575\nRCON_PASSWORD=hunter2\n", encoding="utf-8")
    assert read_rcon_password(env) == "hunter2"
    env.write_text("RCON_PORT=25575\n", encoding="utf-8")
    assert read_rcon_password(env) is None


def test_server_properties_and_version(tmp_path: Path) -> None:
    props = tmp_path / "server.properties"
    props.write_text("#Minecraft server properties\nmax-players=10\nmotd=Hello world\n", encoding="utf-8")
    assert load_server_properties(props) == {"max-players": "10", "motd": "Hello world"}
    assert load_server_properties(tmp_path / "missing") == {}

    manifest = tmp_path / ".fabric-manifest.json"
    assert read_server_version(manifest) == "Unknown"
    manifest.write_text('{"version": "0.16.9"}', encoding="utf-8")
    assert read_server_version(manifest) == "Fabric 0.16.9"
    manifest.write_text("{broken", encoding="utf-8")
    assert read_server_version(manifest) == "Unknown"


def test_roster_from_logs(server_dir: Path) -> None:
    reader = LogReader(server_dir / "logs", today=lambda: date(2024, 1, 1))
    roster = roster_from_logs(reader)
    assert [(p.name, p.joined_at) for p in roster] == [("Bob", "10:01:00"), ("Carol", "10:04:00")]


def test_no_password_uses_logs(server_dir: Path) -> None:
    resolver = make_resolver(server_dir)
    assert resolver.online_roster() == ["Bob", "Carol"]
    assert FakeRcon.calls == []


def test_rcon_roster_is_authoritative(server_dir: Path) -> None:
    (server_dir / ".rcon-cli.env").write_text("RCON_PASSWORD=secret\n", encoding="utf-8")
    FakeRcon.names = ["Zed"]
    resolver = make_resolver(server_dir)
    assert resolver.online_roster() == ["Zed"]
    assert FakeRcon.calls == [("rcon.test", 25575, "secret")]


def test_rcon_failure_falls_back_to_logs(server_dir: Path) -> None:
    (server_dir / ".rcon-cli.env").write_text("RCON_PASSWORD=secret\n", encoding="utf-8")
    FakeRcon.names = None
    players, source = make_resolver(server_dir).online_players()
    assert [p.name for p in players] == ["Bob", "Carol"]
    assert source == "logs"


def test_refresh_status(server_dir: Path) -> None:
    (server_dir / "server.properties").write_text("max-players=8\nmotd=Test\n", encoding="utf-8")
    resolver = make_resolver(server_dir)
    status = resolver.refresh_status()
    assert status.online is True
    assert status.player_count == 2
    assert status.max_players == 8
    assert status.motd == "Test"
    assert status.version == "Unknown"
    assert status.source == "logs"
    assert resolver.server_status() is status

    data = status.to_dict()
    assert data["onlinePlayers"][0] == {"name": "Bob", "uuid": None, "joinedAt": "10:01:00"}


def test_bad_max_players_uses_default(server_dir: Path) -> None:
    (server_dir / "server.properties").write_text("max-players=lots\n", encoding="utf-8")
    assert make_resolver(server_dir).refresh_status().max_players == 20


def test_missing_server_dir_is_empty(tmp_path: Path) -> None:
    resolver = make_resolver(tmp_path / "nothing")
    status = resolver.refresh_status()
    assert status.player_count == 0
    assert status.online_players == []


def test_rejoin_keeps_roster_position(tmp_path: Path) -> None:
    logs = tmp_path / "logs"
    logs.mkdir()
    (logs / "latest.log").write_text(
        "[10:00:00] [Server thread/INFO]: Alice[/1.1.1.1:1] logged in with entity id 1 at (0, 0, 0)\n"
        "[10:01:00] [Server thread/INFO]: Bob[/2.2.2.2:2] logged in with entity id 2 at (0, 0, 0)\n"
        "[10:02:00] [Server thread/INFO]: Alice[/1.1.1.1:1] logged in with entity id 3 at (0, 0, 0)\n",
        encoding="utf-8",
    )
    roster = roster_from_logs(LogReader(logs, today=lambda: date(2024, 1, 1)))
    assert [(p.name, p.joined_at) for p in roster] == [("Alice", "10:02:00"), ("Bob", "10:01:00")]


def test_server_status_reuses_fresh_status(server_dir: Path) -> None:
    (server_dir / ".rcon-cli.env").write_text("RCON_PASSWORD=secret\n", encoding="utf-8")
    FakeRcon.names = ["Zed"]
    resolver = make_resolver(server_dir)

    first = resolver.server_status(max_age=30)
    assert resolver.server_status(max_age=30) is first
    assert len(FakeRcon.calls) == 1

    refreshed = resolver.server_status(max_age=0)
    assert refreshed is not first
    assert len(FakeRcon.calls) == 2
