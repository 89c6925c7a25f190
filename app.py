#!/usr/bin/env python3
"""
Flask app serving Minecraft log insights (events, sessions, activity, status) as JSON.

Usage:
    FLASK_APP=app.py FLASK_ENV=development flask run
Config:
    MINECRAFT_STATS_PATH: world stats directory, e.g. /data/world/stats (default);
        logs, server.properties and .rcon-cli.env are looked up next to the world
    RCON_HOST / RCON_PORT: RCON endpoint (default: minecraft.minecraft.svc.cluster.local:25575)
    ANALYSIS_CACHE_TTL: seconds to cache session/activity analysis (default: 300)
    STATUS_REFRESH_INTERVAL: seconds before the server status is fetched again (default: 30)
"""
from __future__ import annotations

import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

ROOT = Path(__file__).resolve().parent
SCRIPTS = ROOT / "scripts"
if str(SCRIPTS) not in sys.path:
    sys.path.insert(0, str(SCRIPTS))

from activity import activity_stats  # type: ignore  # noqa: E402
from live_feed import LiveEventFeed, RecentKeys  # type: ignore  # noqa: E402
from log_events import LogReader  # type: ignore  # noqa: E402
from server_status import (  # type: ignore  # noqa: E402
    DEFAULT_RCON_HOST,
    DEFAULT_RCON_PORT,
    DEFAULT_STATS_PATH,
    ServerPaths,
    StatusResolver,
)
from sessions import session_stats  # type: ignore  # noqa: E402

app = Flask(__name__)

_CACHE: dict[str, dict[str, Any]] = {}
_FEEDS: dict[Path, LiveEventFeed] = {}
_RESOLVERS: dict[tuple[ServerPaths, str, int], StatusResolver] = {}
_BROADCAST_KEYS = RecentKeys()

MAX_DAYS = 90
MAX_LIMIT = 2000


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def get_stats_path() -> str:
    return os.getenv("MINECRAFT_STATS_PATH", DEFAULT_STATS_PATH)


def get_paths() -> ServerPaths:
    return ServerPaths.from_stats_path(get_stats_path())


def get_cache_ttl() -> int:
    return _env_int("ANALYSIS_CACHE_TTL", 300)


def get_reader() -> LogReader:
    return LogReader(get_paths().logs_dir)


def get_status_refresh_interval() -> int:
    return _env_int("STATUS_REFRESH_INTERVAL", 30)


def get_resolver() -> StatusResolver:
    key = (get_paths(), os.getenv("RCON_HOST", DEFAULT_RCON_HOST), _env_int("RCON_PORT", DEFAULT_RCON_PORT))
    resolver = _RESOLVERS.get(key)
    if resolver is None:
        paths, host, port = key
        resolver = _RESOLVERS[key] = StatusResolver(paths, rcon_host=host, rcon_port=port)
    return resolver


def get_feed() -> LiveEventFeed:
    logs_dir = get_paths().logs_dir
    feed = _FEEDS.get(logs_dir)
    if feed is None:
        feed = _FEEDS[logs_dir] = LiveEventFeed(LogReader(logs_dir), keys=_BROADCAST_KEYS)
    return feed


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _arg_int(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def cached(key: str, loader: Callable[[], Any]) -> Any:
    now = time.time()
    entry = _CACHE.get(key)
    if entry and (now - entry["ts"]) < get_cache_ttl():
        return entry["data"]

    data = loader()
    _CACHE[key] = {"data": data, "ts": now}
    return data


@app.route("/api/status")
def api_status():
    return jsonify(get_resolver().server_status(max_age=get_status_refresh_interval()).to_dict())


@app.route("/api/events")
def api_events():
    events = get_reader().recent_events(_clamp(_arg_int("limit", 50), 1, MAX_LIMIT))
    return jsonify([e.to_dict() for e in events])


@app.route("/api/chat")
def api_chat():
    events = get_reader().recent_chat(_clamp(_arg_int("limit", 30), 1, MAX_LIMIT))
    return jsonify([e.to_dict() for e in events])


@app.route("/api/events/history")
def api_events_history():
    days = _clamp(_arg_int("days", 30), 1, MAX_DAYS)
    limit = _clamp(_arg_int("limit", 500), 1, MAX_LIMIT)
    return jsonify([e.to_dict() for e in get_reader().historical_events(days, limit)])


@app.route("/api/chat/history")
def api_chat_history():
    days = _clamp(_arg_int("days", 30), 1, MAX_DAYS)
    limit = _clamp(_arg_int("limit", 500), 1, MAX_LIMIT)
    return jsonify([e.to_dict() for e in get_reader().historical_chat(days, limit)])


@app.route("/api/sessions")
def api_sessions():
    days = _clamp(_arg_int("days", 30), 1, MAX_DAYS)
    stats = cached(f"sessions:{get_stats_path()}:{days}", lambda: session_stats(get_reader(), days).to_dict())
    return jsonify(stats)


@app.route("/api/activity")
def api_activity():
    days = _clamp(_arg_int("days", 30), 1, MAX_DAYS)
    stats = cached(f"activity:{get_stats_path()}:{days}", lambda: activity_stats(get_reader(), days).to_dict())
    return jsonify(stats)


@app.route("/api/events/live")
def api_events_live():
    return jsonify([e.to_dict() for e in get_feed().poll()])


@app.route("/api/health")
def api_health():
    return jsonify({"status": "UP"})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(debug=True, host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
