#!/usr/bin/env python3
"""
Minimal Minecraft RCON client (https://minecraft.wiki/w/RCON).

Usage:
    python scripts/rcon.py --host localhost --port 25575 --password secret list
Each call opens a fresh connection, authenticates, runs one command and closes.
"""
from __future__ import annotations

import argparse
import logging
import re
import socket
import struct
from dataclasses import dataclass

logger = logging.getLogger(__name__)

PACKET_TYPE_AUTH = 3
PACKET_TYPE_AUTH_RESPONSE = 2
PACKET_TYPE_COMMAND = 2
PACKET_TYPE_COMMAND_RESPONSE = 0

AUTH_REQUEST_ID = 1
COMMAND_REQUEST_ID = 2
AUTH_FAILED_ID = -1

DEFAULT_TIMEOUT = 5.0
# request id + type + two NUL terminators
MIN_PACKET_LENGTH = 10
MAX_PACKET_LENGTH = 4096 + MIN_PACKET_LENGTH

ROSTER_RE = re.compile(r"online: (.+)$")


class RconError(Exception):
    """Framing or transport problem during one exchange."""


@dataclass(frozen=True)
class RconPacket:
    request_id: int
    type: int
    payload: str


def encode_packet(packet: RconPacket) -> bytes:
    body = packet.payload.encode("ascii", errors="replace")
    if b"\x00" in body:
        raise RconError("payload must not contain NUL bytes")
    length = 4 + 4 + len(body) + 2
    return struct.pack("<iii", length, packet.request_id, packet.type) + body + b"\x00\x00"


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining:
        chunk = sock.recv(remaining)
        if not chunk:
            raise RconError(f"connection closed with {remaining} of {size} bytes unread")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_packet(sock: socket.socket) -> RconPacket:
    (length,) = struct.unpack("<i", _recv_exact(sock, 4))
    if not MIN_PACKET_LENGTH <= length <= MAX_PACKET_LENGTH:
        raise RconError(f"bad packet length {length}")
    data = _recv_exact(sock, length)
    request_id, packet_type = struct.unpack_from("<ii", data)
    payload = data[8:length - 2].decode("ascii", errors="replace")
    return RconPacket(request_id, packet_type, payload)


class RconClient:
    def __init__(self, host: str, port: int, password: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout

    def execute_command(self, command: str) -> str | None:
        """Authenticate and run ``command``; None on any failure."""
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout) as sock:
                sock.settimeout(self.timeout)
                sock.sendall(encode_packet(RconPacket(AUTH_REQUEST_ID, PACKET_TYPE_AUTH, self.password)))
                auth = read_packet(sock)
                if auth.request_id == AUTH_FAILED_ID:
                    logger.error("RCON authentication failed for %s:%s", self.host, self.port)
                    return None

                sock.sendall(encode_packet(RconPacket(COMMAND_REQUEST_ID, PACKET_TYPE_COMMAND, command)))
                return read_packet(sock).payload
        except (OSError, RconError, struct.error) as exc:
            logger.error("RCON error talking to %s:%s: %s", self.host, self.port, exc)
            return None

    def online_players(self) -> list[str] | None:
        response = self.execute_command("list")
        if response is None:
            return None
        return parse_online_roster(response)


def parse_online_roster(response: str) -> list[str]:
    """Names from a ``list`` reply such as ``... players online: Alice, Bob``."""
    match = ROSTER_RE.search(response)
    if not match:
        return []
    return [name.strip() for name in match.group(1).split(",") if name.strip()]


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one command over Minecraft RCON.")
    parser.add_argument("--host", default="localhost", help="RCON host")
    parser.add_argument("--port", type=int, default=25575, help="RCON port")
    parser.add_argument("--password", required=True, help="rcon.password from server.properties")
    parser.add_argument("command", nargs="+", help="Command to run, e.g. list")
    args = parser.parse_args()

    response = RconClient(args.host, args.port, args.password).execute_command(" ".join(args.command))
    if response is None:
        raise SystemExit("RCON command failed")
    print(response)


if __name__ == "__main__":
    main()
