from __future__ import annotations

import re
from datetime import UTC, datetime

from .models import Credential

LOGIN_REGEX = re.compile(r"^(\w+?)/+(\w+)$")
DEFAULT_HTTP_PORT = 80


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def parse_login(raw: str) -> Credential | None:
    match = LOGIN_REGEX.match(raw.strip())
    if not match:
        return None
    return Credential(username=match.group(1), password=match.group(2))


def split_host_port(url: str) -> tuple[str, int]:
    host, sep, port = url.strip().rpartition(":")
    if not sep:
        return url.strip(), DEFAULT_HTTP_PORT
    if not port.isdigit():
        raise ValueError(f"Invalid port in panel url: {url!r}")
    return host, int(port)
