from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ResultKind(str, Enum):
    SUCCESS = "success"
    AUTH_ERROR = "autherror"
    TIMEOUT = "timeout"
    ERROR = "error"


class TransportErrorCode(str, Enum):
    HOST_UNREACHABLE = "EHOSTUNREACH"
    CONNECTION_REFUSED = "ECONNREFUSED"
    TIMED_OUT = "ETIMEDOUT"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class Credential:
    username: str
    password: str


@dataclass(frozen=True, slots=True)
class Panel:
    storage_name: str
    storage_id: str
    storage_code: str
    url: str
    logins: tuple[str, ...]
    panel_id: int


@dataclass(frozen=True, slots=True)
class ConnectionResult:
    """Outcome of a single probe attempt.

    ``error_code`` holds the transport errno name for ``error`` results. It is a
    plain string so that codes outside :class:`TransportErrorCode` survive for
    logging.
    """

    result: ResultKind
    data: bytes | None = None
    latency_ms: int | None = None
    error_code: str | None = None
    error_detail: str | None = None

    @classmethod
    def success(cls, data: bytes, latency_ms: int) -> ConnectionResult:
        return cls(ResultKind.SUCCESS, data=data, latency_ms=latency_ms)

    @classmethod
    def auth_error(cls, latency_ms: int) -> ConnectionResult:
        return cls(ResultKind.AUTH_ERROR, latency_ms=latency_ms)

    @classmethod
    def timeout(cls) -> ConnectionResult:
        return cls(ResultKind.TIMEOUT)

    @classmethod
    def error(cls, error_code: str, error_detail: str | None = None) -> ConnectionResult:
        return cls(ResultKind.ERROR, error_code=error_code, error_detail=error_detail)

    def to_blob(self) -> dict[str, Any]:
        blob: dict[str, Any] = {"result": self.result.value, "latency": self.latency_ms}
        if self.error_code is not None:
            blob["error"] = {"code": self.error_code, "message": self.error_detail}
        return blob


@dataclass(slots=True)
class ConnectionAttempt:
    credential: Credential
    host: str
    port: int
    path: str
    timeout_seconds: float
    result: ConnectionResult | None = None


@dataclass(slots=True)
class ResultRecord:
    storage_id: int
    storage_code: str
    query_time: str
    response_bytes: bytes | None
    latency_ms: int | None
    result: dict[str, Any]
