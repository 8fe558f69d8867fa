from __future__ import annotations

import errno
import socket
import time

import httpx

from .config import ProbeConfig
from .models import ConnectionAttempt, ConnectionResult, TransportErrorCode

# Binding the local side to 0.0.0.0 restricts resolution to IPv4.
IPV4_LOCAL_ADDRESS = "0.0.0.0"
DNS_FAILURE_CODE = "ENOTFOUND"
# httpcore trace event marking the request as fully written to the socket.
REQUEST_SENT_EVENT = "http11.send_request_body.complete"


def transport_error_code(exc: BaseException) -> str:
    """Return the errno name behind an httpx transport error, or ``UNKNOWN``."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return DNS_FAILURE_CODE
        if isinstance(current, OSError) and current.errno:
            return errno.errorcode.get(current.errno, TransportErrorCode.UNKNOWN.value)
        current = current.__cause__ or current.__context__
    return TransportErrorCode.UNKNOWN.value


def is_auth_rejection(response: httpx.Response) -> bool:
    return response.headers.get("connection", "").strip().lower() == "close"


class ProbeExecutor:
    def __init__(self, probe_config: ProbeConfig, transport: httpx.BaseTransport | None = None) -> None:
        self.probe_config = probe_config
        if transport is None:
            transport = httpx.HTTPTransport(
                retries=0,
                local_address=IPV4_LOCAL_ADDRESS if probe_config.ipv4_only else None,
            )
        self.client = httpx.Client(
            transport=transport,
            follow_redirects=False,
            timeout=httpx.Timeout(probe_config.timeout_seconds),
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> ProbeExecutor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def execute(self, attempt: ConnectionAttempt) -> ConnectionResult:
        url = f"http://{attempt.host}:{attempt.port}{attempt.path}"
        auth = httpx.BasicAuth(attempt.credential.username, attempt.credential.password)
        sent_at: list[float] = []

        def trace(event_name: str, info: dict) -> None:
            if event_name == REQUEST_SENT_EVENT:
                sent_at.append(time.perf_counter())

        started = time.perf_counter()
        try:
            with self.client.stream(
                "GET",
                url,
                auth=auth,
                timeout=attempt.timeout_seconds,
                extensions={"trace": trace},
            ) as response:
                # Falls back to the call start when the transport emits no trace events.
                latency_ms = round((time.perf_counter() - (sent_at[-1] if sent_at else started)) * 1000)
                if is_auth_rejection(response):
                    return ConnectionResult.auth_error(latency_ms)
                data = response.read()
        except httpx.TimeoutException:
            return ConnectionResult.timeout()
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            return ConnectionResult.error(transport_error_code(exc), str(exc))
        return ConnectionResult.success(data, latency_ms)
