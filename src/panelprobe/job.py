from __future__ import annotations

from enum import Enum
from typing import Any

from .config import DEFAULT_LOGINS, ProbeConfig
from .extractor import extract_logins
from .models import ConnectionAttempt, ConnectionResult, Credential, Panel, ResultKind, ResultRecord
from .utils import parse_login, split_host_port


class JobStatus(str, Enum):
    UNATTEMPTED = "unattempted"
    AUTH_ERROR_RETRY = "auth_error_retry"
    SUCCESS = "success"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    UNKNOWN_LOGIN = "unknown_login"


class Job:
    """Credential probing lifecycle of one panel.

    Candidates are the panel's own parsable logins followed by the default
    logins. The attempt at index ``auth_attempts`` is the next one to send;
    only auth rejections advance it.
    """

    def __init__(
        self,
        panel: Panel,
        probe_config: ProbeConfig,
        default_logins: tuple[Credential, ...] = DEFAULT_LOGINS,
    ) -> None:
        try:
            int(panel.storage_id)
        except ValueError:
            raise ValueError(f"Non-numeric storage id: {panel.storage_id!r}") from None
        self.panel = panel
        host, port = split_host_port(panel.url)
        panel_logins = [login for login in (parse_login(raw) for raw in panel.logins) if login is not None]
        self.attempts: list[ConnectionAttempt] = [
            ConnectionAttempt(
                credential=credential,
                host=host,
                port=port,
                path=probe_config.path,
                timeout_seconds=probe_config.timeout_seconds,
            )
            for credential in [*panel_logins, *default_logins]
        ]
        self.auth_attempts = 0
        self.using_default_login = not panel_logins
        self.unknown_login = False
        self.completed_successfully = False
        self.data: bytes | None = None
        self.recovered_logins: list[Credential] = []
        self.last_result: ConnectionResult | None = None

    def __repr__(self) -> str:
        return f"Job(panel_id={self.panel.panel_id}, status={self.status.value}, auth_attempts={self.auth_attempts})"

    @property
    def status(self) -> JobStatus:
        if self.completed_successfully:
            return JobStatus.SUCCESS
        if self.unknown_login:
            return JobStatus.UNKNOWN_LOGIN
        if self.last_result is None:
            return JobStatus.UNATTEMPTED
        if self.last_result.result is ResultKind.AUTH_ERROR:
            return JobStatus.AUTH_ERROR_RETRY
        if self.last_result.result is ResultKind.TIMEOUT:
            return JobStatus.TIMEOUT
        return JobStatus.TRANSPORT_ERROR

    def current_attempt(self) -> ConnectionAttempt | None:
        if self.unknown_login or self.auth_attempts >= len(self.attempts):
            return None
        return self.attempts[self.auth_attempts]

    def handle_result(self, result: ConnectionResult) -> None:
        attempt = self.current_attempt()
        if attempt is None:
            raise RuntimeError(f"panel {self.panel.panel_id} has no attempt left to record a result on")
        attempt.result = result
        self.last_result = result

        if result.result is ResultKind.AUTH_ERROR:
            self.auth_attempts += 1
            if self.auth_attempts >= len(self.attempts) - 1:
                self.unknown_login = True
        elif result.result is ResultKind.SUCCESS:
            self.data = result.data or b""
            self.recovered_logins = extract_logins(self.data)
            self.completed_successfully = True

    def successful_credential(self) -> Credential | None:
        if not self.completed_successfully:
            return None
        return self.attempts[self.auth_attempts].credential

    def to_result_record(self, query_time: str) -> ResultRecord:
        result = self.last_result
        blob: dict[str, Any] = result.to_blob() if result is not None else {"result": None, "latency": None}
        blob["auth_attempts"] = self.auth_attempts
        blob["using_default_login"] = self.using_default_login
        blob["unknown_login"] = self.unknown_login
        if self.completed_successfully:
            credential = self.successful_credential()
            blob["login"] = {"username": credential.username, "password": credential.password}
            blob["recovered_logins"] = [
                {"username": login.username, "password": login.password} for login in self.recovered_logins
            ]
        return ResultRecord(
            storage_id=int(self.panel.storage_id),
            storage_code=self.panel.storage_code,
            query_time=query_time,
            response_bytes=self.data,
            latency_ms=result.latency_ms if result is not None else None,
            result=blob,
        )
