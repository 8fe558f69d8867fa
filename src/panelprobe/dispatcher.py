from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from .app_logging import log_with_fields
from .config import AppConfig
from .job import Job
from .models import ConnectionResult, ResultKind, TransportErrorCode
from .probe import ProbeExecutor
from .store import Store
from .utils import utc_now_iso

INITIAL_PASS = "initial_attempts"
AUTH_RETRY_PASS = "auth_retry_attempts"


class Bucket(str, Enum):
    INITIAL = "initial"
    AUTH_ERROR = "auth_error"
    UNKNOWN_LOGIN = "unknown_login"
    TIMED_OUT = "timed_out"
    HOST_UNREACHABLE = "host_unreachable"
    CONNECTION_REFUSED = "connection_refused"
    SUCCESS = "success"


ERROR_CODE_BUCKETS = {
    TransportErrorCode.HOST_UNREACHABLE.value: Bucket.HOST_UNREACHABLE,
    TransportErrorCode.CONNECTION_REFUSED.value: Bucket.CONNECTION_REFUSED,
    TransportErrorCode.TIMED_OUT.value: Bucket.TIMED_OUT,
}


@dataclass(slots=True)
class SchedulerState:
    """Queues and counters of one scan. A job sits in at most one queue."""

    initial: deque[Job] = field(default_factory=deque)
    auth_error: deque[Job] = field(default_factory=deque)
    unknown_logins: list[Job] = field(default_factory=list)
    timed_out: list[Job] = field(default_factory=list)
    host_unreachable: list[Job] = field(default_factory=list)
    connection_refused: list[Job] = field(default_factory=list)
    success: list[Job] = field(default_factory=list)
    dropped: int = 0
    initial_count: int = 0
    attempted: int = 0
    current_pass: str = INITIAL_PASS
    began_at: float = field(default_factory=time.time)

    def queue(self, bucket: Bucket) -> deque[Job] | list[Job]:
        return {
            Bucket.INITIAL: self.initial,
            Bucket.AUTH_ERROR: self.auth_error,
            Bucket.UNKNOWN_LOGIN: self.unknown_logins,
            Bucket.TIMED_OUT: self.timed_out,
            Bucket.HOST_UNREACHABLE: self.host_unreachable,
            Bucket.CONNECTION_REFUSED: self.connection_refused,
            Bucket.SUCCESS: self.success,
        }[bucket]

    def counts(self) -> dict[str, int]:
        return {bucket.value: len(self.queue(bucket)) for bucket in Bucket}


def bucket_for_result(job: Job, result: ConnectionResult) -> Bucket | None:
    """Map an outcome to the bucket its job moves to; None means the job is dropped."""
    if result.result is ResultKind.SUCCESS:
        return Bucket.SUCCESS
    if result.result is ResultKind.AUTH_ERROR:
        return Bucket.UNKNOWN_LOGIN if job.unknown_login else Bucket.AUTH_ERROR
    if result.result is ResultKind.TIMEOUT:
        return Bucket.TIMED_OUT
    return ERROR_CODE_BUCKETS.get(result.error_code or "")


class Dispatcher:
    def __init__(
        self,
        config: AppConfig,
        store: Store,
        probe: ProbeExecutor,
        logger: logging.Logger,
    ) -> None:
        self.config = config
        self.store = store
        self.probe = probe
        self.logger = logger

    def load_jobs(self) -> list[Job]:
        jobs: list[Job] = []
        for panel in self.store.list_panels():
            try:
                jobs.append(Job(panel, self.config.probe, self.config.default_logins))
            except ValueError as exc:
                log_with_fields(
                    self.logger,
                    logging.WARNING,
                    "panel_skipped",
                    panel_id=panel.panel_id,
                    storage_name=panel.storage_name,
                    error=str(exc),
                )
        return jobs

    def run(self, jobs: list[Job] | None = None) -> SchedulerState:
        if jobs is None:
            jobs = self.load_jobs()
        state = SchedulerState(initial=deque(jobs), initial_count=len(jobs))
        log_with_fields(
            self.logger,
            logging.INFO,
            "scan_started",
            jobs=state.initial_count,
            exhaust_logins=self.config.dispatch.exhaust_logins,
        )
        self.run_initial_pass(state)
        self.run_auth_retry_pass(state)
        self._record_remaining_auth_errors(state)
        log_with_fields(
            self.logger,
            logging.INFO,
            "scan_finished",
            attempted=state.attempted,
            dropped=state.dropped,
            elapsed_seconds=round(time.time() - state.began_at, 1),
            **state.counts(),
        )
        return state

    def run_initial_pass(self, state: SchedulerState) -> None:
        state.current_pass = INITIAL_PASS
        log_with_fields(self.logger, logging.INFO, "pass_started", name=state.current_pass, jobs=len(state.initial))
        while state.initial:
            job = state.initial.popleft()
            self._attempt(state, job)

    def run_auth_retry_pass(self, state: SchedulerState) -> None:
        """Give every job rejected so far one more credential.

        Jobs rejected again stay in ``state.auth_error``. With
        ``dispatch.exhaust_logins`` they are retried until they leave it.
        """
        state.current_pass = AUTH_RETRY_PASS
        log_with_fields(self.logger, logging.INFO, "pass_started", name=state.current_pass, jobs=len(state.auth_error))
        budget = None if self.config.dispatch.exhaust_logins else len(state.auth_error)
        while state.auth_error:
            if budget is not None:
                if budget == 0:
                    break
                budget -= 1
            job = state.auth_error.popleft()
            self._attempt(state, job)

    def _attempt(self, state: SchedulerState, job: Job) -> None:
        attempt = job.current_attempt()
        if attempt is None:
            log_with_fields(
                self.logger,
                logging.WARNING,
                "job_not_dispatchable",
                panel_id=job.panel.panel_id,
                auth_attempts=job.auth_attempts,
                candidates=len(job.attempts),
            )
            return

        state.attempted += 1
        log_with_fields(
            self.logger,
            logging.INFO,
            "probe_attempt",
            panel_id=job.panel.panel_id,
            storage_name=job.panel.storage_name,
            host=attempt.host,
            port=attempt.port,
            username=attempt.credential.username,
            attempt_index=job.auth_attempts,
            pass_name=state.current_pass,
        )
        result = self.probe.execute(attempt)
        job.handle_result(result)
        log_with_fields(
            self.logger,
            logging.INFO,
            "probe_result",
            panel_id=job.panel.panel_id,
            result=result.result.value,
            latency_ms=result.latency_ms,
            error_code=result.error_code,
        )
        if job.completed_successfully and job.recovered_logins:
            log_with_fields(
                self.logger,
                logging.INFO,
                "logins_recovered",
                panel_id=job.panel.panel_id,
                usernames=[login.username for login in job.recovered_logins],
            )
        self._route(state, job, result)

    def _route(self, state: SchedulerState, job: Job, result: ConnectionResult) -> None:
        bucket = bucket_for_result(job, result)
        if bucket is None:
            state.dropped += 1
            log_with_fields(
                self.logger,
                logging.ERROR,
                "job_dropped_unknown_error",
                panel_id=job.panel.panel_id,
                error_code=result.error_code,
                error=result.error_detail,
            )
            return

        state.queue(bucket).append(job)
        if bucket is Bucket.AUTH_ERROR:
            return
        if bucket is Bucket.UNKNOWN_LOGIN:
            log_with_fields(
                self.logger,
                logging.WARNING,
                "job_unknown_login",
                panel_id=job.panel.panel_id,
                auth_attempts=job.auth_attempts,
            )
        self._record(job, bucket)

    def _record_remaining_auth_errors(self, state: SchedulerState) -> None:
        for job in state.auth_error:
            self._record(job, Bucket.AUTH_ERROR)

    def _record(self, job: Job, bucket: Bucket) -> None:
        self.store.insert_result(job.to_result_record(utc_now_iso()), bucket.value)
