"""execution/scheduler.py

Recurring transfers on a cron schedule.

Lifecycle of a job: REGISTERED -> ACTIVE -> CANCELLED.

- Registration validates the cron expression; a malformed one raises
  InvalidSchedule and no job is created.
- Each fire dispatches exactly once without awaiting confirmation. With
  confirm_async the confirmation runs on a separate pool and is reported,
  never awaited by the fire.
- A failed fire is reported and the job stays ACTIVE. Jobs are only ever
  cancelled explicitly (or at shutdown).
- Fires run on APScheduler worker threads, so a slow dispatch does not block
  the timer; the session lock serializes signing/broadcast between fires.
- cancel() is cooperative: a fire that already passed its state check
  completes and reports; no fire starts dispatching after cancel() returns.
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor as ConfirmPool
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from chain.session import ChainSession
from config.runtime_schema import DispatchConfig
from execution.dispatcher import Dispatcher
from execution.errors import InvalidSchedule, TransferError
from execution.models import Failed, Submitted, TransferRequest, TransferResult

logger = logging.getLogger(__name__)

# Cron numbers weekdays from Sunday (0 or 7); APScheduler from Monday (0).
_DOW_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_DOW_ITEM = re.compile(r"(\*|\d+)(?:-(\d+))?(?:/(\d+))?")


class JobState(Enum):
    """Scheduled job lifecycle states."""
    REGISTERED = "REGISTERED"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


ResultCallback = Callable[["ScheduledJob", TransferResult], None]


@dataclass(eq=False)
class ScheduledJob:
    """
    Handle for a recurring transfer.

    Attributes:
        job_id: Scheduler-assigned identifier.
        cron_expression: Expression the job was registered with.
        session: Borrowed session; the job does not close it.
        request: Transfer dispatched at each fire.
        state: Current lifecycle state.
        fire_count: Number of fires that reached dispatch.
        last_result: Result of the most recent fire (or confirmation).
    """
    job_id: str
    cron_expression: str
    session: ChainSession
    request: TransferRequest
    state: JobState = JobState.REGISTERED
    fire_count: int = 0
    last_result: Optional[TransferResult] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def is_active(self) -> bool:
        return self.state is JobState.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "cron": self.cron_expression,
            "network": self.session.network.identifier,
            "recipient": self.request.recipient,
            "amount_wei": self.request.amount_wei,
            "state": self.state.value,
            "fire_count": self.fire_count,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }


def _translate_day_of_week(value: str) -> str:
    """Rewrite a cron day-of-week field as names APScheduler reads the same way.

    Numeric items (including ranges and steps) are expanded to explicit day
    names; named items such as ``mon-fri`` already agree and pass through.
    """
    if value == "*":
        return value

    days: List[int] = []
    named: List[str] = []
    for item in value.split(","):
        m = _DOW_ITEM.fullmatch(item)
        if m is None:
            named.append(item)
            continue

        start, end, step = m.groups()
        if start == "*":
            if end is not None:
                raise InvalidSchedule(f"Invalid day-of-week item: {item!r}")
            low, high = 0, 6
        else:
            low = int(start)
            # "N/s" runs from N to the end of the week.
            high = int(end) if end is not None else (6 if step else low)
        if low > 7 or high > 7:
            raise InvalidSchedule(f"day-of-week value out of range: {item!r}")
        if low > high:
            raise InvalidSchedule(f"day-of-week range is reversed: {item!r}")
        stride = int(step) if step else 1
        if stride < 1:
            raise InvalidSchedule(f"day-of-week step must be positive: {item!r}")

        days.extend(d % 7 for d in range(low, high + 1, stride))

    unique = sorted(set(days))
    if len(unique) == 7 and not named:
        return "*"
    return ",".join([_DOW_NAMES[d] for d in unique] + named)


def parse_cron(expression: str, timezone: Any = None) -> CronTrigger:
    """Parse a cron expression into an APScheduler trigger.

    Accepts five fields (minute hour day-of-month month day-of-week) or six
    with a leading seconds field.

    Raises:
        InvalidSchedule: If the expression is not well-formed.
    """
    if not isinstance(expression, str):
        raise InvalidSchedule(f"Cron expression must be a string, got {type(expression).__name__}")

    fields = expression.split()
    if len(fields) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = fields
    elif len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
    else:
        raise InvalidSchedule(f"Cron expression must have 5 or 6 fields, got {len(fields)}: {expression!r}")

    kwargs: Dict[str, Any] = {}
    if timezone is not None:
        kwargs["timezone"] = timezone

    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(day_of_week),
            **kwargs,
        )
    except ValueError as e:
        raise InvalidSchedule(f"Invalid cron expression {expression!r}: {e}") from e


class TransferScheduler:
    """Owns the background timer and the scheduled transfer jobs."""

    def __init__(
        self,
        dispatcher: Optional[Dispatcher] = None,
        *,
        on_result: Optional[ResultCallback] = None,
        confirm_async: bool = False,
        config: Optional[DispatchConfig] = None,
        timezone: Any = None,
    ):
        """Initialize the scheduler (the timer thread starts with the first job).

        Args:
            dispatcher: Dispatcher used at each fire.
            on_result: Called with (job, result) after every fire and every async confirmation.
            confirm_async: Wait for inclusion of each fire's transfer off the fire thread.
            config: Tunables; defaults to the dispatcher's config.
            timezone: Timezone for cron evaluation (local time if None).
        """
        self.config = config or (dispatcher.config if dispatcher else DispatchConfig())
        self.dispatcher = dispatcher or Dispatcher(self.config)
        self.on_result = on_result
        self.confirm_async = confirm_async
        self._timezone = timezone

        self._lock = threading.RLock()
        self._jobs: Dict[str, ScheduledJob] = {}

        max_fires = self.config.scheduler_max_concurrent_fires
        scheduler_kwargs: Dict[str, Any] = {
            "executors": {"default": ThreadPoolExecutor(max_workers=max(4, max_fires * 2))},
            "job_defaults": {
                "coalesce": False,
                "max_instances": max_fires,
                "misfire_grace_time": self.config.scheduler_misfire_grace_sec,
            },
        }
        if timezone is not None:
            scheduler_kwargs["timezone"] = timezone
        self._scheduler = BackgroundScheduler(**scheduler_kwargs)
        self._confirm_pool: Optional[ConfirmPool] = None

    # ---- registration ----

    def schedule(self, cron_expression: str, session: ChainSession, request: TransferRequest) -> ScheduledJob:
        """Register a recurring transfer.

        Returns:
            Handle in state ACTIVE.

        Raises:
            InvalidSchedule: If the cron expression is malformed (no job is created).
        """
        trigger = parse_cron(cron_expression, self._timezone)

        job = ScheduledJob(
            job_id=uuid.uuid4().hex[:12],
            cron_expression=cron_expression,
            session=session,
            request=request,
        )

        with self._lock:
            self._jobs[job.job_id] = job
            self._scheduler.add_job(
                self._run_fire,
                trigger=trigger,
                args=[job],
                id=job.job_id,
                name=f"transfer->{request.recipient}",
            )
            job.state = JobState.ACTIVE
            if not self._scheduler.running:
                self._scheduler.start()

        logger.info(
            f"[scheduler] Job {job.job_id} active: '{cron_expression}' "
            f"{request.amount_wei} wei -> {request.recipient} on {session.network.identifier}"
        )
        return job

    def cancel(self, job: ScheduledJob) -> bool:
        """Cancel a job. Returns False if it was already cancelled."""
        with job._lock:
            if job.state is JobState.CANCELLED:
                return False
            job.state = JobState.CANCELLED

        with self._lock:
            self._jobs.pop(job.job_id, None)
            try:
                self._scheduler.remove_job(job.job_id)
            except JobLookupError:
                logger.debug(f"[scheduler] Job {job.job_id} already removed from the timer")

        logger.info(f"[scheduler] Job {job.job_id} cancelled after {job.fire_count} fires")
        return True

    def jobs(self) -> List[ScheduledJob]:
        """Active jobs in registration order."""
        with self._lock:
            return list(self._jobs.values())

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel every job and stop the timer and confirmation pool."""
        for job in self.jobs():
            self.cancel(job)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        if self._confirm_pool is not None:
            self._confirm_pool.shutdown(wait=wait)
            self._confirm_pool = None
        logger.info("[scheduler] Stopped.")

    # ---- firing ----

    def fire(self, job: ScheduledJob) -> Optional[TransferResult]:
        """Run one fire of ``job`` in the calling thread.

        Returns:
            The dispatch result, or None if the job is not active.
        """
        return self._run_fire(job)

    def _run_fire(self, job: ScheduledJob) -> Optional[TransferResult]:
        network = job.session.network.identifier

        # The state check and the dispatch share the session lock: a fire still
        # waiting for the lock when cancel() returns sees CANCELLED and never sends.
        with job.session.transaction_lock:
            with job._lock:
                if job.state is not JobState.ACTIVE:
                    logger.debug(f"[scheduler] Skipping fire of {job.job_id} ({job.state.value})")
                    return None
                job.fire_count += 1
                fire_no = job.fire_count

            try:
                result = self.dispatcher.send(job.session, job.request, await_confirmation=False)
            except TransferError as e:
                result = Failed(recipient=job.request.recipient, reason=e.code, detail=e.message, network=network)
            except Exception as e:
                # A fire must never take the job down with it.
                logger.exception(f"[scheduler] Unexpected error in fire #{fire_no} of {job.job_id}")
                result = Failed(
                    recipient=job.request.recipient, reason="UnexpectedError", detail=str(e), network=network
                )

        if result.ok:
            logger.info(f"[scheduler] Job {job.job_id} fire #{fire_no}: sent {result.tx_hash} on {network}")
        else:
            logger.error(
                f"[scheduler] Job {job.job_id} fire #{fire_no} failed: {result.reason}: {result.detail} "
                f"(recipient={result.recipient}, network={network})"
            )

        job.last_result = result
        self._report(job, result)

        if self.confirm_async and isinstance(result, Submitted):
            self._get_confirm_pool().submit(self._confirm, job, result)
        return result

    def _confirm(self, job: ScheduledJob, submitted: Submitted) -> None:
        try:
            result = self.dispatcher.confirm(job.session, submitted)
        except Exception:
            logger.exception(f"[scheduler] Confirmation of {submitted.tx_hash} crashed")
            return
        job.last_result = result
        self._report(job, result)

    def _get_confirm_pool(self) -> ConfirmPool:
        with self._lock:
            if self._confirm_pool is None:
                self._confirm_pool = ConfirmPool(max_workers=4, thread_name_prefix="transfer-confirm")
            return self._confirm_pool

    def _report(self, job: ScheduledJob, result: TransferResult) -> None:
        if self.on_result is None:
            return
        try:
            self.on_result(job, result)
        except Exception:
            logger.exception(f"[scheduler] Result callback failed for job {job.job_id}")
