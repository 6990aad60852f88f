"""
Asynchronous job polling.
Polls GET /jobs/{id} on a fixed interval until the provider reports a
terminal state or the safety ceiling is hit, computing progress and ETA
on every tick. Terminal handling runs at most once per job id.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from mediarelay.core.error_codes import JobError, JobFailed, PollExhausted
from mediarelay.core.models import TranscriptionResult
from mediarelay.core.provider_client import ProviderClient
from mediarelay.core.scheduling import Clock, IntervalTask
from mediarelay.core.constants import (
    RemoteStatus, Provider, MB, POLL_INTERVAL_SEC, POLL_CEILING_SEC,
    HEURISTIC_PROGRESS_STEP, HEURISTIC_PROGRESS_CAP, HEURISTIC_SEC_PER_PERCENT,
    INITIAL_ETA_SEC_PER_MB, PROGRESS_DONE,
)

logger = logging.getLogger(__name__)


# ── Progress / ETA estimation ─────────────────────────────────────────

def initial_eta(byte_size: int) -> int:
    """Rough upfront estimate: ~30 seconds per MB, at least 30 seconds."""
    return max(INITIAL_ETA_SEC_PER_MB, round(byte_size / MB * INITIAL_ETA_SEC_PER_MB))


def estimate_progress(previous: int, reported: Optional[float]) -> int:
    """Provider progress when given, otherwise creep forward to the cap."""
    if reported is None:
        if previous >= HEURISTIC_PROGRESS_CAP:
            return previous
        return min(previous + HEURISTIC_PROGRESS_STEP, HEURISTIC_PROGRESS_CAP)
    return max(previous, min(PROGRESS_DONE, max(0, int(reported))))


def estimate_eta(progress: int, elapsed_sec: float, reported: bool) -> int:
    """Rate-based when the provider reports progress, else ~3s per remaining percent."""
    if progress >= PROGRESS_DONE:
        return 0
    if reported and progress > 0 and elapsed_sec > 0:
        return max(0, round(elapsed_sec * (PROGRESS_DONE - progress) / progress))
    return (PROGRESS_DONE - progress) * HEURISTIC_SEC_PER_PERCENT


def _reported_progress(data: dict) -> Optional[float]:
    value = data.get('progressPercent')
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def result_from_payload(job_id: str, data: dict) -> TranscriptionResult:
    """Pull transcript text and duration out of a completed status body."""
    result = data.get('result') or {}
    if isinstance(result, str):
        return TranscriptionResult(text=result, provider=Provider.PRIMARY, job_id=job_id)
    text = result.get('text') or result.get('transcriptText') or ""
    duration = result.get('durationSeconds') or result.get('audioDuration') or 0.0
    return TranscriptionResult(
        text=text,
        duration_seconds=float(duration),
        provider=Provider.PRIMARY,
        job_id=job_id,
        raw=result,
    )


@dataclass(frozen=True)
class PollUpdate:
    job_id: str
    remote_status: str
    progress_percent: int
    eta_seconds: int
    elapsed_sec: float


@dataclass(frozen=True)
class PollOutcome:
    job_id: str
    result: Optional[TranscriptionResult] = None
    error: Optional[JobError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class JobPoller:
    """
    Owns the poll timer and the set of already-finalized job ids.

    start() blocks until the job reaches a terminal state, the ceiling is
    hit, or cancel() is called. cancel() stops further ticks but does not
    cancel work at the provider.
    """

    def __init__(self, client: ProviderClient, clock: Clock,
                 interval_sec: float = POLL_INTERVAL_SEC,
                 ceiling_sec: float = POLL_CEILING_SEC,
                 finalized_ids: set[str] | None = None):
        self.client = client
        self.clock = clock
        self.interval_sec = interval_sec
        self.ceiling_sec = ceiling_sec
        self.finalized_ids: set[str] = finalized_ids if finalized_ids is not None else set()
        self._task: Optional[IntervalTask] = None
        self._job_id: Optional[str] = None
        self._started_at = 0.0
        self._progress = 0
        self._on_update: Optional[Callable[[PollUpdate], None]] = None
        self._on_terminal: Optional[Callable[[PollOutcome], None]] = None

    @property
    def ticks(self) -> int:
        return self._task.ticks if self._task else 0

    @property
    def active(self) -> bool:
        return self._task is not None and self._task.running and not self._task.cancelled

    def start(self, job_id: str,
              on_update: Callable[[PollUpdate], None],
              on_terminal: Callable[[PollOutcome], None],
              initial_progress: int = 0):
        if job_id in self.finalized_ids:
            logger.info("Job %s already finalized; not polling", job_id)
            return
        self._job_id = job_id
        self._started_at = self.clock.now()
        self._progress = initial_progress
        self._on_update = on_update
        self._on_terminal = on_terminal
        self._task = IntervalTask(self.clock, self.interval_sec, self.tick,
                                  name=f"poll:{job_id}")
        logger.info("Polling job %s every %.0fs (ceiling %.0fs)",
                    job_id, self.interval_sec, self.ceiling_sec)
        self._task.run()

    def cancel(self):
        if self._task:
            self._task.cancel()

    def tick(self):
        """One poll: status request, progress update or terminal handling."""
        job_id = self._job_id
        if job_id is None:
            return
        elapsed = self.clock.now() - self._started_at

        if elapsed >= self.ceiling_sec:
            logger.error("Job %s: poll ceiling of %.0fs reached", job_id, self.ceiling_sec)
            self._finish(PollOutcome(job_id, error=PollExhausted(job_id, elapsed)))
            return

        try:
            data = self.client.get_job_status(job_id)
        except JobError as e:
            if e.retryable:
                logger.warning("Status check for %s failed (%s); will retry next tick",
                               job_id, e.code)
                return
            self._finish(PollOutcome(job_id, error=e))
            return

        remote_status = str(data.get('status', '')).lower()

        if remote_status == RemoteStatus.COMPLETED:
            self._finish(PollOutcome(job_id, result=result_from_payload(job_id, data)))
            return

        if remote_status in (RemoteStatus.FAILED, RemoteStatus.ERROR):
            reason = data.get('error') or "Transcription failed"
            self._finish(PollOutcome(job_id, error=JobFailed(job_id, str(reason))))
            return

        reported = _reported_progress(data)
        self._progress = estimate_progress(self._progress, reported)
        eta = estimate_eta(self._progress, elapsed, reported is not None)
        logger.debug("Job %s: %s %d%% (eta %ds)", job_id, remote_status or "?",
                     self._progress, eta)
        if self._on_update:
            self._on_update(PollUpdate(job_id, remote_status, self._progress, eta, elapsed))

    def _finish(self, outcome: PollOutcome):
        """Terminal handling, exactly once per job id."""
        self.cancel()
        if outcome.job_id in self.finalized_ids:
            logger.debug("Job %s already finalized; ignoring repeated terminal state",
                         outcome.job_id)
            return
        self.finalized_ids.add(outcome.job_id)
        if outcome.succeeded:
            logger.info("Job %s completed", outcome.job_id)
        else:
            logger.warning("Job %s ended: %s", outcome.job_id, outcome.error)
        if self._on_terminal:
            self._on_terminal(outcome)
