"""
Job lifecycle state machine.

transition(job, event) is a pure function returning the new job and the
side effects the caller must run. It never performs I/O.

    idle -> preparing[_chunks] -> uploading [-> processing_chunks]
         -> transcribing -> combining_results -> completed | failed

`failed` is reachable from every non-terminal state; completed and failed
absorb every event except ManualRetry from failed.
"""

from dataclasses import dataclass, replace
from typing import Optional

from mediarelay.core.models import TranscriptionJob, ChunkTask, ChunkResult, TranscriptionResult
from mediarelay.core.constants import JobStatus, Provider, PROGRESS_DONE


class Effect:
    PERSIST = "persist"
    FINALIZE = "finalize"
    NOTIFY = "notify"


class InvalidTransition(Exception):
    def __init__(self, status: str, event: object):
        self.status = status
        self.event = event
        super().__init__(f"{type(event).__name__} not allowed in state '{status}'")


# ── Events ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Prepare:
    chunks: tuple[ChunkTask, ...] = ()
    provider: str = Provider.PRIMARY
    eta_seconds: int = 0
    at: Optional[str] = None


@dataclass(frozen=True)
class UploadStarted:
    progress: int = 0


@dataclass(frozen=True)
class UploadProgress:
    progress: int


@dataclass(frozen=True)
class ChunksUploaded:
    progress: int = 0
    results: tuple[ChunkResult, ...] = ()


@dataclass(frozen=True)
class ChunkJobStarted:
    index: int
    job_id: str


@dataclass(frozen=True)
class ChunkTranscribed:
    result: ChunkResult
    progress: int = 0


@dataclass(frozen=True)
class TranscriptionStarted:
    job_id: str
    progress: int = 0


@dataclass(frozen=True)
class StatusReported:
    progress: int
    eta_seconds: int


@dataclass(frozen=True)
class CombineStarted:
    progress: int = 0


@dataclass(frozen=True)
class Completed:
    result: TranscriptionResult
    at: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    code: str
    message: str
    hint: Optional[str] = None
    at: Optional[str] = None


@dataclass(frozen=True)
class ManualRetry:
    pass


_UPLOAD_SOURCES = {JobStatus.PREPARING, JobStatus.PREPARING_CHUNKS}
_TRANSCRIBE_SOURCES = {JobStatus.UPLOADING, JobStatus.PROCESSING_CHUNKS, JobStatus.TRANSCRIBING}
_COMBINE_SOURCES = {JobStatus.UPLOADING, JobStatus.PROCESSING_CHUNKS, JobStatus.TRANSCRIBING}
_ACTIVE = {
    JobStatus.PREPARING, JobStatus.PREPARING_CHUNKS, JobStatus.UPLOADING,
    JobStatus.PROCESSING_CHUNKS, JobStatus.TRANSCRIBING, JobStatus.COMBINING_RESULTS,
}

_STEP = [Effect.PERSIST, Effect.NOTIFY]


def _progress(job: TranscriptionJob, reported: int) -> int:
    # Non-decreasing within one lifecycle
    return max(job.progress_percent, min(PROGRESS_DONE, max(0, int(reported))))


def _with_chunk(results: list[ChunkResult], index: int, update) -> list[ChunkResult]:
    if not any(r.index == index for r in results):
        raise ValueError(f"No chunk with index {index}")
    return [update(r) if r.index == index else r for r in results]


def transition(job: TranscriptionJob, event) -> tuple[TranscriptionJob, list[str]]:
    status = job.status

    if job.is_terminal:
        if isinstance(event, ManualRetry) and status == JobStatus.FAILED:
            return replace(
                job, id=None, status=JobStatus.IDLE, progress_percent=0,
                eta_seconds=0, chunks=[], chunk_results=[], completed_at=None,
                error_code=None, error_message=None, error_hint=None, result=None,
                retry_count=job.retry_count + 1,
            ), [Effect.NOTIFY]
        return job, []

    if isinstance(event, Failed):
        return replace(
            job, status=JobStatus.FAILED, eta_seconds=0, error_code=event.code,
            error_message=event.message, error_hint=event.hint,
            completed_at=event.at,
        ), [Effect.FINALIZE, Effect.NOTIFY]

    if isinstance(event, Completed):
        if status not in _ACTIVE:
            raise InvalidTransition(status, event)
        return replace(
            job, status=JobStatus.COMPLETED, progress_percent=PROGRESS_DONE,
            eta_seconds=0, result=event.result, completed_at=event.at,
            id=job.id or event.result.job_id,
        ), [Effect.FINALIZE, Effect.NOTIFY]

    if isinstance(event, Prepare):
        if status != JobStatus.IDLE:
            raise InvalidTransition(status, event)
        chunked = len(event.chunks) > 1
        return replace(
            job,
            status=JobStatus.PREPARING_CHUNKS if chunked else JobStatus.PREPARING,
            chunks=list(event.chunks) if chunked else [],
            provider=event.provider,
            eta_seconds=event.eta_seconds,
            created_at=job.created_at or event.at,
        ), _STEP

    if isinstance(event, UploadStarted):
        if status not in _UPLOAD_SOURCES:
            raise InvalidTransition(status, event)
        return replace(job, status=JobStatus.UPLOADING,
                       progress_percent=_progress(job, event.progress)), _STEP

    if isinstance(event, UploadProgress):
        if status != JobStatus.UPLOADING:
            raise InvalidTransition(status, event)
        return replace(job, progress_percent=_progress(job, event.progress)), _STEP

    if isinstance(event, ChunksUploaded):
        if status != JobStatus.UPLOADING:
            raise InvalidTransition(status, event)
        return replace(job, status=JobStatus.PROCESSING_CHUNKS,
                       chunk_results=list(event.results),
                       progress_percent=_progress(job, event.progress)), _STEP

    if isinstance(event, ChunkJobStarted):
        if status != JobStatus.PROCESSING_CHUNKS:
            raise InvalidTransition(status, event)
        results = _with_chunk(job.chunk_results, event.index,
                              lambda r: replace(r, job_id=event.job_id))
        return replace(job, id=event.job_id, chunk_results=results), _STEP

    if isinstance(event, ChunkTranscribed):
        if status != JobStatus.PROCESSING_CHUNKS:
            raise InvalidTransition(status, event)
        results = _with_chunk(job.chunk_results, event.result.index, lambda r: event.result)
        return replace(job, chunk_results=results,
                       progress_percent=_progress(job, event.progress)), _STEP

    if isinstance(event, TranscriptionStarted):
        if status not in _TRANSCRIBE_SOURCES:
            raise InvalidTransition(status, event)
        return replace(job, status=JobStatus.TRANSCRIBING, id=event.job_id,
                       progress_percent=_progress(job, event.progress)), _STEP

    if isinstance(event, StatusReported):
        if status not in (JobStatus.TRANSCRIBING, JobStatus.PROCESSING_CHUNKS):
            raise InvalidTransition(status, event)
        return replace(job, progress_percent=_progress(job, event.progress),
                       eta_seconds=max(0, int(event.eta_seconds))), _STEP

    if isinstance(event, CombineStarted):
        if status not in _COMBINE_SOURCES:
            raise InvalidTransition(status, event)
        return replace(job, status=JobStatus.COMBINING_RESULTS,
                       progress_percent=_progress(job, event.progress)), _STEP

    if isinstance(event, ManualRetry):
        raise InvalidTransition(status, event)

    raise TypeError(f"Unknown event {event!r}")
