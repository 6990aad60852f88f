"""
Transcription pipeline.
Runs one file at a time: plan -> credential -> route -> upload -> poll -> finalize.
Every state change goes through the pure state machine via a local event
queue; persistence, transcript output and notification are its effects.
"""

import logging
from collections import deque
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from mediarelay.core.chunk_planner import plan_chunks, validate_source, read_chunk, is_single_shot
from mediarelay.core.credential_broker import CredentialBroker
from mediarelay.core.error_codes import JobError, ValidationError
from mediarelay.core.fallback import ProviderFallbackController, RouteDecision
from mediarelay.core.job_poller import JobPoller, PollOutcome, PollUpdate, initial_eta
from mediarelay.core.merge import combine_chunk_results
from mediarelay.core.models import (
    SourceFile, ChunkTask, ChunkResult, TranscriptionJob, TranscriptionResult,
)
from mediarelay.core.output_writer import write_transcript
from mediarelay.core.provider_client import ProviderClient
from mediarelay.core.scheduling import Clock, utc_now_iso
from mediarelay.core.state_machine import (
    Effect, transition, Prepare, UploadStarted, UploadProgress, ChunksUploaded,
    ChunkJobStarted, ChunkTranscribed,
    TranscriptionStarted, StatusReported, CombineStarted, Completed, Failed, ManualRetry,
)
from mediarelay.core.state_store import ProgressStateStore, has_resumable
from mediarelay.core.upload import UploadOrchestrator, UploadAttempt
from mediarelay.core.constants import (
    JobStatus, Provider, ErrorCode, DEFAULT_OUTPUT_ROOT,
    DIRECT_UPLOAD_THRESHOLD_BYTES, CHUNK_SIZE_BYTES, MAX_UPLOAD_ATTEMPTS,
    TIMEOUT_FLOOR_SEC, MIN_THROUGHPUT_BYTES_PER_SEC, TIMEOUT_BUFFER_SEC,
    POLL_INTERVAL_SEC, POLL_CEILING_SEC,
    PROGRESS_UPLOAD_START, PROGRESS_UPLOAD_END,
    PROGRESS_TRANSCRIBE_START, PROGRESS_TRANSCRIBE_END, PROGRESS_COMBINE,
)

logger = logging.getLogger(__name__)


def _scale(fraction: float, lo: int, hi: int) -> int:
    fraction = max(0.0, min(1.0, fraction))
    return lo + int(fraction * (hi - lo))


def _unscale(progress: int, lo: int, hi: int) -> int:
    """Inverse of _scale: job progress back to the provider's 0-100 scale."""
    if hi <= lo:
        return 0
    return max(0, min(100, int((progress - lo) * 100 / (hi - lo))))


class TranscriptionPipeline:
    """
    Owns the lifecycle of the single active job.

    Holds the poll timer, the set of finalized job ids and the event queue
    as instance state, so independent pipelines never share anything.
    """

    def __init__(self, broker: CredentialBroker, client: ProviderClient,
                 state_store: ProgressStateStore, clock: Clock | None = None,
                 config: dict | None = None):
        self.broker = broker
        self.client = client
        self.state_store = state_store
        self.clock = clock or Clock()
        self.config = config or {}

        self.finalized_ids: set[str] = set()
        self.poller = JobPoller(client, self.clock,
                                interval_sec=self.poll_interval_sec,
                                ceiling_sec=self.poll_ceiling_sec,
                                finalized_ids=self.finalized_ids)
        self.uploader = UploadOrchestrator(
            client, self.clock,
            max_attempts=self.config.get('max_upload_attempts', MAX_UPLOAD_ATTEMPTS),
            timeout_floor_sec=self.config.get('timeout_floor_sec', TIMEOUT_FLOOR_SEC),
            min_throughput=self.config.get('min_throughput_bytes_per_sec',
                                           MIN_THROUGHPUT_BYTES_PER_SEC),
            timeout_buffer_sec=self.config.get('timeout_buffer_sec', TIMEOUT_BUFFER_SEC),
            on_attempt=self._on_upload_attempt,
            should_stop=lambda: self._stop_requested,
        )
        self.fallback = ProviderFallbackController(self.threshold_bytes)

        self._job: Optional[TranscriptionJob] = None
        self._events: deque = deque()
        self._dispatching = False
        self._stop_requested = False
        self._resume_checked = False

        # Callbacks
        self.on_job_updated: Optional[Callable[[TranscriptionJob], None]] = None
        self.on_upload_attempt: Optional[Callable[[UploadAttempt], None]] = None

    # ── Config helpers ────────────────────────────────────────────────

    @property
    def threshold_bytes(self) -> int:
        return self.config.get('direct_upload_threshold_bytes', DIRECT_UPLOAD_THRESHOLD_BYTES)

    @property
    def chunk_size_bytes(self) -> int:
        return min(self.config.get('chunk_size_bytes', CHUNK_SIZE_BYTES), self.threshold_bytes)

    @property
    def poll_interval_sec(self) -> float:
        return self.config.get('poll_interval_sec', POLL_INTERVAL_SEC)

    @property
    def poll_ceiling_sec(self) -> float:
        return self.config.get('poll_ceiling_sec', POLL_CEILING_SEC)

    @property
    def speaker_labels(self) -> bool:
        return self.config.get('speaker_labels', True)

    @property
    def output_root(self) -> Optional[Path]:
        if not self.config.get('write_transcripts', False):
            return None
        return Path(self.config.get('output_root', str(DEFAULT_OUTPUT_ROOT))).expanduser()

    # ── Public API ────────────────────────────────────────────────────

    @property
    def current_job(self) -> Optional[TranscriptionJob]:
        return self._job

    def is_busy(self) -> bool:
        return self._job is not None and not self._job.is_terminal

    def start(self) -> Optional[TranscriptionJob]:
        """Entry point at process start: resume persisted in-flight work."""
        self._stop_requested = False
        return self.resume()

    def stop(self):
        """
        Cooperative cancel: no new ticks or upload attempts; the active job
        fails with ERR_CANCELLED and its persisted state is cleared.
        Requests already on the wire are abandoned, not aborted.
        """
        self._stop_requested = True
        self.poller.cancel()

    def submit(self, source: SourceFile) -> TranscriptionJob:
        """Process one file to a terminal state and return the final job."""
        if self.is_busy():
            raise JobError(ErrorCode.BUSY,
                           f"Job for {self._job.source_file.name} is still in flight")
        self._stop_requested = False
        self._job = TranscriptionJob(source_file=source, created_at=utc_now_iso())
        self._process(source)
        return self._job

    def retry(self, job: TranscriptionJob) -> TranscriptionJob:
        """Manual retry of a failed job: progress resets to 0 and the file is resubmitted."""
        if self.is_busy():
            raise JobError(ErrorCode.BUSY, "Another job is still in flight")
        if job.status != JobStatus.FAILED:
            raise JobError(ErrorCode.VALIDATION,
                           f"Only failed jobs can be retried (status={job.status})")
        self._job = job
        self._dispatch(ManualRetry())
        logger.info("Manual retry #%d for %s", self._job.retry_count, job.source_file.name)
        self._stop_requested = False
        self._process(job.source_file)
        return self._job

    def resume(self) -> Optional[TranscriptionJob]:
        """
        Consult the state store once. A non-terminal record with a provider
        job id restarts polling; one carrying chunk results continues the
        chunked job from the first chunk without text. Anything else is
        discarded.
        """
        if self._resume_checked:
            return None
        self._resume_checked = True

        state = self.state_store.get()
        if state is None:
            return None
        if not has_resumable(state):
            logger.info("Discarding persisted state (status=%s, job_id=%s)",
                        state.status, state.job_id)
            self.state_store.clear()
            return None

        logger.info("Resuming job %s for %s at %d%%", state.job_id,
                    state.file_name, state.progress_percent)
        source = SourceFile(name=state.file_name or state.job_id or "unknown",
                            byte_size=state.byte_size)
        chunked = bool(state.chunk_results)
        self._job = TranscriptionJob(
            source_file=source,
            id=state.job_id,
            status=JobStatus.PROCESSING_CHUNKS if chunked else JobStatus.TRANSCRIBING,
            progress_percent=state.progress_percent,
            eta_seconds=state.eta_seconds,
            chunk_results=list(state.chunk_results),
            created_at=state.updated_at,
        )
        if chunked:
            self._run_guarded(self._finish_chunks)
        else:
            self._run_guarded(lambda: self._poll_to_completion(state.job_id))
        return self._job

    # ── Event dispatch ────────────────────────────────────────────────

    def _dispatch(self, event):
        """Apply events strictly in order; effects may enqueue further events."""
        self._events.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._events:
                current = self._events.popleft()
                self._job, effects = transition(self._job, current)
                for effect in effects:
                    self._run_effect(effect)
        finally:
            self._dispatching = False

    def _run_effect(self, effect: str):
        job = self._job
        if effect == Effect.PERSIST:
            self.state_store.set(job)
        elif effect == Effect.FINALIZE:
            self._finalize(job)
        elif effect == Effect.NOTIFY:
            if self.on_job_updated:
                self.on_job_updated(job)

    def _finalize(self, job: TranscriptionJob):
        """Terminal handling: persist the result, clear the slot, log."""
        if job.id:
            self.finalized_ids.add(job.id)
        if job.status == JobStatus.COMPLETED and job.result and self.output_root:
            try:
                write_transcript(job.result.text, self.output_root,
                                 job.source_file.name, job.id or "local")
            except OSError as e:
                logger.error("Could not write transcript for %s: %s",
                             job.source_file.name, e)
        self.state_store.clear()
        if job.status == JobStatus.COMPLETED:
            logger.info("Finished %s via %s provider (job %s)",
                        job.source_file.name, job.provider, job.id)
        else:
            logger.warning("Failed %s: [%s] %s", job.source_file.name,
                           job.error_code, job.error_message)

    # ── Processing ────────────────────────────────────────────────────

    def _run_guarded(self, work: Callable[[], None]):
        """Run `work`; any error becomes a terminal Failed event."""
        try:
            work()
            if not self._job.is_terminal and self._stop_requested:
                raise JobError(ErrorCode.CANCELLED, "Processing stopped by user")
        except JobError as e:
            self._dispatch(Failed(e.code, e.message, e.hint, at=utc_now_iso()))
        except OSError as e:
            logger.error("I/O error processing %s: %s", self._job.source_file.name, e)
            self._dispatch(Failed(ErrorCode.VALIDATION, f"Cannot read file: {e}",
                                  at=utc_now_iso()))
        except Exception as e:
            logger.error("Unexpected error processing %s: %s",
                         self._job.source_file.name, e, exc_info=True)
            self._dispatch(Failed(ErrorCode.UNEXPECTED, str(e)[:2000], at=utc_now_iso()))

    def _process(self, source: SourceFile):
        self._run_guarded(lambda: self._process_source(source))

    def _process_source(self, source: SourceFile):
        validate_source(source)
        if source.path is None:
            raise ValidationError(f"No local path for '{source.name}'")
        chunks = plan_chunks(source, self.threshold_bytes, self.chunk_size_bytes)

        # Fresh credential every run; never reused across pipeline restarts
        decision = self.fallback.decide(source, self.broker.request_upload_credential(source))

        self._dispatch(Prepare(
            chunks=tuple(chunks) if not decision.is_fallback else (),
            provider=decision.provider,
            eta_seconds=initial_eta(source.byte_size),
            at=utc_now_iso(),
        ))

        if decision.is_fallback:
            self._run_fallback(source)
        elif not is_single_shot(chunks, source):
            self._run_chunked(source, chunks, decision)
        else:
            self._run_single(source, chunks[0], decision)

    def _run_single(self, source: SourceFile, task: ChunkTask, decision: RouteDecision):
        self._dispatch(UploadStarted(PROGRESS_UPLOAD_START))
        payload = read_chunk(Path(source.path), task)
        data = self.uploader.upload(payload, decision.credential, source.name,
                                    source.mime_type)
        self._dispatch(UploadProgress(PROGRESS_UPLOAD_END))

        job_id = self.client.create_job(data['uploadedUrl'], self.speaker_labels)
        logger.info("Created job %s for %s", job_id, source.name)
        self._dispatch(TranscriptionStarted(job_id, PROGRESS_TRANSCRIBE_START))
        self._poll_to_completion(job_id)

    def _run_chunked(self, source: SourceFile, chunks: list[ChunkTask],
                     decision: RouteDecision):
        self._dispatch(UploadStarted(PROGRESS_UPLOAD_START))

        def on_chunk_done(result: ChunkResult, total: int):
            self._dispatch(UploadProgress(_scale((result.index + 1) / total,
                                                 PROGRESS_UPLOAD_START, PROGRESS_UPLOAD_END)))

        results = self.uploader.upload_chunks(Path(source.path), chunks, decision.credential,
                                              source.mime_type, on_chunk_done)
        self._dispatch(ChunksUploaded(PROGRESS_UPLOAD_END, tuple(results)))
        self._finish_chunks()

    def _finish_chunks(self):
        """
        Transcribe every chunk still lacking text, then combine. Works from
        job.chunk_results, so it also continues a chunked job after restart.
        """
        total = len(self._job.chunk_results)
        # Chunks the gateway did not transcribe inline get a provider job each
        for result in list(self._job.chunk_results):
            if result.transcript_text is None:
                self._transcribe_chunk(result, total)

        self._dispatch(CombineStarted(PROGRESS_COMBINE))
        combined = combine_chunk_results(self._job.chunk_results, job_id=self._job.id,
                                         provider=Provider.PRIMARY)
        self._dispatch(Completed(combined, at=utc_now_iso()))

    def _transcribe_chunk(self, result: ChunkResult, total: int):
        self._check_stopped()
        job_id = result.job_id
        if job_id is None:
            job_id = self.client.create_job(result.uploaded_url, self.speaker_labels)
            logger.info("Created job %s for chunk %d/%d", job_id, result.index + 1, total)
            self._dispatch(ChunkJobStarted(result.index, job_id))
        else:
            logger.info("Resuming job %s for chunk %d/%d", job_id, result.index + 1, total)
        lo = _scale(result.index / total, PROGRESS_TRANSCRIBE_START, PROGRESS_TRANSCRIBE_END)
        hi = _scale((result.index + 1) / total, PROGRESS_TRANSCRIBE_START,
                    PROGRESS_TRANSCRIBE_END)
        outcomes: list[PollOutcome] = []

        def on_update(update: PollUpdate):
            self._dispatch(StatusReported(_scale(update.progress_percent / 100, lo, hi),
                                          update.eta_seconds))

        self.poller.start(job_id, on_update, outcomes.append,
                          initial_progress=_unscale(self._job.progress_percent, lo, hi))
        if not outcomes:
            raise JobError(ErrorCode.CANCELLED, f"Polling for chunk job {job_id} stopped")
        outcome = outcomes[0]
        if not outcome.succeeded:
            raise outcome.error
        self._dispatch(ChunkTranscribed(
            replace(result, job_id=job_id, transcript_text=outcome.result.text,
                    duration_seconds=outcome.result.duration_seconds),
            hi,
        ))

    def _run_fallback(self, source: SourceFile):
        self._dispatch(UploadStarted(PROGRESS_UPLOAD_START))
        payload = Path(source.path).read_bytes()
        data = self.uploader.transfer(
            f"{source.name} (fallback)", len(payload),
            lambda timeout_sec: self.client.fallback_transcribe(source, payload, timeout_sec),
        )
        result = TranscriptionResult(
            text=data.get('transcriptText') or "",
            duration_seconds=float(data.get('durationSeconds') or 0.0),
            provider=Provider.FALLBACK,
        )
        self._dispatch(Completed(result, at=utc_now_iso()))

    def _poll_to_completion(self, job_id: str):
        self._check_stopped()

        def on_update(update: PollUpdate):
            self._dispatch(StatusReported(
                _scale(update.progress_percent / 100,
                       PROGRESS_TRANSCRIBE_START, PROGRESS_TRANSCRIBE_END),
                update.eta_seconds,
            ))

        def on_terminal(outcome: PollOutcome):
            if outcome.succeeded:
                self._dispatch(Completed(outcome.result, at=utc_now_iso()))
            else:
                e = outcome.error
                self._dispatch(Failed(e.code, e.message, e.hint, at=utc_now_iso()))

        self.poller.start(job_id, on_update, on_terminal,
                          initial_progress=_unscale(self._job.progress_percent,
                                                    PROGRESS_TRANSCRIBE_START,
                                                    PROGRESS_TRANSCRIBE_END))

    def _check_stopped(self):
        if self._stop_requested:
            raise JobError(ErrorCode.CANCELLED, "Processing stopped by user")

    def _on_upload_attempt(self, attempt: UploadAttempt):
        # Keep the persisted slot fresh between retries
        if self._job is not None and not self._job.is_terminal:
            self.state_store.set(self._job)
        if self.on_upload_attempt:
            self.on_upload_attempt(attempt)
