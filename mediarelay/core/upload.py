"""
Upload orchestration: one binary transfer at a time with bounded retries.
Timeouts scale with payload size; backoff is exponential (2s, 4s, ...).
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from mediarelay.core.chunk_planner import read_chunk
from mediarelay.core.error_codes import JobError
from mediarelay.core.models import ChunkTask, ChunkResult, UploadCredential
from mediarelay.core.provider_client import ProviderClient
from mediarelay.core.scheduling import Clock
from mediarelay.core.constants import (
    ErrorCode, MAX_UPLOAD_ATTEMPTS, BACKOFF_BASE_SEC,
    TIMEOUT_FLOOR_SEC, MIN_THROUGHPUT_BYTES_PER_SEC, TIMEOUT_BUFFER_SEC,
    DEFAULT_MIME_TYPE,
)

logger = logging.getLogger(__name__)


def compute_timeout(size_bytes: int,
                    floor_sec: float = TIMEOUT_FLOOR_SEC,
                    min_throughput: float = MIN_THROUGHPUT_BYTES_PER_SEC,
                    buffer_sec: float = TIMEOUT_BUFFER_SEC) -> float:
    """Small payloads fail fast, large ones get proportionally more time."""
    return max(float(floor_sec), size_bytes / float(min_throughput) + buffer_sec)


def backoff_delay(retry_number: int) -> float:
    """Seconds to wait before retry `retry_number` (1-based): 2, 4, 8, ..."""
    return float(BACKOFF_BASE_SEC ** retry_number)


@dataclass(frozen=True)
class UploadAttempt:
    label: str
    attempt: int
    max_attempts: int
    succeeded: bool
    error_code: Optional[str] = None
    delay_sec: float = 0.0


class UploadOrchestrator:
    """
    Transfers payloads to a provider upload URL.

    Only retryable JobErrors (timeouts, connection resets, 5xx/429) are
    retried; anything else aborts immediately with its remediation hint.
    `on_attempt` fires after every attempt, success or failure.
    """

    def __init__(self, client: ProviderClient, clock: Clock,
                 max_attempts: int = MAX_UPLOAD_ATTEMPTS,
                 timeout_floor_sec: float = TIMEOUT_FLOOR_SEC,
                 min_throughput: float = MIN_THROUGHPUT_BYTES_PER_SEC,
                 timeout_buffer_sec: float = TIMEOUT_BUFFER_SEC,
                 on_attempt: Callable[[UploadAttempt], None] | None = None,
                 should_stop: Callable[[], bool] | None = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.clock = clock
        self.max_attempts = max_attempts
        self.timeout_floor_sec = timeout_floor_sec
        self.min_throughput = min_throughput
        self.timeout_buffer_sec = timeout_buffer_sec
        self.on_attempt = on_attempt
        self.should_stop = should_stop

    def timeout_for(self, size_bytes: int) -> float:
        return compute_timeout(size_bytes, self.timeout_floor_sec,
                               self.min_throughput, self.timeout_buffer_sec)

    def _check_stopped(self, label: str):
        if self.should_stop and self.should_stop():
            raise JobError(ErrorCode.CANCELLED, f"Upload of {label} cancelled")

    def _notify(self, attempt: UploadAttempt):
        if self.on_attempt:
            self.on_attempt(attempt)

    def upload(self, payload: bytes, credential: UploadCredential, label: str,
               mime_type: str = DEFAULT_MIME_TYPE) -> dict:
        """Upload one payload. Returns the provider's upload response body."""
        return self.transfer(
            label, len(payload),
            lambda timeout_sec: self.client.upload_bytes(credential, payload,
                                                         timeout_sec, mime_type),
        )

    def transfer(self, label: str, size_bytes: int,
                 send: Callable[[float], dict]) -> dict:
        """
        Run `send(timeout_sec)` with the retry policy. Shared by direct
        uploads and the fallback route, which also carries the raw bytes.
        """
        timeout_sec = self.timeout_for(size_bytes)

        for attempt in range(1, self.max_attempts + 1):
            self._check_stopped(label)
            try:
                data = send(timeout_sec)
            except JobError as e:
                if not e.retryable:
                    logger.error("Upload of %s failed permanently: %s", label, e)
                    self._notify(UploadAttempt(label, attempt, self.max_attempts,
                                               False, e.code))
                    raise

                if attempt >= self.max_attempts:
                    logger.error("Upload of %s failed after %d attempts: %s",
                                 label, attempt, e)
                    self._notify(UploadAttempt(label, attempt, self.max_attempts,
                                               False, e.code))
                    raise JobError(e.code,
                                   f"{e.message} (gave up after {attempt} attempts)",
                                   retryable=True) from e

                delay = backoff_delay(attempt)
                logger.warning(
                    "Upload of %s failed (%s), retrying in %.0fs (attempt %d/%d)",
                    label, e.code, delay, attempt, self.max_attempts,
                )
                self._notify(UploadAttempt(label, attempt, self.max_attempts,
                                           False, e.code, delay))
                self.clock.sleep(delay)
                continue

            logger.info("Transferred %s (%d bytes) on attempt %d", label, size_bytes, attempt)
            self._notify(UploadAttempt(label, attempt, self.max_attempts, True))
            return data

        # Should never reach here
        raise JobError(ErrorCode.NETWORK_TRANSIENT, f"Upload of {label} exhausted retries",
                       retryable=True)

    def upload_chunks(self, path: Path, chunks: list[ChunkTask],
                      credential: UploadCredential,
                      mime_type: str = DEFAULT_MIME_TYPE,
                      on_chunk_done: Callable[[ChunkResult, int], None] | None = None,
                      ) -> list[ChunkResult]:
        """
        Upload chunks strictly in order; chunk n+1 starts only after chunk n
        succeeded. Each chunk's partial transcript and duration, when the
        provider returns them, are kept for the combine step.
        """
        results = []
        total = len(chunks)
        for task in chunks:
            self._check_stopped(task.derived_filename)
            payload = read_chunk(path, task)
            data = self.upload(payload, credential, task.derived_filename, mime_type)
            result = ChunkResult(
                index=task.index,
                uploaded_url=data.get('uploadedUrl'),
                transcript_text=data.get('transcriptText'),
                duration_seconds=float(data.get('durationSeconds') or 0.0),
            )
            results.append(result)
            if on_chunk_done:
                on_chunk_done(result, total)
        return results
