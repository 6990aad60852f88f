"""
Standardised error handling for MediaRelay.
"""

from mediarelay.core.constants import ErrorCode, RETRYABLE_ERRORS, ERROR_HINTS, MB


class JobError(Exception):
    """Raised when a job encounters a known error condition."""

    def __init__(self, code: str, message: str, retryable: bool | None = None,
                 hint: str | None = None):
        self.code = code
        self.message = message
        # auto-detect retryable from code if not explicitly set
        self.retryable = retryable if retryable is not None else (code in RETRYABLE_ERRORS)
        self.hint = hint if hint is not None else ERROR_HINTS.get(code, "")
        super().__init__(f"[{code}] {message}")

    def describe(self) -> str:
        """Message plus remediation hint, for display to the user."""
        if self.hint:
            return f"{self.message} ({self.hint})"
        return self.message


class ValidationError(JobError):
    """The source file cannot be planned (empty, missing or unreadable)."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.VALIDATION, message, retryable=False)


class FileTooLargeForFallback(JobError):
    """File exceeds both the direct-upload path and the fallback ceiling."""

    def __init__(self, file_size: int, max_fallback_size: int, direct_limit: int | None = None):
        self.file_size = file_size
        self.max_fallback_size = max_fallback_size
        self.direct_limit = direct_limit
        parts = [f"File is {file_size / MB:.1f}MB but the fallback provider "
                 f"accepts at most {max_fallback_size / MB:.1f}MB"]
        if direct_limit is not None:
            parts.append(f"and the primary upload limit is {direct_limit / MB:.1f}MB")
        super().__init__(ErrorCode.PAYLOAD_TOO_LARGE, " ".join(parts), retryable=False)


class JobFailed(JobError):
    """The provider reported a job-level failure. Reason is passed through verbatim."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(ErrorCode.JOB_FAILED, reason, retryable=False)


class PollExhausted(JobError):
    """Safety ceiling reached before the provider reported a terminal state."""

    def __init__(self, job_id: str, elapsed_sec: float):
        self.job_id = job_id
        self.elapsed_sec = elapsed_sec
        super().__init__(ErrorCode.POLL_EXHAUSTED,
                         f"Gave up waiting for job {job_id} after {elapsed_sec:.0f}s",
                         retryable=False)


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS
