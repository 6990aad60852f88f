"""
Shared constants for MediaRelay.
Single source of truth, imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "MediaRelay"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_SUPPORT_DIR = HOME / ".mediarelay"
LOG_DIR = APP_SUPPORT_DIR / "logs"
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"
STATE_PATH = APP_SUPPORT_DIR / "active_job.json"
STATE_DB_PATH = APP_SUPPORT_DIR / "state.db"
DEFAULT_OUTPUT_ROOT = HOME / "Documents" / "MediaRelay Transcripts"

# ── Job status values (ordered by lifecycle) ──────────────────────────
class JobStatus:
    IDLE = "idle"
    PREPARING = "preparing"
    PREPARING_CHUNKS = "preparing_chunks"
    UPLOADING = "uploading"
    PROCESSING_CHUNKS = "processing_chunks"
    TRANSCRIBING = "transcribing"
    COMBINING_RESULTS = "combining_results"
    COMPLETED = "completed"
    FAILED = "failed"

TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}

# ── Provider routes ───────────────────────────────────────────────────
class Provider:
    PRIMARY = "primary"
    FALLBACK = "fallback"

# ── Provider-side job status strings ──────────────────────────────────
class RemoteStatus:
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Non-retryable
    VALIDATION = "ERR_VALIDATION"
    AUTH_OR_BILLING = "ERR_AUTH_OR_BILLING"
    MALFORMED_REQUEST = "ERR_MALFORMED_REQUEST"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    UNSUPPORTED_FORMAT = "ERR_UNSUPPORTED_FORMAT"
    JOB_FAILED = "ERR_JOB_FAILED"
    POLL_EXHAUSTED = "ERR_POLL_EXHAUSTED"
    CANCELLED = "ERR_CANCELLED"
    BUSY = "ERR_BUSY"
    UNEXPECTED = "ERR_UNEXPECTED"

    # Retryable
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"
    UPLOAD_TIMEOUT = "ERR_UPLOAD_TIMEOUT"

RETRYABLE_ERRORS = {
    ErrorCode.NETWORK_TRANSIENT,
    ErrorCode.UPLOAD_TIMEOUT,
}

ERROR_HINTS = {
    ErrorCode.VALIDATION: "Choose a non-empty, readable media file.",
    ErrorCode.AUTH_OR_BILLING: "Check the provider account credentials and billing status.",
    ErrorCode.MALFORMED_REQUEST: "The provider rejected the request; check the file metadata and client version.",
    ErrorCode.PAYLOAD_TOO_LARGE: "Split or compress the file before uploading.",
    ErrorCode.UNSUPPORTED_FORMAT: "Convert the media to a supported audio format (mp3, m4a, wav).",
    ErrorCode.JOB_FAILED: "The provider could not transcribe this file; see the reason above.",
    ErrorCode.POLL_EXHAUSTED: "The job may still finish at the provider; check its status later.",
    ErrorCode.CANCELLED: "Processing was stopped; resubmit the file to try again.",
    ErrorCode.BUSY: "Wait for the current job to finish before submitting another.",
    ErrorCode.UNEXPECTED: "Check the log file for details.",
    ErrorCode.NETWORK_TRANSIENT: "Check your internet connection and try again.",
    ErrorCode.UPLOAD_TIMEOUT: "The connection is too slow for this file; try again on a faster network.",
}

# ── HTTP status classification ────────────────────────────────────────
AUTH_STATUS_CODES = {401, 402, 403}
MALFORMED_STATUS_CODES = {400, 422}
TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}
ERROR_BODY_PREVIEW = 300

# ── Upload pipeline defaults ──────────────────────────────────────────
MB = 1024 * 1024
DIRECT_UPLOAD_THRESHOLD_BYTES = 4 * MB   # gateway body ceiling
CHUNK_SIZE_BYTES = 4 * MB
FALLBACK_MAX_BYTES = 25 * MB

MAX_UPLOAD_ATTEMPTS = 3
BACKOFF_BASE_SEC = 2
TIMEOUT_FLOOR_SEC = 30
MIN_THROUGHPUT_BYTES_PER_SEC = 100 * 1024
TIMEOUT_BUFFER_SEC = 15
REQUEST_TIMEOUT_SEC = 30                 # credential, job and status calls

# ── Polling ───────────────────────────────────────────────────────────
POLL_INTERVAL_SEC = 5
POLL_CEILING_SEC = 6 * 3600
HEURISTIC_PROGRESS_STEP = 5
HEURISTIC_PROGRESS_CAP = 90
HEURISTIC_SEC_PER_PERCENT = 3
INITIAL_ETA_SEC_PER_MB = 30

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_UPLOAD_START = 10
PROGRESS_UPLOAD_END = 25
PROGRESS_TRANSCRIBE_START = 30
PROGRESS_TRANSCRIBE_END = 95
PROGRESS_COMBINE = 96
PROGRESS_DONE = 100

# ── Provider API ──────────────────────────────────────────────────────
DEFAULT_BROKER_URL = "http://localhost:8080"
DEFAULT_API_BASE = "http://localhost:8080"
DEFAULT_MIME_TYPE = "application/octet-stream"

# ── Misc ──────────────────────────────────────────────────────────────
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FILENAME_LEN = 200
