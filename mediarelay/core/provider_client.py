"""
HTTP client for the transcription provider.
Direct upload, job creation, job status and the synchronous fallback route.
Every failure is translated into a JobError with a retryable flag.
"""

import json
import logging

import requests

from mediarelay.core.error_codes import JobError
from mediarelay.core.models import UploadCredential, SourceFile
from mediarelay.core.security_utils import redact_token
from mediarelay.core.constants import (
    ErrorCode, AUTH_STATUS_CODES, MALFORMED_STATUS_CODES, TRANSIENT_STATUS_CODES,
    ERROR_BODY_PREVIEW, REQUEST_TIMEOUT_SEC, DEFAULT_MIME_TYPE,
)

logger = logging.getLogger(__name__)


def _body_preview(resp: requests.Response) -> str:
    # Sanitize error message (never echo headers or tokens)
    return resp.text[:ERROR_BODY_PREVIEW] if resp.text else "No response body"


def classify_response(resp: requests.Response, context: str) -> JobError | None:
    """Map a non-2xx response to a JobError. Returns None for success."""
    status = resp.status_code
    if 200 <= status < 300:
        return None

    body = _body_preview(resp)
    lowered = body.lower()

    if status in AUTH_STATUS_CODES:
        return JobError(ErrorCode.AUTH_OR_BILLING,
                        f"{context} rejected by provider ({status}): {body}")
    if status == 413:
        return JobError(ErrorCode.PAYLOAD_TOO_LARGE,
                        f"{context} payload too large ({status}): {body}")
    if status == 415 or (status in MALFORMED_STATUS_CODES
                         and "unsupported" in lowered and "format" in lowered):
        return JobError(ErrorCode.UNSUPPORTED_FORMAT,
                        f"{context} media type not supported ({status}): {body}")
    if status in MALFORMED_STATUS_CODES:
        return JobError(ErrorCode.MALFORMED_REQUEST,
                        f"{context} rejected as malformed ({status}): {body}")
    if status in TRANSIENT_STATUS_CODES or status >= 500:
        return JobError(ErrorCode.NETWORK_TRANSIENT,
                        f"{context} failed with {status}: {body}", retryable=True)
    return JobError(ErrorCode.UNEXPECTED,
                    f"{context} returned {status}: {body}", retryable=False)


def classify_exception(exc: Exception, context: str) -> JobError:
    """Map a requests transport exception to a JobError."""
    if isinstance(exc, requests.exceptions.Timeout):
        return JobError(ErrorCode.UPLOAD_TIMEOUT, f"{context} timed out", retryable=True)
    if isinstance(exc, (requests.exceptions.ConnectionError,
                        requests.exceptions.ChunkedEncodingError)):
        return JobError(ErrorCode.NETWORK_TRANSIENT,
                        f"Network error during {context}: {type(exc).__name__}",
                        retryable=True)
    return JobError(ErrorCode.UNEXPECTED, f"{context} failed: {exc}", retryable=False)


def parse_json(resp: requests.Response, context: str) -> dict:
    try:
        data = resp.json()
    except (json.JSONDecodeError, ValueError):
        raise JobError(ErrorCode.MALFORMED_REQUEST,
                       f"Failed to parse {context} response JSON")
    if not isinstance(data, dict):
        raise JobError(ErrorCode.MALFORMED_REQUEST,
                       f"Unexpected {context} response shape: {type(data).__name__}")
    return data


class ProviderClient:
    """Thin wrapper over the provider's REST API."""

    def __init__(self, api_base_url: str, session: requests.Session | None = None,
                 api_token: str | None = None,
                 request_timeout: float = REQUEST_TIMEOUT_SEC):
        self.api_base_url = api_base_url.rstrip('/')
        self.session = session or requests.Session()
        self.api_token = api_token
        self.request_timeout = request_timeout

    def _headers(self) -> dict:
        return {"Authorization": self.api_token} if self.api_token else {}

    def _send(self, method: str, url: str, context: str, **kwargs) -> requests.Response:
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise classify_exception(e, context) from e
        error = classify_response(resp, context)
        if error:
            raise error
        return resp

    # ── Direct upload ─────────────────────────────────────────────────

    def upload_bytes(self, credential: UploadCredential, payload: bytes,
                     timeout_sec: float, mime_type: str = DEFAULT_MIME_TYPE) -> dict:
        """
        POST raw bytes to the credential's upload URL.
        Returns the decoded body: {uploadedUrl, transcriptText?, durationSeconds?}.
        """
        logger.debug("Uploading %d bytes to %s (token %s, timeout %.0fs)",
                     len(payload), credential.upload_url,
                     redact_token(credential.auth_token), timeout_sec)
        resp = self._send(
            "POST", credential.upload_url, "Upload",
            headers={
                "Authorization": credential.auth_token,
                "Content-Type": mime_type or DEFAULT_MIME_TYPE,
            },
            data=payload,
            timeout=timeout_sec,
        )
        data = parse_json(resp, "upload")
        if not data.get('uploadedUrl'):
            raise JobError(ErrorCode.MALFORMED_REQUEST, "Upload response missing uploadedUrl")
        return data

    # ── Async jobs ────────────────────────────────────────────────────

    def create_job(self, audio_ref: str, speaker_labels: bool = True) -> str:
        resp = self._send(
            "POST", f"{self.api_base_url}/jobs", "Job creation",
            headers=self._headers(),
            json={"audioRef": audio_ref, "speakerLabels": bool(speaker_labels)},
            timeout=self.request_timeout,
        )
        data = parse_json(resp, "job creation")
        job_id = data.get('jobId')
        if not job_id:
            raise JobError(ErrorCode.MALFORMED_REQUEST, "Job creation response missing jobId")
        return str(job_id)

    def get_job_status(self, job_id: str) -> dict:
        """GET /jobs/{id} -> {status, progressPercent?, result?, error?}."""
        resp = self._send(
            "GET", f"{self.api_base_url}/jobs/{job_id}", "Status check",
            headers=self._headers(),
            timeout=self.request_timeout,
        )
        return parse_json(resp, "status")

    # ── Synchronous fallback ──────────────────────────────────────────

    def fallback_transcribe(self, source: SourceFile, payload: bytes,
                            timeout_sec: float) -> dict:
        """POST the whole file to the size-capped fallback route."""
        files = {
            "audio": (source.name, payload, source.mime_type or DEFAULT_MIME_TYPE),
        }
        resp = self._send(
            "POST", f"{self.api_base_url}/fallback-transcribe", "Fallback transcription",
            headers=self._headers(),
            files=files,
            timeout=timeout_sec,
        )
        data = parse_json(resp, "fallback transcription")
        if 'transcriptText' not in data:
            raise JobError(ErrorCode.MALFORMED_REQUEST,
                           "Fallback response missing transcriptText")
        return data
