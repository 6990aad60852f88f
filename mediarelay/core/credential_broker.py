"""
Credential broker client.
Requests ephemeral, single-use upload credentials from the trusted backend.
"""

import logging

import requests

from mediarelay.core.error_codes import JobError
from mediarelay.core.models import SourceFile, UploadCredential, FallbackDirective
from mediarelay.core.provider_client import classify_exception, classify_response, parse_json
from mediarelay.core.scheduling import utc_now_iso
from mediarelay.core.constants import ErrorCode, REQUEST_TIMEOUT_SEC, FALLBACK_MAX_BYTES

logger = logging.getLogger(__name__)


class CredentialBroker:
    """Interface consumed by the pipeline."""

    def request_upload_credential(self, source: SourceFile) -> UploadCredential | FallbackDirective:
        raise NotImplementedError


def parse_broker_response(data: dict) -> UploadCredential | FallbackDirective:
    """Decode a /credentials body into a credential or a fallback directive."""
    if data.get('fallback'):
        try:
            max_size = int(data.get('maxFallbackSizeBytes') or FALLBACK_MAX_BYTES)
        except (TypeError, ValueError):
            max_size = FALLBACK_MAX_BYTES
        return FallbackDirective(
            reason=str(data['fallback']),
            max_fallback_size_bytes=max_size,
            message=data.get('message', ''),
        )

    upload_url = data.get('uploadUrl')
    auth_token = data.get('authToken')
    if not upload_url or not auth_token:
        raise JobError(ErrorCode.MALFORMED_REQUEST,
                       "Credential response missing uploadUrl/authToken")
    return UploadCredential(upload_url=upload_url, auth_token=auth_token,
                            issued_at=utc_now_iso())


class HttpCredentialBroker(CredentialBroker):
    """POST {broker_url}/credentials. Never caches: one request per call."""

    def __init__(self, broker_url: str, session: requests.Session | None = None,
                 timeout: float = REQUEST_TIMEOUT_SEC):
        self.broker_url = broker_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def request_upload_credential(self, source: SourceFile) -> UploadCredential | FallbackDirective:
        context = "Credential request"
        try:
            resp = self.session.post(
                f"{self.broker_url}/credentials",
                json={
                    "fileName": source.name,
                    "fileSize": source.byte_size,
                    "mimeType": source.mime_type,
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise classify_exception(e, context) from e

        error = classify_response(resp, context)
        if error:
            raise error

        result = parse_broker_response(parse_json(resp, "credential"))
        if isinstance(result, FallbackDirective):
            logger.info("Broker directed %s to fallback provider: %s",
                        source.name, result.reason)
        return result
