"""
Provider fallback routing.
Decided once per job, before any bytes are transferred.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from mediarelay.core.error_codes import FileTooLargeForFallback
from mediarelay.core.models import SourceFile, UploadCredential, FallbackDirective
from mediarelay.core.constants import Provider, DIRECT_UPLOAD_THRESHOLD_BYTES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteDecision:
    provider: str
    credential: Optional[UploadCredential] = None
    directive: Optional[FallbackDirective] = None

    @property
    def is_fallback(self) -> bool:
        return self.provider == Provider.FALLBACK


class ProviderFallbackController:

    def __init__(self, direct_limit: int = DIRECT_UPLOAD_THRESHOLD_BYTES):
        self.direct_limit = direct_limit

    def decide(self, source: SourceFile,
               broker_response: UploadCredential | FallbackDirective) -> RouteDecision:
        """
        Primary route when the broker issued a credential. On a fallback
        directive, route to the synchronous fallback provider if the file
        fits under its ceiling, otherwise fail fast without uploading.
        """
        if isinstance(broker_response, UploadCredential):
            return RouteDecision(provider=Provider.PRIMARY, credential=broker_response)

        directive = broker_response
        if source.byte_size > directive.max_fallback_size_bytes:
            logger.warning("%s (%d bytes) exceeds fallback limit %d: %s",
                           source.name, source.byte_size,
                           directive.max_fallback_size_bytes, directive.reason)
            raise FileTooLargeForFallback(source.byte_size,
                                          directive.max_fallback_size_bytes,
                                          self.direct_limit)

        logger.info("Routing %s through fallback provider (%s)", source.name,
                    directive.message or directive.reason)
        return RouteDecision(provider=Provider.FALLBACK, directive=directive)
