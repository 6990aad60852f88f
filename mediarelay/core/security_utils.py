"""
Security utilities for MediaRelay.
- Path traversal protection
- Filename sanitization
- Token redaction for log output
"""

import re
import pathlib
import logging

from mediarelay.core.constants import UNSAFE_FILENAME_CHARS, MAX_FILENAME_LEN

logger = logging.getLogger(__name__)


# ── Filename / path safety ────────────────────────────────────────────

def sanitize_filename(name: str) -> str:
    """Sanitize a media file name for use in derived chunk and output names."""
    if not name:
        return ""
    # Replace unsafe characters with underscore
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', name)
    # Remove path traversal sequences
    safe = safe.replace('..', '')
    # Collapse multiple underscores/spaces
    safe = re.sub(r'[_\s]+', ' ', safe).strip()
    if len(safe) > MAX_FILENAME_LEN:
        safe = safe[:MAX_FILENAME_LEN].rstrip()
    # Remove leading/trailing dots (hidden files)
    safe = safe.strip('.')
    return safe if safe else ""


def safe_output_path(output_root: pathlib.Path, file_name: str, fallback_id: str) -> pathlib.Path:
    """
    Build a safe output file path.  Enforces that realpath(result) starts
    with realpath(output_root).  Falls back to 'transcript_<fallback_id>' on failure.
    """
    stem = sanitize_filename(pathlib.Path(file_name).stem) if file_name else ""
    if not stem:
        stem = f"transcript_{fallback_id}"

    candidate = output_root / f"{stem}.txt"
    try:
        real_root = output_root.resolve(strict=False)
        real_candidate = candidate.resolve(strict=False)
        if not str(real_candidate).startswith(str(real_root)):
            raise ValueError("Path traversal detected")
    except (OSError, ValueError):
        candidate = output_root / f"transcript_{fallback_id}.txt"

    return candidate


# ── Log redaction ─────────────────────────────────────────────────────

def redact_token(token: str | None) -> str:
    """Show only the last 4 characters of a credential."""
    if not token:
        return "<none>"
    if len(token) <= 4:
        return "****"
    return "****" + token[-4:]
