"""
Byte-range chunk planning for large uploads.
Chunks only when the file exceeds the direct-upload gateway threshold.
"""

import logging
import math
import os
from pathlib import Path

from mediarelay.core.error_codes import ValidationError
from mediarelay.core.constants import DIRECT_UPLOAD_THRESHOLD_BYTES, CHUNK_SIZE_BYTES
from mediarelay.core.models import SourceFile, ChunkTask
from mediarelay.core.security_utils import sanitize_filename

logger = logging.getLogger(__name__)


def validate_source(source: SourceFile):
    """Reject zero-byte, missing or unreadable files before any planning."""
    if source.byte_size <= 0:
        raise ValidationError(f"File '{source.name}' is empty")
    if source.path is not None:
        path = Path(source.path)
        if not path.is_file():
            raise ValidationError(f"File '{source.name}' does not exist")
        if not os.access(path, os.R_OK):
            raise ValidationError(f"File '{source.name}' is not readable")


def needs_chunking(byte_size: int, threshold: int = DIRECT_UPLOAD_THRESHOLD_BYTES) -> bool:
    """Check if a payload of this size must be split to pass the gateway."""
    return byte_size > threshold


def derive_chunk_filename(name: str, index: int, total: int) -> str:
    """'talk.mp3', chunk 2 of 5 -> 'talk.part003-of-005.mp3'."""
    path = Path(sanitize_filename(name) or "upload")
    width = max(3, len(str(total)))
    return f"{path.stem}.part{index + 1:0{width}d}-of-{total:0{width}d}{path.suffix}"


def plan_chunks(source: SourceFile,
                threshold: int = DIRECT_UPLOAD_THRESHOLD_BYTES,
                chunk_size: int = CHUNK_SIZE_BYTES) -> list[ChunkTask]:
    """
    Plan the upload of `source`.

    Returns a single task spanning the whole file when it fits under
    `threshold`, otherwise contiguous tasks of `chunk_size` bytes covering
    [0, byte_size) exactly; only the last one may be shorter.
    """
    validate_source(source)
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    size = source.byte_size
    if not needs_chunking(size, threshold):
        return [ChunkTask(index=0, byte_start=0, byte_end=size,
                          derived_filename=sanitize_filename(source.name) or "upload")]

    total = math.ceil(size / chunk_size)
    chunks = []
    for idx in range(total):
        start = idx * chunk_size
        end = min(start + chunk_size, size)
        chunks.append(ChunkTask(
            index=idx,
            byte_start=start,
            byte_end=end,
            derived_filename=derive_chunk_filename(source.name, idx, total),
        ))

    logger.info("Planned %d chunks of up to %d bytes for %s (%d bytes)",
                total, chunk_size, source.name, size)
    return chunks


def is_single_shot(chunks: list[ChunkTask], source: SourceFile) -> bool:
    return len(chunks) == 1 and chunks[0].byte_start == 0 and chunks[0].byte_end == source.byte_size


def read_chunk(path: Path, task: ChunkTask) -> bytes:
    """Read the byte range of one chunk from disk."""
    with open(path, 'rb') as f:
        f.seek(task.byte_start)
        data = f.read(task.length)
    if len(data) != task.length:
        raise ValidationError(
            f"Short read on {task.derived_filename}: expected {task.length} bytes, got {len(data)}")
    return data
