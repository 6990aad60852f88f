"""
Combine per-chunk transcription results into a single result.

Chunks are byte ranges with no overlap, so text is joined in order
with a single space and without deduplication. Speaker labels and
timestamps are not reconciled across a chunk boundary: an utterance split
by a boundary shows up as two utterances.
"""

import logging

from mediarelay.core.models import ChunkResult, TranscriptionResult
from mediarelay.core.constants import Provider

logger = logging.getLogger(__name__)


def merge_transcripts(texts: list[str]) -> str:
    """Join transcript texts in order, dropping empty parts."""
    parts = [t.strip() for t in texts if t and t.strip()]
    return " ".join(parts)


def combine_chunk_results(results: list[ChunkResult], job_id: str | None = None,
                          provider: str = Provider.PRIMARY) -> TranscriptionResult:
    ordered = sorted(results, key=lambda r: r.index)
    missing = [r.index for r in ordered if not r.transcript_text]
    if missing:
        logger.warning("Chunks with no transcript text: %s", missing)
    text = merge_transcripts([r.transcript_text or "" for r in ordered])
    duration = sum(r.duration_seconds for r in ordered)
    logger.info("Combined %d chunk(s): %d chars, %.1fs", len(ordered), len(text), duration)
    return TranscriptionResult(text=text, duration_seconds=duration,
                               provider=provider, job_id=job_id)
