"""
Data models (plain dataclasses) for MediaRelay.
"""

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from mediarelay.core.constants import JobStatus, Provider, TERMINAL_STATUSES, DEFAULT_MIME_TYPE


@dataclass(frozen=True)
class SourceFile:
    name: str
    byte_size: int
    mime_type: str = DEFAULT_MIME_TYPE
    path: Optional[Path] = None

    @classmethod
    def from_path(cls, path: Path, mime_type: str | None = None) -> "SourceFile":
        guessed, _ = mimetypes.guess_type(path.name)
        size = path.stat().st_size if path.exists() else 0
        return cls(
            name=path.name,
            byte_size=size,
            mime_type=mime_type or guessed or DEFAULT_MIME_TYPE,
            path=path,
        )


@dataclass(frozen=True)
class ChunkTask:
    index: int
    byte_start: int
    byte_end: int                    # exclusive
    derived_filename: str

    @property
    def length(self) -> int:
        return self.byte_end - self.byte_start


@dataclass(frozen=True)
class UploadCredential:
    upload_url: str
    auth_token: str
    issued_at: str


@dataclass(frozen=True)
class FallbackDirective:
    reason: str
    max_fallback_size_bytes: int
    message: str = ""


@dataclass(frozen=True)
class ChunkResult:
    index: int
    uploaded_url: Optional[str] = None
    transcript_text: Optional[str] = None
    duration_seconds: float = 0.0
    job_id: Optional[str] = None     # provider job, when not transcribed inline

    def to_dict(self) -> dict[str, Any]:
        return {
            'index': self.index,
            'uploadedUrl': self.uploaded_url,
            'transcriptText': self.transcript_text,
            'durationSeconds': self.duration_seconds,
            'jobId': self.job_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChunkResult":
        return cls(
            index=int(data['index']),
            uploaded_url=data.get('uploadedUrl'),
            transcript_text=data.get('transcriptText'),
            duration_seconds=float(data.get('durationSeconds') or 0.0),
            job_id=data.get('jobId'),
        )


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    duration_seconds: float = 0.0
    provider: str = Provider.PRIMARY
    job_id: Optional[str] = None
    raw: Optional[dict] = None


@dataclass
class TranscriptionJob:
    source_file: SourceFile
    id: Optional[str] = None         # provider job id, assigned after upload
    provider: str = Provider.PRIMARY
    status: str = JobStatus.IDLE
    progress_percent: int = 0
    eta_seconds: int = 0
    chunks: list[ChunkTask] = field(default_factory=list)
    chunk_results: list[ChunkResult] = field(default_factory=list)
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_hint: Optional[str] = None
    result: Optional[TranscriptionResult] = None
    retry_count: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class PersistedJobState:
    job_id: Optional[str]
    status: str
    progress_percent: int = 0
    eta_seconds: int = 0
    updated_at: Optional[str] = None
    file_name: Optional[str] = None
    byte_size: int = 0
    # Per-chunk refs and finished texts, so a chunked job can pick up where it stopped
    chunk_results: list[ChunkResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            'jobId': self.job_id,
            'status': self.status,
            'progressPercent': self.progress_percent,
            'etaSeconds': self.eta_seconds,
            'updatedAt': self.updated_at,
            'fileName': self.file_name,
            'byteSize': self.byte_size,
            'chunkResults': [r.to_dict() for r in self.chunk_results],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersistedJobState":
        """Raises TypeError/ValueError when a field has the wrong type."""
        return cls(
            job_id=data.get('jobId'),
            status=str(data.get('status') or JobStatus.IDLE),
            progress_percent=int(data.get('progressPercent') or 0),
            eta_seconds=int(data.get('etaSeconds') or 0),
            updated_at=data.get('updatedAt'),
            file_name=data.get('fileName'),
            byte_size=int(data.get('byteSize') or 0),
            chunk_results=[ChunkResult.from_dict(r) for r in data.get('chunkResults') or []],
        )


@dataclass(frozen=True)
class FileResult:
    file_name: str
    success: bool
    job_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class BatchState:
    total: int = 0
    completed_count: int = 0
    current_file: Optional[str] = None
    per_file_results: list[FileResult] = field(default_factory=list)


@dataclass(frozen=True)
class BatchSummary:
    total: int
    succeeded: int
    failed: int
    failures: list[FileResult] = field(default_factory=list)

    def format(self) -> str:
        lines = [f"Processed {self.total} file(s): "
                 f"{self.succeeded} succeeded, {self.failed} failed"]
        for r in self.failures:
            lines.append(f"  FAILED {r.file_name}: [{r.error_code}] {r.error_message}")
        return "\n".join(lines)
