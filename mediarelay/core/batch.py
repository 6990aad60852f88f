"""
Batch scheduler: runs a list of files through the pipeline one at a time.
A failed file is recorded and the batch moves on to the next one.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from mediarelay.core.error_codes import JobError
from mediarelay.core.models import SourceFile, FileResult, BatchState, BatchSummary
from mediarelay.core.pipeline import TranscriptionPipeline
from mediarelay.core.constants import JobStatus, ErrorCode

logger = logging.getLogger(__name__)


class BatchScheduler:
    """Sequential batch processing; never more than one file in flight."""

    def __init__(self, pipeline: TranscriptionPipeline,
                 on_batch_updated: Optional[Callable[[BatchState], None]] = None):
        self.pipeline = pipeline
        self.on_batch_updated = on_batch_updated
        self.state = BatchState()
        self._running = False
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._running

    def cancel(self):
        """Stop after the current file; the in-flight job is cancelled too."""
        self._cancelled = True
        self.pipeline.stop()

    def run(self, files: list[SourceFile | Path | str]) -> BatchSummary:
        if self._running:
            raise JobError(ErrorCode.BUSY, "A batch is already running")
        self._running = True
        self._cancelled = False
        self.state = BatchState(total=len(files))
        logger.info("Starting batch of %d file(s)", len(files))
        try:
            for item in files:
                if self._cancelled:
                    logger.info("Batch cancelled with %d file(s) left",
                                self.state.total - self.state.completed_count)
                    break
                source = item if isinstance(item, SourceFile) else SourceFile.from_path(Path(item))
                self.state.current_file = source.name
                self._notify()
                self.state.per_file_results.append(self._run_one(source))
                self.state.completed_count += 1
                self._notify()
        finally:
            self.state.current_file = None
            self._running = False

        summary = self.summarize()
        logger.info("Batch done: %d succeeded, %d failed", summary.succeeded, summary.failed)
        return summary

    def _run_one(self, source: SourceFile) -> FileResult:
        logger.info("Batch file %d/%d: %s", self.state.completed_count + 1,
                    self.state.total, source.name)
        try:
            job = self.pipeline.submit(source)
        except JobError as e:
            # Pipeline refused the file outright (e.g. busy)
            logger.error("Could not submit %s: %s", source.name, e)
            return FileResult(file_name=source.name, success=False,
                              error_code=e.code, error_message=e.message)

        if job.status == JobStatus.COMPLETED:
            return FileResult(file_name=source.name, success=True, job_id=job.id)
        return FileResult(
            file_name=source.name,
            success=False,
            job_id=job.id,
            error_code=job.error_code,
            error_message=job.error_message,
        )

    def summarize(self) -> BatchSummary:
        results = self.state.per_file_results
        failures = [r for r in results if not r.success]
        return BatchSummary(
            total=self.state.total,
            succeeded=len(results) - len(failures),
            failed=len(failures),
            failures=failures,
        )

    def _notify(self):
        if self.on_batch_updated:
            self.on_batch_updated(self.state)
