#!/usr/bin/env python3
"""
Unit tests for MediaRelay core modules.
Tests cover: security utils, error codes, chunk planning, merge, config,
state machine, state stores, HTTP classification and broker parsing.
"""

import sys
import json
import sqlite3
import tempfile
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

import requests

from mediarelay.core.constants import (
    JobStatus, Provider, ErrorCode, RETRYABLE_ERRORS, MB,
    DIRECT_UPLOAD_THRESHOLD_BYTES, CHUNK_SIZE_BYTES, POLL_INTERVAL_SEC,
)
from mediarelay.core.security_utils import sanitize_filename, safe_output_path, redact_token
from mediarelay.core.error_codes import (
    JobError, ValidationError, FileTooLargeForFallback, JobFailed, is_retryable,
)
from mediarelay.core.models import (
    SourceFile, ChunkResult, TranscriptionJob, TranscriptionResult, PersistedJobState,
    UploadCredential, FallbackDirective, FileResult, BatchSummary,
)
from mediarelay.core.chunk_planner import (
    needs_chunking, plan_chunks, derive_chunk_filename, read_chunk, is_single_shot,
)
from mediarelay.core.merge import merge_transcripts, combine_chunk_results
from mediarelay.core.output_writer import write_transcript
from mediarelay.core.config import AppConfig
from mediarelay.core.state_machine import (
    Effect, InvalidTransition, transition, Prepare, UploadStarted, UploadProgress,
    ChunksUploaded, ChunkJobStarted, ChunkTranscribed, TranscriptionStarted, StatusReported,
    CombineStarted, Completed, Failed, ManualRetry,
)
from mediarelay.core.state_store import (
    InMemoryStateStore, JsonFileStateStore, SqliteStateStore, has_resumable,
)
from mediarelay.core.provider_client import classify_response, classify_exception
from mediarelay.core.credential_broker import parse_broker_response, HttpCredentialBroker
from mediarelay.core.fallback import ProviderFallbackController


def _source(size: int, name: str = "talk.mp3") -> SourceFile:
    return SourceFile(name=name, byte_size=size, mime_type="audio/mpeg")


def _response(status: int, text: str = "") -> mock.Mock:
    resp = mock.Mock()
    resp.status_code = status
    resp.text = text
    return resp


class TestSecurityUtils(unittest.TestCase):
    """Test filename sanitization and path safety."""

    def test_sanitize_filename_basic(self):
        self.assertEqual(sanitize_filename("Interview 2024.mp3"), "Interview 2024.mp3")

    def test_sanitize_filename_special_chars(self):
        result = sanitize_filename('Talk: "Part" <1>?.mp3')
        for ch in '<>:"?':
            self.assertNotIn(ch, result)

    def test_sanitize_filename_path_traversal(self):
        result = sanitize_filename("../../etc/passwd")
        self.assertNotIn("..", result)
        self.assertNotIn("/", result)

    def test_sanitize_filename_empty(self):
        self.assertEqual(sanitize_filename(""), "")

    def test_sanitize_filename_long(self):
        self.assertLessEqual(len(sanitize_filename("a" * 500)), 200)

    def test_safe_output_path_normal(self):
        root = Path("/tmp/test_output")
        self.assertEqual(safe_output_path(root, "talk.mp3", "job1"), root / "talk.txt")

    def test_safe_output_path_empty_name(self):
        root = Path("/tmp/test_output")
        self.assertEqual(safe_output_path(root, "", "job1").name, "transcript_job1.txt")

    def test_redact_token(self):
        self.assertEqual(redact_token("secret-abcd"), "****abcd")
        self.assertEqual(redact_token(None), "<none>")
        self.assertEqual(redact_token("abc"), "****")


class TestErrorCodes(unittest.TestCase):
    """Test error code classification."""

    def test_retryable_errors(self):
        self.assertTrue(is_retryable(ErrorCode.NETWORK_TRANSIENT))
        self.assertTrue(is_retryable(ErrorCode.UPLOAD_TIMEOUT))

    def test_non_retryable_errors(self):
        for code in (ErrorCode.AUTH_OR_BILLING, ErrorCode.MALFORMED_REQUEST,
                     ErrorCode.PAYLOAD_TOO_LARGE, ErrorCode.UNSUPPORTED_FORMAT):
            self.assertNotIn(code, RETRYABLE_ERRORS)

    def test_job_error_auto_retryable(self):
        self.assertTrue(JobError(ErrorCode.UPLOAD_TIMEOUT, "slow").retryable)
        self.assertFalse(JobError(ErrorCode.AUTH_OR_BILLING, "401").retryable)

    def test_job_error_carries_hint(self):
        err = JobError(ErrorCode.AUTH_OR_BILLING, "401")
        self.assertTrue(err.hint)
        self.assertIn(err.hint, err.describe())

    def test_job_failed_keeps_reason_verbatim(self):
        err = JobFailed("job-1", "Audio file contains no speech")
        self.assertEqual(err.code, ErrorCode.JOB_FAILED)
        self.assertEqual(err.message, "Audio file contains no speech")

    def test_file_too_large_message(self):
        err = FileTooLargeForFallback(30 * MB, 25 * MB, 4 * MB)
        self.assertEqual(err.code, ErrorCode.PAYLOAD_TOO_LARGE)
        self.assertIn("30.0MB", err.message)
        self.assertIn("25.0MB", err.message)


class TestChunkPlanner(unittest.TestCase):
    """Test byte-range chunk planning."""

    def test_needs_chunking(self):
        self.assertFalse(needs_chunking(DIRECT_UPLOAD_THRESHOLD_BYTES))
        self.assertTrue(needs_chunking(DIRECT_UPLOAD_THRESHOLD_BYTES + 1))

    def test_small_file_single_task(self):
        chunks = plan_chunks(_source(1000))
        self.assertEqual(len(chunks), 1)
        self.assertEqual((chunks[0].byte_start, chunks[0].byte_end), (0, 1000))
        self.assertTrue(is_single_shot(chunks, _source(1000)))

    def test_exactly_threshold_is_single_task(self):
        chunks = plan_chunks(_source(4 * MB))
        self.assertEqual(len(chunks), 1)

    def test_five_mb_splits_four_plus_one(self):
        chunks = plan_chunks(_source(5 * MB), 4 * MB, 4 * MB)
        self.assertEqual(len(chunks), 2)
        self.assertEqual(chunks[0].length, 4 * MB)
        self.assertEqual(chunks[1].length, 1 * MB)

    def test_chunks_cover_file_without_gaps(self):
        size = 10 * MB + 123
        chunks = plan_chunks(_source(size), 4 * MB, 3 * MB)
        self.assertEqual(chunks[0].byte_start, 0)
        self.assertEqual(chunks[-1].byte_end, size)
        for prev, nxt in zip(chunks, chunks[1:]):
            self.assertEqual(prev.byte_end, nxt.byte_start)
        self.assertEqual([c.index for c in chunks], list(range(len(chunks))))
        self.assertTrue(all(c.length <= 3 * MB for c in chunks))

    def test_empty_file_rejected(self):
        with self.assertRaises(ValidationError):
            plan_chunks(_source(0))

    def test_missing_file_rejected(self):
        source = SourceFile(name="gone.mp3", byte_size=10, path=Path("/nonexistent/gone.mp3"))
        with self.assertRaises(ValidationError) as ctx:
            plan_chunks(source)
        self.assertEqual(ctx.exception.code, ErrorCode.VALIDATION)

    def test_derived_filenames(self):
        self.assertEqual(derive_chunk_filename("talk.mp3", 2, 5), "talk.part003-of-005.mp3")
        names = [c.derived_filename for c in plan_chunks(_source(9 * MB), 4 * MB, 4 * MB)]
        self.assertEqual(len(set(names)), 3)

    def test_read_chunk(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "a.bin"
            path.write_bytes(bytes(range(100)))
            source = SourceFile.from_path(path)
            chunks = plan_chunks(source, 40, 40)
            self.assertEqual(read_chunk(path, chunks[1]), bytes(range(40, 80)))
            self.assertEqual(read_chunk(path, chunks[2]), bytes(range(80, 100)))


class TestMerge(unittest.TestCase):
    """Test combining per-chunk results."""

    def test_merge_single(self):
        self.assertEqual(merge_transcripts(["Hello world"]), "Hello world")

    def test_merge_skips_empty(self):
        self.assertEqual(merge_transcripts(["a ", "", "  ", " b"]), "a b")

    def test_merge_separator_is_one_space(self):
        self.assertEqual(merge_transcripts(["chunk-1-text\n", "chunk-2-text"]),
                         "chunk-1-text chunk-2-text")

    def test_combine_orders_and_sums(self):
        results = [
            ChunkResult(index=1, transcript_text="second", duration_seconds=4.0),
            ChunkResult(index=0, transcript_text="first", duration_seconds=6.0),
        ]
        combined = combine_chunk_results(results)
        self.assertEqual(combined.text, "first second")
        self.assertEqual(combined.duration_seconds, 10.0)
        self.assertEqual(combined.provider, Provider.PRIMARY)

    def test_write_transcript(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = write_transcript("hello", Path(tmp) / "out", "talk.mp3", "job1")
            self.assertEqual(out.name, "talk.txt")
            self.assertEqual(out.read_text(encoding="utf-8"), "hello")


class TestConfig(unittest.TestCase):
    """Test JSON config loading, clamping and env overrides."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "config.json"

    def tearDown(self):
        self.tmp.cleanup()

    def _write(self, data: dict):
        self.path.write_text(json.dumps(data))

    def test_defaults(self):
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.direct_upload_threshold_bytes, DIRECT_UPLOAD_THRESHOLD_BYTES)
        self.assertEqual(config.chunk_size_bytes, CHUNK_SIZE_BYTES)
        self.assertEqual(config.poll_interval_sec, POLL_INTERVAL_SEC)

    def test_chunk_size_clamped_to_threshold(self):
        self._write({"direct_upload_threshold_bytes": 2 * MB, "chunk_size_bytes": 8 * MB})
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.chunk_size_bytes, 2 * MB)

    def test_out_of_range_values_clamped(self):
        self._write({"max_upload_attempts": 99, "poll_interval_sec": "abc"})
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.max_upload_attempts, 10)
        self.assertEqual(config.poll_interval_sec, POLL_INTERVAL_SEC)

    def test_env_overrides(self):
        config = AppConfig(self.path, environ={"MEDIARELAY_BROKER_URL": "https://broker.test/"})
        self.assertEqual(config.broker_url, "https://broker.test")

    def test_corrupt_file_falls_back_to_defaults(self):
        self.path.write_text("{not json")
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.max_upload_attempts, 3)

    def test_set_persists(self):
        config = AppConfig(self.path, environ={})
        config.set("speaker_labels", False)
        self.assertFalse(json.loads(self.path.read_text())["speaker_labels"])


class TestStateMachine(unittest.TestCase):
    """Test lifecycle transitions."""

    def _job(self, **kwargs) -> TranscriptionJob:
        return TranscriptionJob(source_file=_source(1000), **kwargs)

    def test_happy_path_single(self):
        job = self._job()
        job, effects = transition(job, Prepare(chunks=(), eta_seconds=30))
        self.assertEqual(job.status, JobStatus.PREPARING)
        self.assertEqual(effects, [Effect.PERSIST, Effect.NOTIFY])
        job, _ = transition(job, UploadStarted(10))
        job, _ = transition(job, UploadProgress(25))
        job, _ = transition(job, TranscriptionStarted("job-1", 30))
        self.assertEqual((job.status, job.id), (JobStatus.TRANSCRIBING, "job-1"))
        job, _ = transition(job, StatusReported(60, 90))
        job, effects = transition(job, Completed(TranscriptionResult(text="hi")))
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.progress_percent, 100)
        self.assertIn(Effect.FINALIZE, effects)

    def test_chunked_path(self):
        chunks = tuple(plan_chunks(_source(9 * MB)))
        job, _ = transition(self._job(), Prepare(chunks=chunks))
        self.assertEqual(job.status, JobStatus.PREPARING_CHUNKS)
        self.assertEqual(len(job.chunks), 3)
        job, _ = transition(job, UploadStarted(10))
        job, _ = transition(job, ChunksUploaded(25))
        self.assertEqual(job.status, JobStatus.PROCESSING_CHUNKS)
        job, _ = transition(job, CombineStarted(96))
        self.assertEqual(job.status, JobStatus.COMBINING_RESULTS)

    def test_progress_never_decreases(self):
        job = self._job(status=JobStatus.TRANSCRIBING, progress_percent=60)
        job, _ = transition(job, StatusReported(40, 10))
        self.assertEqual(job.progress_percent, 60)

    def test_failed_from_any_active_state(self):
        for status in (JobStatus.PREPARING, JobStatus.UPLOADING, JobStatus.TRANSCRIBING):
            job, effects = transition(self._job(status=status),
                                      Failed(ErrorCode.UPLOAD_TIMEOUT, "slow"))
            self.assertEqual(job.status, JobStatus.FAILED)
            self.assertEqual(job.error_code, ErrorCode.UPLOAD_TIMEOUT)
            self.assertEqual(effects, [Effect.FINALIZE, Effect.NOTIFY])

    def test_terminal_absorbs_events(self):
        job = self._job(status=JobStatus.COMPLETED, progress_percent=100)
        new_job, effects = transition(job, Failed(ErrorCode.JOB_FAILED, "late"))
        self.assertIs(new_job, job)
        self.assertEqual(effects, [])

    def test_invalid_transition(self):
        with self.assertRaises(InvalidTransition):
            transition(self._job(), TranscriptionStarted("job-1"))

    def test_manual_retry_resets(self):
        job = self._job(status=JobStatus.FAILED, progress_percent=55, id="job-1",
                        error_code=ErrorCode.JOB_FAILED)
        job, _ = transition(job, ManualRetry())
        self.assertEqual(job.status, JobStatus.IDLE)
        self.assertEqual(job.progress_percent, 0)
        self.assertIsNone(job.id)
        self.assertIsNone(job.error_code)
        self.assertEqual(job.retry_count, 1)

    def test_chunk_job_recorded_and_transcribed(self):
        results = (ChunkResult(0, uploaded_url="u0"), ChunkResult(1, uploaded_url="u1"))
        job = self._job(status=JobStatus.UPLOADING, progress_percent=10)
        job, _ = transition(job, ChunksUploaded(25, results))
        job, effects = transition(job, ChunkJobStarted(0, "job-1"))
        self.assertEqual(job.id, "job-1")
        self.assertEqual(job.chunk_results[0].job_id, "job-1")
        self.assertIsNone(job.chunk_results[1].job_id)
        self.assertIn(Effect.PERSIST, effects)

        done = ChunkResult(0, uploaded_url="u0", transcript_text="one", job_id="job-1")
        job, _ = transition(job, ChunkTranscribed(done, 62))
        self.assertEqual(job.chunk_results[0].transcript_text, "one")
        self.assertEqual(job.progress_percent, 62)
        self.assertEqual(job.status, JobStatus.PROCESSING_CHUNKS)

    def test_chunk_events_need_processing_chunks(self):
        job = self._job(status=JobStatus.TRANSCRIBING)
        with self.assertRaises(InvalidTransition):
            transition(job, ChunkJobStarted(0, "job-1"))

    def test_manual_retry_clears_chunk_results(self):
        job = self._job(status=JobStatus.FAILED, chunk_results=[ChunkResult(0, "u0")])
        job, _ = transition(job, ManualRetry())
        self.assertEqual(job.chunk_results, [])


class TestStateStores(unittest.TestCase):
    """Test the three progress state store backends."""

    def _state(self, **kwargs) -> PersistedJobState:
        defaults = dict(job_id="job-1", status=JobStatus.TRANSCRIBING,
                        progress_percent=42, eta_seconds=120, file_name="talk.mp3")
        defaults.update(kwargs)
        return PersistedJobState(**defaults)

    def _exercise(self, store):
        self.assertIsNone(store.get())
        store.set(self._state())
        got = store.get()
        self.assertEqual(got.job_id, "job-1")
        self.assertEqual(got.progress_percent, 42)
        self.assertEqual(got.file_name, "talk.mp3")
        self.assertEqual(got.byte_size, 0)
        chunks = [ChunkResult(0, "u0", "one", 10.0, "job-1"),
                  ChunkResult(1, "u1", job_id="job-2")]
        store.set(self._state(job_id="job-2", status=JobStatus.PROCESSING_CHUNKS,
                              byte_size=15 * MB, chunk_results=chunks))
        got = store.get()
        self.assertEqual(got.byte_size, 15 * MB)
        self.assertEqual(got.chunk_results, chunks)
        store.set(self._state(progress_percent=50))
        self.assertEqual(store.get().progress_percent, 50)
        store.clear()
        self.assertIsNone(store.get())
        store.clear()

    def test_in_memory(self):
        self._exercise(InMemoryStateStore())

    def test_json_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "state" / "active_job.json"
            store = JsonFileStateStore(path)
            store.set(self._state())
            self.assertEqual(json.loads(path.read_text())["jobId"], "job-1")
            store.clear()
            self._exercise(store)

    def test_json_file_corrupt(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "active_job.json"
            path.write_text("garbage")
            self.assertIsNone(JsonFileStateStore(path).get())
            path.write_text('{"jobId": "j1", "status": "transcribing", "progressPercent": "abc"}')
            self.assertIsNone(JsonFileStateStore(path).get())
            path.write_text('{"jobId": "j1", "status": "processing_chunks", '
                            '"chunkResults": [{"uploadedUrl": "u0"}]}')
            self.assertIsNone(JsonFileStateStore(path).get())

    def test_sqlite(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = SqliteStateStore(Path(tmp) / "state.db")
            try:
                self._exercise(store)
            finally:
                store.close()

    def test_sqlite_adds_columns_to_old_table(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = Path(tmp) / "state.db"
            conn = sqlite3.connect(str(db_path))
            conn.execute("""CREATE TABLE active_job (
                slot INTEGER PRIMARY KEY CHECK (slot = 1), job_id TEXT,
                status TEXT NOT NULL, progress_pct INTEGER DEFAULT 0,
                eta_sec INTEGER DEFAULT 0, updated_at TEXT, file_name TEXT)""")
            conn.execute("INSERT INTO active_job (slot, job_id, status, progress_pct) "
                         "VALUES (1, 'job-1', 'transcribing', 40)")
            conn.commit()
            conn.close()

            store = SqliteStateStore(db_path)
            try:
                got = store.get()
                self.assertEqual(got.job_id, "job-1")
                self.assertEqual(got.byte_size, 0)
                self.assertEqual(got.chunk_results, [])
                store.set(self._state(byte_size=2048))
                self.assertEqual(store.get().byte_size, 2048)
            finally:
                store.close()

    def test_set_from_job(self):
        store = InMemoryStateStore()
        store.set(TranscriptionJob(source_file=_source(10), id="job-2",
                                   status=JobStatus.TRANSCRIBING, progress_percent=33))
        self.assertEqual(store.get().job_id, "job-2")
        self.assertEqual(store.get().progress_percent, 33)
        self.assertEqual(store.get().byte_size, 10)

    def test_has_resumable(self):
        self.assertFalse(has_resumable(None))
        self.assertTrue(has_resumable(self._state()))
        self.assertFalse(has_resumable(self._state(job_id=None)))
        self.assertTrue(has_resumable(self._state(
            job_id=None, status=JobStatus.PROCESSING_CHUNKS,
            chunk_results=[ChunkResult(0, "u0")])))
        self.assertFalse(has_resumable(self._state(status=JobStatus.COMPLETED)))
        self.assertFalse(has_resumable(self._state(status=JobStatus.FAILED)))


class TestHttpClassification(unittest.TestCase):
    """Test mapping of HTTP responses and transport errors to error codes."""

    def test_success(self):
        self.assertIsNone(classify_response(_response(200), "Upload"))

    def test_auth_codes(self):
        for status in (401, 402, 403):
            err = classify_response(_response(status, "denied"), "Upload")
            self.assertEqual(err.code, ErrorCode.AUTH_OR_BILLING)
            self.assertFalse(err.retryable)

    def test_payload_too_large(self):
        self.assertEqual(classify_response(_response(413), "Upload").code,
                         ErrorCode.PAYLOAD_TOO_LARGE)

    def test_unsupported_format(self):
        self.assertEqual(classify_response(_response(415), "Upload").code,
                         ErrorCode.UNSUPPORTED_FORMAT)
        err = classify_response(_response(400, "Unsupported audio format"), "Upload")
        self.assertEqual(err.code, ErrorCode.UNSUPPORTED_FORMAT)

    def test_malformed(self):
        self.assertEqual(classify_response(_response(422, "bad field"), "Upload").code,
                         ErrorCode.MALFORMED_REQUEST)

    def test_transient(self):
        for status in (429, 500, 503):
            err = classify_response(_response(status), "Upload")
            self.assertEqual(err.code, ErrorCode.NETWORK_TRANSIENT)
            self.assertTrue(err.retryable)

    def test_body_truncated(self):
        err = classify_response(_response(500, "x" * 1000), "Upload")
        self.assertLess(len(err.message), 400)

    def test_exceptions(self):
        self.assertEqual(classify_exception(requests.exceptions.Timeout(), "Upload").code,
                         ErrorCode.UPLOAD_TIMEOUT)
        err = classify_exception(requests.exceptions.ConnectionError(), "Upload")
        self.assertEqual(err.code, ErrorCode.NETWORK_TRANSIENT)
        self.assertTrue(err.retryable)


class TestCredentialBroker(unittest.TestCase):
    """Test credential parsing and fallback routing decisions."""

    def test_parse_credential(self):
        result = parse_broker_response({"uploadUrl": "https://up/1", "authToken": "tok"})
        self.assertIsInstance(result, UploadCredential)
        self.assertEqual(result.upload_url, "https://up/1")

    def test_parse_fallback(self):
        result = parse_broker_response({"fallback": "quota_exceeded",
                                        "maxFallbackSizeBytes": 25 * MB})
        self.assertIsInstance(result, FallbackDirective)
        self.assertEqual(result.max_fallback_size_bytes, 25 * MB)

    def test_parse_missing_fields(self):
        with self.assertRaises(JobError) as ctx:
            parse_broker_response({"uploadUrl": "https://up/1"})
        self.assertEqual(ctx.exception.code, ErrorCode.MALFORMED_REQUEST)

    def test_http_broker_requests_fresh_credential_each_call(self):
        session = mock.Mock()
        resp = _response(200)
        resp.json.return_value = {"uploadUrl": "https://up/1", "authToken": "tok"}
        session.post.return_value = resp
        broker = HttpCredentialBroker("https://broker.test/", session=session)
        broker.request_upload_credential(_source(10))
        broker.request_upload_credential(_source(10))
        self.assertEqual(session.post.call_count, 2)
        url = session.post.call_args[0][0]
        self.assertEqual(url, "https://broker.test/credentials")
        self.assertEqual(session.post.call_args[1]["json"]["fileSize"], 10)

    def test_fallback_controller(self):
        controller = ProviderFallbackController(4 * MB)
        directive = FallbackDirective(reason="quota", max_fallback_size_bytes=25 * MB)
        decision = controller.decide(_source(20 * MB), directive)
        self.assertTrue(decision.is_fallback)
        self.assertEqual(decision.provider, Provider.FALLBACK)
        with self.assertRaises(FileTooLargeForFallback):
            controller.decide(_source(30 * MB), directive)
        credential = UploadCredential("https://up", "tok", "now")
        self.assertEqual(controller.decide(_source(30 * MB), credential).provider,
                         Provider.PRIMARY)


class TestBatchSummary(unittest.TestCase):

    def test_format_lists_failures(self):
        summary = BatchSummary(total=2, succeeded=1, failed=1, failures=[
            FileResult("b.mp3", False, error_code=ErrorCode.UNSUPPORTED_FORMAT,
                       error_message="415"),
        ])
        text = summary.format()
        self.assertIn("1 succeeded, 1 failed", text)
        self.assertIn("b.mp3", text)


if __name__ == "__main__":
    unittest.main()
