#!/usr/bin/env python3
"""
MediaRelay v1.0.0: main entry point.
Transcribes local audio/video files through the upload gateway and
provider API, one file at a time.
"""

import sys
import argparse
import logging
import traceback
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mediarelay.core.constants import APP_NAME, APP_VERSION, LOG_DIR, STATE_DB_PATH
from mediarelay.core.config import AppConfig
from mediarelay.core.credential_broker import HttpCredentialBroker
from mediarelay.core.provider_client import ProviderClient
from mediarelay.core.pipeline import TranscriptionPipeline
from mediarelay.core.batch import BatchScheduler
from mediarelay.core.state_store import JsonFileStateStore, SqliteStateStore
from mediarelay.core.upload import UploadAttempt
from mediarelay.core.models import TranscriptionJob, BatchState

logger = logging.getLogger("mediarelay")


def setup_logging(verbose: bool = False) -> Path:
    """File log under the app support dir, plus stderr for the CLI."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / "app.log"
    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            stderr,
        ],
    )
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediarelay",
        description="Transcribe local media files through the upload gateway.",
    )
    parser.add_argument("files", nargs="*", type=Path, help="Media files to transcribe")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    parser.add_argument("--output", type=Path, default=None,
                        help="Directory for transcript .txt files")
    parser.add_argument("--api-token", default=None, help="Provider API token")
    parser.add_argument("--state-backend", choices=("json", "sqlite"), default="json",
                        help="Where in-flight progress is persisted")
    parser.add_argument("--no-resume", action="store_true",
                        help="Discard any persisted in-flight job instead of resuming it")
    parser.add_argument("--no-speaker-labels", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def build_pipeline(config: AppConfig, args) -> TranscriptionPipeline:
    if args.state_backend == "sqlite":
        store = SqliteStateStore(STATE_DB_PATH)
    else:
        store = JsonFileStateStore(config.state_path)

    settings = config.as_dict()
    if args.output is not None:
        settings['output_root'] = str(args.output)
    if args.no_speaker_labels:
        settings['speaker_labels'] = False

    pipeline = TranscriptionPipeline(
        broker=HttpCredentialBroker(config.broker_url),
        client=ProviderClient(config.api_base_url, api_token=args.api_token),
        state_store=store,
        config=settings,
    )
    pipeline.on_job_updated = _print_job
    pipeline.on_upload_attempt = _print_attempt
    return pipeline


def _print_job(job: TranscriptionJob):
    line = f"  {job.source_file.name}: {job.status} {job.progress_percent}%"
    if job.eta_seconds and not job.is_terminal:
        line += f" (eta {job.eta_seconds}s)"
    if job.error_code:
        line += f" [{job.error_code}] {job.error_message}"
        if job.error_hint:
            line += f" ({job.error_hint})"
    print(line, flush=True)


def _print_attempt(attempt: UploadAttempt):
    if not attempt.succeeded and attempt.delay_sec:
        print(f"  upload {attempt.label}: attempt {attempt.attempt}/{attempt.max_attempts} "
              f"failed ({attempt.error_code}), retrying in {attempt.delay_sec:.0f}s",
              flush=True)


def _print_batch(state: BatchState):
    if state.current_file:
        print(f"[{state.completed_count + 1}/{state.total}] {state.current_file}", flush=True)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    log_file = setup_logging(args.verbose)

    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("=" * 60)

    try:
        config = AppConfig(args.config)
        pipeline = build_pipeline(config, args)

        if args.no_resume:
            pipeline.state_store.clear()
        else:
            resumed = pipeline.start()
            if resumed is not None:
                print(f"Resumed {resumed.source_file.name}: {resumed.status}")

        if not args.files:
            return 0

        scheduler = BatchScheduler(pipeline, on_batch_updated=_print_batch)
        try:
            summary = scheduler.run(args.files)
        except KeyboardInterrupt:
            scheduler.cancel()
            print("Interrupted.", file=sys.stderr)
            return 130

        print(summary.format())
        return 1 if summary.failed else 0
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        logger.critical("Fatal error: %s\n%s", error_msg, traceback.format_exc())
        print(f"{APP_NAME} error: {error_msg}\nCheck logs at: {log_file}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
