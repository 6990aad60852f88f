"""
Progress state persistence for the single active job.
One slot: get() / set(job) / clear(). Read once at startup to resume.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from mediarelay.core.constants import STATE_PATH, STATE_DB_PATH, TERMINAL_STATUSES
from mediarelay.core.models import PersistedJobState, TranscriptionJob
from mediarelay.core.scheduling import utc_now_iso

logger = logging.getLogger(__name__)


def state_from_job(job: TranscriptionJob) -> PersistedJobState:
    return PersistedJobState(
        job_id=job.id,
        status=job.status,
        progress_percent=job.progress_percent,
        eta_seconds=job.eta_seconds,
        updated_at=utc_now_iso(),
        file_name=job.source_file.name,
        byte_size=job.source_file.byte_size,
        chunk_results=list(job.chunk_results),
    )


def has_resumable(state: Optional[PersistedJobState]) -> bool:
    """
    Absent or terminal records mean there is nothing to resume, as does a
    record with neither a provider job id nor uploaded chunk refs.
    """
    if state is None:
        return False
    if state.status in TERMINAL_STATUSES:
        return False
    return bool(state.job_id) or bool(state.chunk_results)


class ProgressStateStore:
    """Key-value port scoped to the current active job."""

    def get(self) -> Optional[PersistedJobState]:
        raise NotImplementedError

    def set(self, job: TranscriptionJob | PersistedJobState):
        raise NotImplementedError

    def clear(self):
        raise NotImplementedError

    @staticmethod
    def _as_state(job: TranscriptionJob | PersistedJobState) -> PersistedJobState:
        if isinstance(job, PersistedJobState):
            return job
        return state_from_job(job)


class InMemoryStateStore(ProgressStateStore):

    def __init__(self):
        self._state: Optional[PersistedJobState] = None
        self.set_count = 0
        self.clear_count = 0

    def get(self) -> Optional[PersistedJobState]:
        return self._state

    def set(self, job):
        self._state = self._as_state(job)
        self.set_count += 1

    def clear(self):
        self._state = None
        self.clear_count += 1


class JsonFileStateStore(ProgressStateStore):
    """Single JSON record on disk, written atomically via a temp file."""

    def __init__(self, path: Path | None = None):
        self.path = path or STATE_PATH

    def get(self) -> Optional[PersistedJobState]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            return None
        try:
            return PersistedJobState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed state file %s: %s", self.path, e)
            return None

    def set(self, job):
        state = self._as_state(job)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, 'w') as f:
            json.dump(state.to_dict(), f, indent=2)
        tmp.replace(self.path)

    def clear(self):
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS active_job (
    slot INTEGER PRIMARY KEY CHECK (slot = 1),
    job_id TEXT,
    status TEXT NOT NULL,
    progress_pct INTEGER DEFAULT 0,
    eta_sec INTEGER DEFAULT 0,
    updated_at TEXT,
    file_name TEXT,
    byte_size INTEGER DEFAULT 0,
    chunk_results TEXT
);
"""

# Columns added after the first release; older databases get them via ALTER TABLE
_ADDED_COLUMNS = {
    'byte_size': "INTEGER DEFAULT 0",
    'chunk_results': "TEXT",
}


class SqliteStateStore(ProgressStateStore):
    """Single-row SQLite table, for deployments that already keep a database."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or STATE_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _migrate(self):
        cur = self.conn.cursor()
        cur.executescript(_CREATE_TABLE)
        existing = {row['name'] for row in cur.execute("PRAGMA table_info(active_job)")}
        for column, ddl in _ADDED_COLUMNS.items():
            if column not in existing:
                cur.execute(f"ALTER TABLE active_job ADD COLUMN {column} {ddl}")
        self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()

    def get(self) -> Optional[PersistedJobState]:
        row = self.conn.execute("SELECT * FROM active_job WHERE slot = 1").fetchone()
        if not row:
            return None
        try:
            return PersistedJobState.from_dict({
                'jobId': row['job_id'],
                'status': row['status'],
                'progressPercent': row['progress_pct'],
                'etaSeconds': row['eta_sec'],
                'updatedAt': row['updated_at'],
                'fileName': row['file_name'],
                'byteSize': row['byte_size'],
                'chunkResults': json.loads(row['chunk_results'] or "[]"),
            })
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed active_job row in %s: %s", self.db_path, e)
            return None

    def set(self, job):
        state = self._as_state(job)
        self.conn.execute(
            """INSERT OR REPLACE INTO active_job
               (slot, job_id, status, progress_pct, eta_sec, updated_at, file_name,
                byte_size, chunk_results)
               VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (state.job_id, state.status, state.progress_percent,
             state.eta_seconds, state.updated_at, state.file_name, state.byte_size,
             json.dumps([r.to_dict() for r in state.chunk_results])),
        )
        self.conn.commit()

    def clear(self):
        self.conn.execute("DELETE FROM active_job")
        self.conn.commit()
