"""
Application configuration manager.
Stores settings in a JSON file under the app support directory.
"""

import json
import logging
import os
from pathlib import Path

from mediarelay.core.constants import (
    CONFIG_PATH, STATE_PATH, DEFAULT_OUTPUT_ROOT,
    DEFAULT_BROKER_URL, DEFAULT_API_BASE,
    DIRECT_UPLOAD_THRESHOLD_BYTES, CHUNK_SIZE_BYTES,
    MAX_UPLOAD_ATTEMPTS, TIMEOUT_FLOOR_SEC, MIN_THROUGHPUT_BYTES_PER_SEC,
    TIMEOUT_BUFFER_SEC, POLL_INTERVAL_SEC, POLL_CEILING_SEC, MB,
)

# Validation bounds
_THRESHOLD_MIN = 1 * MB
_THRESHOLD_MAX = 512 * MB
_CHUNK_MIN = 256 * 1024
_ATTEMPTS_MIN = 1
_ATTEMPTS_MAX = 10
_POLL_INTERVAL_MIN = 1
_POLL_INTERVAL_MAX = 300
_POLL_CEILING_MIN = 60
_POLL_CEILING_MAX = 48 * 3600

_ENV_OVERRIDES = {
    'MEDIARELAY_BROKER_URL': 'broker_url',
    'MEDIARELAY_API_BASE': 'api_base_url',
}

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'broker_url': DEFAULT_BROKER_URL,
    'api_base_url': DEFAULT_API_BASE,
    'output_root': str(DEFAULT_OUTPUT_ROOT),
    'state_path': str(STATE_PATH),
    'direct_upload_threshold_bytes': DIRECT_UPLOAD_THRESHOLD_BYTES,
    'chunk_size_bytes': CHUNK_SIZE_BYTES,
    'max_upload_attempts': MAX_UPLOAD_ATTEMPTS,
    'timeout_floor_sec': TIMEOUT_FLOOR_SEC,
    'min_throughput_bytes_per_sec': MIN_THROUGHPUT_BYTES_PER_SEC,
    'timeout_buffer_sec': TIMEOUT_BUFFER_SEC,
    'poll_interval_sec': POLL_INTERVAL_SEC,
    'poll_ceiling_sec': POLL_CEILING_SEC,
    'speaker_labels': True,
    'write_transcripts': True,
}


def _clamp_int(value, lo: int, hi: int, default: int, key: str) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r, using default", key, value)
        return default
    return max(lo, min(hi, value))


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None, environ: dict | None = None):
        self.path = config_path or CONFIG_PATH
        self._environ = os.environ if environ is None else environ
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults and env overrides."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to load config: %s", e)

        for env_key, key in _ENV_OVERRIDES.items():
            if self._environ.get(env_key):
                self._data[key] = self._environ[env_key].rstrip('/')

        # A chunk must always pass the gateway on its own
        if self._data['chunk_size_bytes'] > self._data['direct_upload_threshold_bytes']:
            self._data['chunk_size_bytes'] = self._data['direct_upload_threshold_bytes']

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'direct_upload_threshold_bytes':
            return _clamp_int(value, _THRESHOLD_MIN, _THRESHOLD_MAX,
                              DIRECT_UPLOAD_THRESHOLD_BYTES, key)

        if key == 'chunk_size_bytes':
            return _clamp_int(value, _CHUNK_MIN, _THRESHOLD_MAX, CHUNK_SIZE_BYTES, key)

        if key == 'max_upload_attempts':
            return _clamp_int(value, _ATTEMPTS_MIN, _ATTEMPTS_MAX, MAX_UPLOAD_ATTEMPTS, key)

        if key == 'poll_interval_sec':
            return _clamp_int(value, _POLL_INTERVAL_MIN, _POLL_INTERVAL_MAX,
                              POLL_INTERVAL_SEC, key)

        if key == 'poll_ceiling_sec':
            return _clamp_int(value, _POLL_CEILING_MIN, _POLL_CEILING_MAX,
                              POLL_CEILING_SEC, key)

        if key in ('timeout_floor_sec', 'timeout_buffer_sec', 'min_throughput_bytes_per_sec'):
            return _clamp_int(value, 1, 10 ** 9, _DEFAULTS[key], key)

        if key in ('broker_url', 'api_base_url'):
            return str(value).rstrip('/')

        if key in ('speaker_labels', 'write_transcripts'):
            return bool(value)

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    @property
    def broker_url(self) -> str:
        return self._data['broker_url']

    @property
    def api_base_url(self) -> str:
        return self._data['api_base_url']

    @property
    def output_root(self) -> Path:
        return Path(self._data['output_root']).expanduser()

    @property
    def state_path(self) -> Path:
        return Path(self._data['state_path']).expanduser()

    @property
    def direct_upload_threshold_bytes(self) -> int:
        return self._data['direct_upload_threshold_bytes']

    @property
    def chunk_size_bytes(self) -> int:
        return self._data['chunk_size_bytes']

    @property
    def max_upload_attempts(self) -> int:
        return self._data['max_upload_attempts']

    @property
    def poll_interval_sec(self) -> int:
        return self._data['poll_interval_sec']

    @property
    def poll_ceiling_sec(self) -> int:
        return self._data['poll_ceiling_sec']

    @property
    def speaker_labels(self) -> bool:
        return self._data['speaker_labels']

    @property
    def write_transcripts(self) -> bool:
        return self._data['write_transcripts']

    @property
    def timeout_floor_sec(self) -> int:
        return self._data['timeout_floor_sec']

    @property
    def min_throughput_bytes_per_sec(self) -> int:
        return self._data['min_throughput_bytes_per_sec']

    @property
    def timeout_buffer_sec(self) -> int:
        return self._data['timeout_buffer_sec']
