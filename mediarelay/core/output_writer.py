"""
Output writer: writes final transcript TXT files.
"""

import logging
from pathlib import Path

from mediarelay.core.security_utils import safe_output_path

logger = logging.getLogger(__name__)


def write_transcript(text: str, output_root: Path, file_name: str, job_id: str) -> Path:
    """
    Write transcript to <OutputRoot>/<SanitizedStem>.txt
    Returns the path to the written file.
    """
    output_root.mkdir(parents=True, exist_ok=True)
    output_file = safe_output_path(output_root, file_name, job_id)
    output_file.write_text(text, encoding='utf-8')

    logger.info("Wrote transcript: %s", output_file)
    return output_file
