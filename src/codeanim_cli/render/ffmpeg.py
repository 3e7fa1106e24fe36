from __future__ import annotations

import logging
import shutil
import subprocess
from typing import List

logger = logging.getLogger(__name__)


def check_ffmpeg() -> bool:
    """Check if ffmpeg is available on PATH."""
    return shutil.which("ffmpeg") is not None


def run_ffmpeg(cmd: List[str]) -> None:
    """Run an ffmpeg command, raising CalledProcessError with stderr on failure."""
    logger.debug("ffmpeg: %s", " ".join(cmd))
    subprocess.run(cmd, check=True, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
