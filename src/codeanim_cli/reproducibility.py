from __future__ import annotations

import json
import subprocess
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from typing import Optional

DIST_NAME = "codeanim"


def get_pipeline_version() -> str:
    """Get version from git, falling back to the installed distribution."""
    try:
        result = subprocess.run(
            ["git", "describe", "--tags", "--always", "--dirty"],
            capture_output=True,
            text=True,
            timeout=5,
            cwd=Path(__file__).parent,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        pass

    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return "unknown"


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def stamp_version(output_path: Path, extra_metadata: Optional[dict] = None) -> Path:
    """Write a ``<output>.version.json`` sidecar next to an exported artifact.

    The sidecar records the tool version, a UTC timestamp, the artifact's file
    name and any ``extra_metadata`` (export settings, frame counts).
    """
    version_info = {
        "pipeline_version": get_pipeline_version(),
        "timestamp": now_utc_iso(),
        "output_file": output_path.name,
    }

    if extra_metadata:
        version_info["metadata"] = extra_metadata

    sidecar_path = output_path.with_suffix(output_path.suffix + ".version.json")
    sidecar_path.write_text(json.dumps(version_info, indent=2), encoding="utf-8")

    return sidecar_path
