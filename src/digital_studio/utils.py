"""Utilities for writing generated projects to disk."""

import io
import json
import logging
import re
import zipfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any

from .config import settings
from .models import ArtifactMap

logger = logging.getLogger(__name__)


def safe_relative_path(path: str) -> PurePosixPath:
    """Validate an artifact path: relative, no parent traversal.

    Raises:
        ValueError: If the path escapes the project root.
    """
    relative = PurePosixPath(path.replace("\\", "/"))
    if relative.is_absolute() or not relative.parts or ".." in relative.parts:
        raise ValueError(f"Unsafe artifact path: {path!r}")
    return relative


def _allocate_directory(results_dir: Path, project_name: str) -> Path:
    # Include microseconds to avoid collisions when called multiple times per second.
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    safe_name = re.sub(r"[^\w\-]", "_", project_name)[:30] or "project"
    base = f"{timestamp}_{safe_name}"
    target = results_dir / base
    if target.exists():
        for i in range(1, 10_000):
            candidate = results_dir / f"{base}_{i}"
            if not candidate.exists():
                target = candidate
                break
        else:
            raise RuntimeError("Failed to allocate a unique project directory after 10,000 attempts")
    target.mkdir(parents=True)
    return target


def save_project(
    files: ArtifactMap,
    project_name: str,
    metadata: dict[str, Any] | None = None,
    results_dir: Path | None = None,
) -> Path:
    """Write a scaffold into a fresh directory under the results directory.

    Args:
        files: Relative path -> content
        project_name: Used to name the directory
        metadata: Optional metadata saved as generation.json next to the files
        results_dir: Override for the configured results directory

    Returns:
        Path to the project directory.
    """
    root = _allocate_directory(results_dir or settings.get_results_dir(), project_name)

    for path, content in files.items():
        target = root / safe_relative_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    if metadata:
        meta_full = {
            "timestamp": datetime.now().isoformat(),
            "project": project_name,
            "files": sorted(files),
            **metadata,
        }
        (root / "generation.json").write_text(json.dumps(meta_full, indent=2), encoding="utf-8")

    logger.info(f"Saved {len(files)} files to {root}")
    return root


def write_archive(files: ArtifactMap, project_name: str) -> bytes:
    """Pack a scaffold into an in-memory zip with a top-level project folder."""
    folder = re.sub(r"[^\w\-]", "_", project_name) or "project"
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path, content in sorted(files.items()):
            archive.writestr(f"{folder}/{safe_relative_path(path)}", content)
    return buffer.getvalue()
