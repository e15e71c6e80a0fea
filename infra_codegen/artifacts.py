"""Recover generated files from a task working directory."""

import logging
from pathlib import Path

from infra_common.models import Artifact, ArtifactBundle, classify_file

logger = logging.getLogger(__name__)

PROMPT_FILE = "task.txt"


def read_artifacts(task_dir: Path) -> ArtifactBundle | None:
    """
    Read all files the generator left in a task directory.

    The prompt file, dotfiles, subdirectories and whitespace-only files are
    skipped. Files are returned in name order.

    Args:
        task_dir: Working directory of one task

    Returns:
        ArtifactBundle with at least one file, or None if the directory is
        missing or holds nothing usable
    """
    if not task_dir.is_dir():
        logger.warning(f"Task directory does not exist: {task_dir}")
        return None

    files = []
    try:
        for entry in sorted(task_dir.iterdir(), key=lambda p: p.name):
            if entry.name == PROMPT_FILE or entry.name.startswith("."):
                continue
            if not entry.is_file():
                continue

            content = entry.read_text(encoding="utf-8", errors="replace")
            if not content.strip():
                continue

            files.append(
                Artifact(path=entry.name, content=content, type=classify_file(entry.name))
            )
            logger.info(f"Found generated file {entry.name} ({len(content)} chars)")
    except OSError as e:
        logger.warning(f"Failed to read generated files in {task_dir}: {e}")
        return None

    return ArtifactBundle(files=files) if files else None
