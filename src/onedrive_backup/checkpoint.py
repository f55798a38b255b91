"""Checkpoint sidecar files for resumable large downloads."""

import contextlib
import json
import logging
import os
from pathlib import Path

from .models import Checkpoint

logger = logging.getLogger(__name__)

CHECKPOINT_SUFFIX = ".checkpoint"


def checkpoint_path_for(destination: Path) -> Path:
    """Sidecar path for a destination file (``<destination>.checkpoint``)."""
    return destination.with_name(destination.name + CHECKPOINT_SUFFIX)


def load_checkpoint(path: Path) -> Checkpoint | None:
    """Read a checkpoint sidecar. Returns None if absent or unreadable."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Checkpoint.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("Discarding unreadable checkpoint %s: %s", path, e)
        return None


def save_checkpoint(path: Path, checkpoint: Checkpoint) -> None:
    """Persist a checkpoint atomically (write to a temp file, then rename)."""
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(checkpoint.to_dict(), f)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


def delete_checkpoint(path: Path) -> None:
    """Remove a checkpoint sidecar if present."""
    with contextlib.suppress(FileNotFoundError):
        path.unlink()
