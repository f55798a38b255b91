"""Backup verification: compare the remote tree with the local mirror."""

import logging
import os
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING

from .checkpoint import CHECKPOINT_SUFFIX
from .downloader import PART_SUFFIX
from .errors import DriveError, SessionExpiredError
from .filters import ExclusionSet, normalize_path
from .graph import ROOT_FOLDER_ID
from .models import (
    DiffEntry,
    LocalFileSummary,
    NodeKind,
    RemoteFileSummary,
    VerificationResult,
)

if TYPE_CHECKING:
    from .scanner import RemoteTreeEnumerator

logger = logging.getLogger(__name__)

SIDECAR_SUFFIXES = (PART_SUFFIX, CHECKPOINT_SUFFIX)


def build_remote_index(
    enumerator: "RemoteTreeEnumerator",
    exclusions: ExclusionSet,
    include_shared: bool = False,
    root_id: str = ROOT_FOLDER_ID,
) -> dict[str, RemoteFileSummary]:
    """
    Enumerate the whole remote tree into ``{relative path: summary}``.

    Folders that cannot be listed are logged and left out; their files will
    show up as extra on the local side.
    """
    index: dict[str, RemoteFileSummary] = {}
    pending: deque[tuple[str, str, str | None]] = deque([(root_id, "", None)])

    while pending:
        folder_id, path, drive_id = pending.popleft()
        try:
            nodes = enumerator.list(folder_id, path, drive_id)
        except SessionExpiredError:
            raise
        except DriveError as e:
            logger.error("Could not list %s during verification: %s", path or "/", e)
            continue

        for node in nodes:
            if exclusions.is_excluded(node.relative_path):
                continue
            if node.kind is NodeKind.SHARED:
                if not include_shared:
                    continue
                if node.target_is_folder:
                    pending.append((node.content_id, node.relative_path, node.drive_id))
                    continue
            elif node.is_folder:
                if not node.is_empty:
                    pending.append((node.id, node.relative_path, node.drive_id))
                continue

            index[normalize_path(node.relative_path)] = RemoteFileSummary(
                node.relative_path, node.size, node.last_modified
            )

    return index


def scan_local(root: Path, exclusions: ExclusionSet | None = None) -> list[LocalFileSummary]:
    """
    Collect every file below ``root`` with its size.

    Download sidecars (``.part``, ``.checkpoint``) and excluded paths are
    left out.
    """
    files: list[LocalFileSummary] = []
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        rel_dir = base.relative_to(root).as_posix()
        if rel_dir == ".":
            rel_dir = ""

        if exclusions:
            dirnames[:] = [
                d for d in dirnames
                if not exclusions.is_excluded(f"{rel_dir}/{d}" if rel_dir else d)
            ]

        for name in filenames:
            if name.endswith(SIDECAR_SUFFIXES):
                continue
            relative = f"{rel_dir}/{name}" if rel_dir else name
            if exclusions and exclusions.is_excluded(relative):
                continue
            try:
                size = (base / name).stat().st_size
            except OSError as e:
                logger.warning("Could not stat %s: %s", base / name, e)
                continue
            files.append(LocalFileSummary(relative, size))

    return files


def compare_trees(
    remote_index: dict[str, RemoteFileSummary],
    local_files: list[LocalFileSummary],
) -> VerificationResult:
    """
    Diff a remote index against local files by size only.

    Matching entries are removed from a copy of the index as they are
    seen; whatever is left at the end is missing locally.
    """
    remaining = {normalize_path(path): summary for path, summary in remote_index.items()}
    result = VerificationResult()

    for local in local_files:
        key = normalize_path(local.path)
        remote = remaining.pop(key, None)
        if remote is None:
            result.extra.append(local)
        elif remote.size != local.size:
            result.modified.append(DiffEntry(local.path, remote.size, local.size))
        else:
            result.identical_count += 1

    result.missing.extend(remaining.values())
    return result


class Verifier:
    """Checks a local export folder against the live remote tree."""

    def __init__(self, enumerator: "RemoteTreeEnumerator", exclusions: ExclusionSet):
        self.enumerator = enumerator
        self.exclusions = exclusions

    def verify(self, local_root: Path, exclude_shared: bool = True) -> VerificationResult:
        """Build the remote index, walk ``local_root`` and diff the two."""
        logger.info("Verifying %s", local_root)
        remote_index = build_remote_index(
            self.enumerator, self.exclusions, include_shared=not exclude_shared
        )
        local_files = scan_local(Path(local_root), self.exclusions)
        result = compare_trees(remote_index, local_files)
        logger.info(
            "Verification: %d identical, %d missing, %d modified, %d extra",
            result.identical_count,
            len(result.missing),
            len(result.modified),
            len(result.extra),
        )
        return result
