"""Tree traversal and transfer dispatch for OneDrive Backup."""

import logging
from collections import deque
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from threading import Event
from typing import TYPE_CHECKING, TypeVar

from .errors import DriveError, SessionExpiredError
from .graph import ROOT_FOLDER_ID
from .models import (
    BackupStats,
    ErrorKind,
    NodeKind,
    RemoteNode,
    TransferError,
    TransferJob,
    TransferResult,
)

if TYPE_CHECKING:
    from .config import Config
    from .downloader import Downloader
    from .filters import ExclusionSet
    from .scanner import RemoteTreeEnumerator
    from .throttle import AdaptiveThrottle

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# (folder id, drive-relative path, drive id)
FolderTask = tuple[str, str, str | None]


def batched(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def local_path_for(root: Path, relative_path: str) -> Path:
    """Map a drive-relative POSIX path onto the export folder."""
    return root.joinpath(*[part for part in relative_path.split("/") if part])


class ImmediateDispatcher:
    """Runs every task in the calling thread, one after another."""

    def run(self, fn: Callable[[T], R], items: Sequence[T], width: int) -> list[R]:
        return [fn(item) for item in items]


class PoolDispatcher:
    """Runs a batch on a thread pool no wider than the current throttle width.

    Once ``stop_event`` is set, futures that have not started are cancelled;
    running transfers notice the event between chunks and return early.
    """

    def __init__(self, stop_event: Event | None = None):
        self.stop_event = stop_event or Event()

    def run(self, fn: Callable[[T], R], items: Sequence[T], width: int) -> list[R]:
        if not items or self.stop_event.is_set():
            return []
        results: list[R] = []
        workers = max(1, min(width, len(items)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transfer") as executor:
            futures = [executor.submit(fn, item) for item in items]
            for future in as_completed(futures):
                results.append(future.result())
                if self.stop_event.is_set():
                    # Cancel remaining futures
                    for f in futures:
                        f.cancel()
                    break
        return results


class BackupCoordinator:
    """
    Walk the remote tree and hand files to the downloader.

    Folders are visited one at a time from a queue; the files of each folder
    are dispatched in batches of ``batch_size``. The dispatcher decides
    whether a batch runs in parallel (PoolDispatcher) or inline
    (ImmediateDispatcher); the walk itself is the same either way.
    """

    def __init__(
        self,
        enumerator: "RemoteTreeEnumerator",
        downloader: "Downloader",
        exclusions: "ExclusionSet",
        stats: BackupStats,
        config: "Config",
        throttle: "AdaptiveThrottle",
        dispatcher: ImmediateDispatcher | PoolDispatcher | None = None,
        stop_event: Event | None = None,
    ):
        self.enumerator = enumerator
        self.downloader = downloader
        self.exclusions = exclusions
        self.stats = stats
        self.config = config
        self.throttle = throttle
        self.stop_event = stop_event or Event()
        if dispatcher is None:
            dispatcher = PoolDispatcher(self.stop_event) if config.parallel else ImmediateDispatcher()
        self.dispatcher = dispatcher
        self.export_root = Path(config.export_folder)

    def run(self, root_id: str = ROOT_FOLDER_ID) -> BackupStats:
        """
        Mirror the tree below ``root_id`` into the export folder.

        Per-file and per-folder failures are counted and logged. An expired
        session aborts the walk; a set ``stop_event`` ends it after the
        transfers already running.
        """
        self.stats.reset()
        logger.info(
            "Backup started: export=%s mode=%s width=%d",
            self.export_root,
            type(self.dispatcher).__name__,
            self.throttle.width,
        )

        pending: deque[FolderTask] = deque([(root_id, "", None)])
        while pending and not self.stop_event.is_set():
            folder_id, path, drive_id = pending.popleft()
            pending.extend(self._process_folder(folder_id, path, drive_id))

        if self.stop_event.is_set():
            logger.warning("Backup stopped with %d folders not visited", len(pending))

        logger.info(
            "Backup finished: %d processed, %d skipped, %d errors in %.1fs",
            self.stats.processed_count,
            self.stats.skipped_count,
            self.stats.error_count,
            self.stats.elapsed_seconds,
        )
        return self.stats

    def _process_folder(self, folder_id: str, path: str, drive_id: str | None) -> list[FolderTask]:
        """Transfer one folder's files and return its subfolders."""
        try:
            nodes = self.enumerator.list(folder_id, path, drive_id)
        except SessionExpiredError:
            raise
        except DriveError as e:
            logger.error("Could not list %s (id %s): %s", path or "/", folder_id, e)
            self.stats.increment("error_count")
            return []

        self.stats.increment("folders_scanned")
        files, subfolders = self._partition(nodes)

        for batch in batched(files, self.config.batch_size):
            if self.stop_event.is_set():
                break
            width = self.throttle.rebalance()
            self.dispatcher.run(self._transfer, batch, width)

        return subfolders

    def _partition(self, nodes: list[RemoteNode]) -> tuple[list[RemoteNode], list[FolderTask]]:
        files: list[RemoteNode] = []
        subfolders: list[FolderTask] = []

        for node in nodes:
            if self.exclusions.is_excluded(node.relative_path):
                logger.info("Excluded: %s", node.relative_path)
                continue

            if node.kind is NodeKind.SHARED:
                if not self.config.include_shared_items:
                    logger.debug("Skipping shared item %s", node.relative_path)
                    if not node.target_is_folder:
                        self.stats.increment("skipped_count")
                    continue
                if node.target_is_folder:
                    subfolders.append((node.content_id, node.relative_path, node.drive_id))
                else:
                    files.append(node)
            elif node.is_folder:
                if node.is_empty:
                    self._create_empty_folder(node)
                else:
                    subfolders.append((node.id, node.relative_path, node.drive_id))
            else:
                files.append(node)

        return files, subfolders

    def _create_empty_folder(self, node: RemoteNode) -> None:
        folder = local_path_for(self.export_root, node.relative_path)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Could not create folder %s: %s", folder, e)
            self.stats.increment("error_count")

    def _transfer(self, node: RemoteNode) -> TransferResult:
        job = TransferJob(
            remote_id=node.content_id,
            destination=local_path_for(self.export_root, node.relative_path),
            expected_size=node.size,
            last_modified=node.last_modified,
            drive_id=node.drive_id,
            display_path=node.relative_path,
        )
        try:
            return self.downloader.download(job)
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.exception("Unexpected error processing %s", node.relative_path)
            self.stats.increment("error_count")
            return TransferResult(
                "failed",
                TransferError(ErrorKind.API_ERROR, node.content_id, node.relative_path, str(e)),
            )
