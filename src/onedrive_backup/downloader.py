"""Download engine for OneDrive Backup."""

import contextlib
import functools
import logging
import os
import shutil
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from threading import Event, Lock
from typing import TYPE_CHECKING, TypeVar

from .checkpoint import checkpoint_path_for, delete_checkpoint, load_checkpoint, save_checkpoint
from .errors import (
    DriveError,
    DrivePermissionError,
    ExhaustedRetriesError,
    InvalidStateError,
    NotFoundError,
    SessionExpiredError,
    SizeMismatchError,
    TransferCancelledError,
    TransientApiError,
)
from .models import (
    BackupStats,
    Checkpoint,
    ErrorKind,
    OverwritePolicy,
    PolicyCell,
    TransferError,
    TransferJob,
    TransferResult,
)
from .utils import compute_backoff, human_size

if TYPE_CHECKING:
    from .config import Config
    from .graph import GraphDriveClient
    from .rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

PART_SUFFIX = ".part"

# Answers returned by an interactive overwrite prompt
ANSWER_YES = "yes"
ANSWER_NO = "no"
ANSWER_ALL = "all"


def part_path_for(destination: Path) -> Path:
    """Temp file a plain download streams into before the final rename."""
    return destination.with_name(destination.name + PART_SUFFIX)


def is_remote_newer(destination: Path, remote_modified: datetime | None) -> bool:
    """True if the remote timestamp is strictly newer than the local file."""
    if remote_modified is None:
        return False
    local_mtime = destination.stat().st_mtime
    # Whole seconds: Graph timestamps carry no sub-second part
    return int(remote_modified.timestamp()) > int(local_mtime)


class Downloader:
    """Handles individual file downloads with retry logic."""

    def __init__(
        self,
        client: "GraphDriveClient",
        limiter: "SlidingWindowRateLimiter",
        stats: BackupStats,
        config: "Config",
        policy: PolicyCell,
        prompt: Callable[[str], str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        stop_event: Event | None = None,
    ):
        self.client = client
        self.limiter = limiter
        self.stats = stats
        self.config = config
        self.policy = policy
        self.prompt = prompt
        self._sleep = sleep
        self.stop_event = stop_event or Event()
        self._prompt_lock = Lock()

    def download(self, job: TransferJob) -> TransferResult:
        """
        Bring one remote file down to its destination.

        The overwrite policy is checked before any network call. Files above
        the large-file threshold go through the checkpointed chunked path;
        everything else streams into a temp file that replaces the
        destination on success.

        Returns:
            TransferResult with status "downloaded", "skipped", "failed" or
            "cancelled" (stop requested; nothing counted)
        """
        dest = job.destination
        label = job.display_path or str(dest)

        if self.stop_event.is_set():
            return TransferResult("cancelled")

        try:
            if not self._should_write(job, label):
                logger.debug("Skipping %s (exists)", label)
                self.stats.increment("skipped_count")
                return TransferResult("skipped")

            self._clear_directory_collision(dest)
            dest.parent.mkdir(parents=True, exist_ok=True)

            if job.expected_size > self.config.large_file_threshold:
                self._download_chunked(
                    job.remote_id,
                    dest,
                    job.expected_size,
                    self.config.chunk_size,
                    job.drive_id,
                    label,
                )
            else:
                self._download_whole(job, label)

            if job.last_modified is not None:
                ts = job.last_modified.timestamp()
                os.utime(dest, (ts, ts))

        except NotFoundError:
            logger.info("%s no longer exists on the drive, skipping", label)
            self.stats.increment("skipped_count")
            return TransferResult("skipped")
        except SessionExpiredError:
            raise
        except TransferCancelledError:
            logger.info("Stopped during %s", label)
            return TransferResult("cancelled")
        except (DriveError, OSError) as e:
            error = self._to_error(e, job.remote_id, label)
            logger.error("Failed to download %s (id %s): %s", label, job.remote_id, e)
            self.stats.increment("error_count")
            return TransferResult("failed", error)

        self.stats.increment("processed_count")
        return TransferResult("downloaded")

    def download_chunked(
        self,
        remote_id: str,
        destination: Path,
        total_size: int,
        chunk_size: int,
        drive_id: str | None = None,
    ) -> TransferError | None:
        """
        Download a file in byte ranges, resuming from a checkpoint if valid.

        Returns:
            None on success, otherwise a TransferError
        """
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            self._download_chunked(
                remote_id, destination, total_size, chunk_size, drive_id, str(destination)
            )
        except SessionExpiredError:
            raise
        except (DriveError, OSError) as e:
            logger.error("Chunked download of %s failed: %s", destination, e)
            return self._to_error(e, remote_id, str(destination))
        return None

    def _should_write(self, job: TransferJob, label: str) -> bool:
        dest = job.destination
        if not dest.exists() or dest.is_dir():
            return True
        if checkpoint_path_for(dest).exists():
            # Partial large file from an earlier run
            return True

        policy = self.policy.get()
        if policy is OverwritePolicy.ALWAYS:
            return True
        if policy is OverwritePolicy.NEVER:
            return False
        if policy is OverwritePolicy.IF_NEWER:
            return is_remote_newer(dest, job.last_modified)
        return self._ask_overwrite(label)

    def _ask_overwrite(self, label: str) -> bool:
        with self._prompt_lock:
            # Another worker may have answered "yes to all" while we waited
            if self.policy.get() is OverwritePolicy.ALWAYS:
                return True
            if self.prompt is None:
                return False

            answer = self.prompt(label)
            if answer == ANSWER_ALL:
                self.policy.set(OverwritePolicy.ALWAYS)
                return True
            return answer == ANSWER_YES

    def _clear_directory_collision(self, dest: Path) -> None:
        if dest.is_dir():
            logger.warning("Removing directory %s to make room for a file of the same name", dest)
            shutil.rmtree(dest)
        elif dest.exists() and not dest.is_file():
            raise InvalidStateError(f"{dest} exists and is neither a file nor a directory")

    def _call_with_retries(self, operation: Callable[[], T], label: str) -> T:
        """
        Run an operation, retrying transient failures with backoff.

        429 responses honor Retry-After as a floor; other transient errors
        back off exponentially up to ``backoff_max``. Permission and
        not-found errors are never retried.
        """
        attempts = self.config.max_retries
        delay = self.config.backoff_base
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except (TransientApiError, SizeMismatchError) as e:
                last_error = e
                if attempt == attempts:
                    break

                retry_after = None
                if isinstance(e, TransientApiError) and e.is_rate_limited:
                    self.stats.increment("rate_limit_hits")
                    retry_after = e.retry_after

                delay = compute_backoff(delay, retry_after, self.config.backoff_max)
                self.stats.increment("retries_total")
                logger.warning(
                    "Error on %s (attempt %d/%d): %s, retrying in %.1fs",
                    label,
                    attempt,
                    attempts,
                    e,
                    delay,
                )
                self._sleep(delay)

        raise ExhaustedRetriesError(
            f"{label}: gave up after {attempts} attempts: {last_error}",
            attempts,
            last_error,
        )

    def _download_whole(self, job: TransferJob, label: str) -> None:
        dest = job.destination
        tmp_path = part_path_for(dest)
        slot = self.stats.start_download(label, job.expected_size)

        def attempt() -> int:
            self.limiter.acquire()
            logger.debug("Downloading: %s (%s)", label, human_size(job.expected_size))

            written = 0
            with open(tmp_path, "wb") as f:
                for chunk in self.client.stream_content(
                    job.remote_id,
                    self.config.stream_chunk_size,
                    drive_id=job.drive_id,
                ):
                    if self.stop_event.is_set():
                        raise TransferCancelledError(label)
                    f.write(chunk)
                    written += len(chunk)
                    self.stats.update_download(slot, written)

            if written != job.expected_size:
                raise SizeMismatchError(job.expected_size, written)
            return written

        try:
            written = self._call_with_retries(attempt, label)
            tmp_path.replace(dest)
            self.stats.increment("bytes_downloaded", written)
        finally:
            self.stats.finish_download(slot)
            # Clean up partial file on failure
            if tmp_path.exists():
                with contextlib.suppress(OSError):
                    tmp_path.unlink()

    def _fetch_range(self, remote_id: str, start: int, end: int, drive_id: str | None) -> bytes:
        self.limiter.acquire()
        data = self.client.get_content(remote_id, (start, end), drive_id=drive_id)
        if len(data) != end - start:
            raise SizeMismatchError(end - start, len(data))
        return data

    def _resume_position(
        self,
        remote_id: str,
        destination: Path,
        total_size: int,
        checkpoint_path: Path,
    ) -> int:
        checkpoint = load_checkpoint(checkpoint_path)
        if checkpoint is None:
            return 0

        if (
            checkpoint.remote_id == remote_id
            and checkpoint.total_size == total_size
            and 0 <= checkpoint.bytes_written <= total_size
            and destination.is_file()
            and destination.stat().st_size == checkpoint.bytes_written
        ):
            logger.info(
                "Resuming %s at %s of %s",
                destination,
                human_size(checkpoint.bytes_written),
                human_size(total_size),
            )
            return checkpoint.bytes_written

        logger.warning("Checkpoint for %s does not match the partial file, restarting", destination)
        delete_checkpoint(checkpoint_path)
        return 0

    def _download_chunked(
        self,
        remote_id: str,
        destination: Path,
        total_size: int,
        chunk_size: int,
        drive_id: str | None,
        label: str,
    ) -> None:
        checkpoint_path = checkpoint_path_for(destination)
        position = self._resume_position(remote_id, destination, total_size, checkpoint_path)
        if position == 0:
            # Checkpoint before truncating so a failed first chunk stays resumable
            save_checkpoint(
                checkpoint_path,
                Checkpoint(remote_id, 0, total_size, datetime.now(timezone.utc)),
            )
            destination.write_bytes(b"")

        slot = self.stats.start_download(label, total_size)
        self.stats.update_download(slot, position)

        try:
            with open(destination, "r+b") as f:
                f.seek(position)
                while position < total_size:
                    if self.stop_event.is_set():
                        raise TransferCancelledError(f"{label} at byte {position}")
                    end = min(position + chunk_size, total_size)
                    data = self._call_with_retries(
                        functools.partial(self._fetch_range, remote_id, position, end, drive_id),
                        f"{label} [{position}-{end})",
                    )
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                    position = end

                    save_checkpoint(
                        checkpoint_path,
                        Checkpoint(remote_id, position, total_size, datetime.now(timezone.utc)),
                    )
                    self.stats.increment("bytes_downloaded", len(data))
                    self.stats.update_download(slot, position)
        finally:
            self.stats.finish_download(slot)

        delete_checkpoint(checkpoint_path)

    @staticmethod
    def _to_error(error: Exception, remote_id: str, path: str) -> TransferError:
        if isinstance(error, ExhaustedRetriesError):
            kind = ErrorKind.EXHAUSTED_RETRIES
        elif isinstance(error, DrivePermissionError):
            kind = ErrorKind.PERMISSION_DENIED
        elif isinstance(error, InvalidStateError):
            kind = ErrorKind.INVALID_STATE
        elif isinstance(error, OSError):
            kind = ErrorKind.LOCAL_IO
        else:
            kind = ErrorKind.API_ERROR
        return TransferError(kind, remote_id, path, str(error))
