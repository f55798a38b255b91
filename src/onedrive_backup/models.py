"""Data models for OneDrive Backup."""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from threading import Lock


class NodeKind(Enum):
    """Classification of a remote drive entry."""

    FILE = "file"
    FOLDER = "folder"
    SHARED = "shared"


@dataclass(frozen=True)
class RemoteNode:
    """One file, folder or shared reference returned by the drive."""

    id: str
    name: str
    relative_path: str
    kind: NodeKind
    size: int = 0
    last_modified: datetime | None = None
    is_shared: bool = False
    is_empty: bool = False
    drive_id: str | None = None
    # Shared references point at an item that lives in another drive
    remote_id: str | None = None
    target_is_folder: bool = False

    @property
    def content_id(self) -> str:
        """Id to use when fetching content or children."""
        return self.remote_id or self.id

    @property
    def is_file(self) -> bool:
        return self.kind is NodeKind.FILE

    @property
    def is_folder(self) -> bool:
        return self.kind is NodeKind.FOLDER


class OverwritePolicy(Enum):
    """What to do when the destination file already exists."""

    NEVER = "never"
    IF_NEWER = "if_newer"
    ALWAYS = "always"
    PROMPT = "prompt"


class PolicyCell:
    """Overwrite policy shared by reference across all workers.

    Interactive mode starts as PROMPT and may be escalated to ALWAYS when the
    user answers "yes to all".
    """

    def __init__(self, policy: OverwritePolicy = OverwritePolicy.NEVER):
        self._policy = policy
        self._lock = Lock()

    def get(self) -> OverwritePolicy:
        with self._lock:
            return self._policy

    def set(self, policy: OverwritePolicy) -> None:
        with self._lock:
            self._policy = policy


@dataclass
class TransferJob:
    """A single file to bring down from the drive."""

    remote_id: str
    destination: Path
    expected_size: int
    last_modified: datetime | None = None
    drive_id: str | None = None
    display_path: str = ""


class ErrorKind(Enum):
    """Terminal outcome categories for a failed transfer."""

    EXHAUSTED_RETRIES = "exhausted_retries"
    PERMISSION_DENIED = "permission_denied"
    INVALID_STATE = "invalid_state"
    API_ERROR = "api_error"
    LOCAL_IO = "local_io"


@dataclass
class TransferError:
    """Why a transfer failed, with enough context for a manual retry."""

    kind: ErrorKind
    remote_id: str
    path: str
    message: str = ""


@dataclass
class TransferResult:
    """Outcome of one Downloader.download call."""

    status: str  # "downloaded", "skipped", "failed" or "cancelled"
    error: TransferError | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


@dataclass
class Checkpoint:
    """Resume point for an in-progress chunked download."""

    remote_id: str
    bytes_written: int
    total_size: int
    last_updated: datetime

    def to_dict(self) -> dict:
        return {
            "remote_id": self.remote_id,
            "bytes_written": self.bytes_written,
            "total_size": self.total_size,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Checkpoint":
        return cls(
            remote_id=str(data["remote_id"]),
            bytes_written=int(data["bytes_written"]),
            total_size=int(data["total_size"]),
            last_updated=datetime.fromisoformat(data["last_updated"]),
        )


@dataclass
class ActiveDownload:
    """Track an active download in progress."""

    slot: int
    path: str
    total_bytes: int
    downloaded_bytes: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def progress_percent(self) -> float:
        """Get download progress as percentage."""
        if self.total_bytes <= 0:
            return 0.0
        return (self.downloaded_bytes / self.total_bytes) * 100


@dataclass
class BackupStats:
    """Counters shared by every worker for the duration of one run."""

    processed_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    folders_scanned: int = 0
    bytes_downloaded: int = 0
    rate_limit_hits: int = 0
    retries_total: int = 0
    start_time: float = field(default_factory=time.time)

    _lock: Lock = field(default_factory=Lock)
    _active: dict[int, ActiveDownload] = field(default_factory=dict)
    _next_slot: int = 0

    def increment(self, attr: str, value: int = 1) -> None:
        """Thread-safe increment of a stat attribute."""
        with self._lock:
            current = getattr(self, attr)
            setattr(self, attr, current + value)

    def reset(self) -> None:
        """Zero all counters at the start of a run."""
        with self._lock:
            self.processed_count = 0
            self.skipped_count = 0
            self.error_count = 0
            self.folders_scanned = 0
            self.bytes_downloaded = 0
            self.rate_limit_hits = 0
            self.retries_total = 0
            self.start_time = time.time()
            self._active.clear()
            self._next_slot = 0

    def start_download(self, path: str, total_bytes: int) -> int:
        """Register a new active download. Returns slot ID."""
        with self._lock:
            slot = self._next_slot
            self._next_slot += 1
            self._active[slot] = ActiveDownload(slot, path, total_bytes)
            return slot

    def update_download(self, slot: int, downloaded: int) -> None:
        """Update progress for an active download."""
        with self._lock:
            if slot in self._active:
                self._active[slot].downloaded_bytes = downloaded

    def finish_download(self, slot: int) -> None:
        """Remove a completed download from active tracking."""
        with self._lock:
            self._active.pop(slot, None)

    def get_active_downloads(self) -> list[ActiveDownload]:
        """Get list of active downloads sorted by slot."""
        with self._lock:
            return sorted(self._active.values(), key=lambda x: x.slot)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def total_count(self) -> int:
        """Every file the run has reached a decision on."""
        return self.processed_count + self.skipped_count + self.error_count

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    @property
    def speed_bps(self) -> float:
        """Get overall download speed in bytes per second."""
        if self.elapsed_seconds < 0.1:
            return 0.0
        return self.bytes_downloaded / self.elapsed_seconds


@dataclass
class RemoteFileSummary:
    path: str
    size: int
    last_modified: datetime | None = None


@dataclass
class LocalFileSummary:
    path: str
    size: int


@dataclass
class DiffEntry:
    """A file present on both sides with differing sizes."""

    path: str
    remote_size: int
    local_size: int

    @property
    def difference(self) -> int:
        """Signed byte difference, local minus remote."""
        return self.local_size - self.remote_size


@dataclass
class VerificationResult:
    """Outcome of comparing the remote tree with a local directory."""

    missing: list[RemoteFileSummary] = field(default_factory=list)
    modified: list[DiffEntry] = field(default_factory=list)
    extra: list[LocalFileSummary] = field(default_factory=list)
    identical_count: int = 0

    @property
    def is_clean(self) -> bool:
        return not (self.missing or self.modified or self.extra)

    def sorted(self) -> "VerificationResult":
        """Copy with every list ordered by path."""
        return replace(
            self,
            missing=sorted(self.missing, key=lambda e: e.path),
            modified=sorted(self.modified, key=lambda e: e.path),
            extra=sorted(self.extra, key=lambda e: e.path),
        )
