"""Configuration management for OneDrive Backup."""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .filters import parse_folder_list
from .models import OverwritePolicy
from .utils import parse_size, parse_timestamp

MB = 1024 * 1024


def _load_env_file(path: Path | None = None) -> None:
    """Load environment variables from a .env file if present.

    This is a minimal loader that supports simple ``KEY=VALUE`` lines.
    Existing environment variables are not overridden.
    """

    env_path = path or (Path.cwd() / ".env")
    try:
        lines = env_path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()

        # Strip optional quotes
        if (value.startswith("\"") and value.endswith("\"")) or (
            value.startswith("'") and value.endswith("'")
        ):
            value = value[1:-1]

        if key and key not in os.environ:
            os.environ[key] = value


@dataclass
class Config:
    """Application configuration."""

    # Session
    access_token: str = ""
    token_expires_at: datetime | None = None

    # Local settings
    export_folder: str = ""

    # Traversal
    overwrite: bool = False
    overwrite_all: bool = False
    interactive: bool = False
    include_shared_items: bool = False
    excluded_folders: list[str] = field(default_factory=list)
    parallel: bool = True

    # Performance tuning
    throttle_limit: int = 10
    batch_size: int = 15
    chunk_size_mb: int = 20
    large_file_threshold: int = 100 * MB
    request_timeout: float = 30.0
    stream_chunk_size: int = 1 * MB

    # Retry settings
    max_retries: int = 5
    backoff_base: float = 1.0
    backoff_max: float = 60.0

    # Rate limiting
    max_requests_per_minute: int = 600
    rate_limit_window: float = 60.0

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        # Lazily load variables from a local .env file, if present.
        # Explicitly-set environment variables take precedence.
        _load_env_file()

        return cls(
            access_token=os.getenv("ONEDRIVE_ACCESS_TOKEN", ""),
            token_expires_at=parse_timestamp(os.getenv("ONEDRIVE_TOKEN_EXPIRES", "")),
            export_folder=os.getenv("ONEDRIVE_EXPORT_FOLDER", ""),
            excluded_folders=parse_folder_list(os.getenv("ONEDRIVE_EXCLUDED_FOLDERS", "")),
            throttle_limit=int(os.getenv("ONEDRIVE_THROTTLE_LIMIT", "10")),
            batch_size=int(os.getenv("ONEDRIVE_BATCH_SIZE", "15")),
            chunk_size_mb=int(os.getenv("ONEDRIVE_CHUNK_SIZE_MB", "20")),
            large_file_threshold=parse_size(os.getenv("ONEDRIVE_LARGE_FILE_THRESHOLD", "100MB")),
            max_retries=int(os.getenv("ONEDRIVE_MAX_RETRIES", "5")),
            max_requests_per_minute=int(os.getenv("ONEDRIVE_MAX_REQUESTS_PER_MINUTE", "600")),
            request_timeout=float(os.getenv("ONEDRIVE_TIMEOUT", "30")),
        )

    @property
    def chunk_size(self) -> int:
        """Byte-range size for chunked downloads."""
        return self.chunk_size_mb * MB

    @property
    def overwrite_policy(self) -> OverwritePolicy:
        """Policy implied by the overwrite flags (OverwriteAll wins)."""
        if self.overwrite_all:
            return OverwritePolicy.ALWAYS
        if self.overwrite:
            return OverwritePolicy.IF_NEWER
        if self.interactive:
            return OverwritePolicy.PROMPT
        return OverwritePolicy.NEVER

    def validate(self) -> list[str]:
        """Validate configuration. Returns list of errors."""
        errors = []

        if not self.access_token:
            errors.append("ONEDRIVE_ACCESS_TOKEN is required")
        elif "PASTE" in self.access_token:
            errors.append("ONEDRIVE_ACCESS_TOKEN contains placeholder text")

        if not self.export_folder:
            errors.append("Export folder is required")
        else:
            dest = Path(self.export_folder)
            if dest.exists() and not dest.is_dir():
                errors.append(f"Export folder exists but is not a directory: {dest}")

        if self.throttle_limit < 1:
            errors.append("throttle_limit must be at least 1")
        elif self.throttle_limit > 64:
            errors.append("throttle_limit should not exceed 64")

        if self.batch_size < 1:
            errors.append("batch_size must be at least 1")

        if self.chunk_size_mb < 1:
            errors.append("chunk_size_mb must be at least 1")

        if self.max_retries < 1:
            errors.append("max_retries must be at least 1")

        if self.max_requests_per_minute < 1:
            errors.append("max_requests_per_minute must be at least 1")

        if self.request_timeout < 5:
            errors.append("request_timeout should be at least 5 seconds")

        return errors

    def ensure_dest_exists(self) -> Path:
        """Ensure export folder exists. Returns Path."""
        dest = Path(self.export_folder)
        dest.mkdir(parents=True, exist_ok=True)
        return dest
