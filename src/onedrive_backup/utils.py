"""Utility functions for OneDrive Backup."""

import random
import shutil
import sys
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime


def human_size(num_bytes: int, precision: int = 2) -> str:
    """Convert bytes to human-readable string (e.g., '1.5 GB')."""
    num = float(num_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB", "PB"]:
        if abs(num) < 1024.0:
            return f"{num:.{precision}f} {unit}"
        num /= 1024.0
    return f"{num:.{precision}f} EB"


def human_time(seconds: float | None) -> str:
    """Convert seconds to human-readable duration (e.g., '2h 15m')."""
    if seconds is None:
        return "calculating..."
    if seconds < 0:
        return "unknown"

    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        m, s = divmod(seconds, 60)
        return f"{m}m {s}s"
    else:
        h, remainder = divmod(seconds, 3600)
        m, s = divmod(remainder, 60)
        return f"{h}h {m}m"


def human_speed(bytes_per_sec: float) -> str:
    """Convert bytes/sec to human-readable speed (e.g., '2.5 MB/s')."""
    if bytes_per_sec < 1024:
        return f"{bytes_per_sec:.0f} B/s"
    elif bytes_per_sec < 1024 * 1024:
        return f"{bytes_per_sec / 1024:.1f} KB/s"
    else:
        return f"{bytes_per_sec / (1024 * 1024):.2f} MB/s"


def truncate_path(path: str, max_len: int = 40) -> str:
    """Truncate a path for display, keeping the end."""
    if len(path) <= max_len:
        return path
    return "..." + path[-(max_len - 3):]


def get_terminal_width() -> int:
    """Get terminal width, defaulting to 80 if unavailable."""
    return shutil.get_terminal_size(fallback=(80, 24)).columns


def is_tty() -> bool:
    """Check if stdout is a terminal (supports colors/cursor control)."""
    return sys.stdout.isatty()


def compute_backoff(
    previous_delay: float,
    retry_after: float | None = None,
    max_delay: float = 60.0,
    jitter: float | None = None,
) -> float:
    """
    Next retry delay: double the previous one, capped, plus up to 1s jitter.

    A server-supplied Retry-After is a floor; the cap never pushes the
    delay below it.

    Args:
        previous_delay: Delay used before the previous attempt (seconds)
        retry_after: Retry-After from a 429 response, if any
        max_delay: Upper bound for the escalated delay
        jitter: Fixed jitter for tests; random 0-1s when None
    """
    delay = min(max_delay, previous_delay * 2)
    if retry_after is not None:
        delay = max(retry_after, delay)
    if jitter is None:
        jitter = random.uniform(0, 1.0)
    return delay + jitter


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds ("5") or an HTTP date. Returns None when the header
    is missing or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp as sent by Microsoft Graph ('...Z')."""
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_size(size_str: str) -> int:
    """
    Parse a human-readable size string to bytes.

    Examples:
        "100" -> 100
        "1KB" -> 1024
        "1.5MB" -> 1572864
        "2GB" -> 2147483648
    """
    size_str = size_str.strip().upper()

    multipliers = {
        "B": 1,
        "K": 1024, "KB": 1024,
        "M": 1024**2, "MB": 1024**2,
        "G": 1024**3, "GB": 1024**3,
        "T": 1024**4, "TB": 1024**4,
    }

    for suffix, mult in sorted(multipliers.items(), key=lambda x: -len(x[0])):
        if size_str.endswith(suffix):
            num = float(size_str[:-len(suffix)].strip())
            return int(num * mult)

    return int(float(size_str))
