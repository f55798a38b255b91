"""
OneDrive Backup - Mirror a OneDrive to local disk and verify the copy.

Features:
- Parallel transfers with a load-adaptive concurrency width
- Sliding-window rate limiting with Retry-After aware backoff
- Resumable chunked downloads for large files
- Folder exclusions and optional shared-item traversal
- Size-based verification of the local mirror
"""

__version__ = "1.0.0"

from .config import Config
from .coordinator import BackupCoordinator
from .downloader import Downloader
from .filters import ExclusionSet
from .models import BackupStats, OverwritePolicy, RemoteNode, VerificationResult
from .rate_limiter import SlidingWindowRateLimiter
from .scanner import RemoteTreeEnumerator
from .verifier import Verifier

__all__ = [
    "BackupCoordinator",
    "BackupStats",
    "Config",
    "Downloader",
    "ExclusionSet",
    "OverwritePolicy",
    "RemoteNode",
    "RemoteTreeEnumerator",
    "SlidingWindowRateLimiter",
    "VerificationResult",
    "Verifier",
    "__version__",
]
