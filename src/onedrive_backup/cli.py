"""Command-line interface for OneDrive Backup."""

import argparse
import logging
import shutil
import signal
import sys
from pathlib import Path
from threading import Event
from typing import TYPE_CHECKING, Any

from .config import Config
from .errors import DriveError, SessionExpiredError

if TYPE_CHECKING:
    from .graph import GraphDriveClient

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "onedrive_backup.log"
COMMANDS = ("backup", "verify")


def setup_logging(log_file: Path) -> None:
    """Configure logging to file only (no console output)."""
    # Clear any existing handlers to prevent duplicate output
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(logging.DEBUG)

    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)


def install_stop_handler(stop_event: Event) -> None:
    """Route SIGINT/SIGTERM to ``stop_event`` so transfers wind down cleanly."""
    from .display import Colors

    def signal_handler(sig: int, frame: Any) -> None:
        if not stop_event.is_set():
            stop_event.set()
            print(Colors.SHOW_CURSOR, end="")
            print(f"\n\n  {Colors.YELLOW}⚠{Colors.RESET} Gracefully stopping... please wait.")

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with ``backup`` (default) and ``verify`` commands."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--export-folder", help="Local folder that mirrors OneDrive")
    common.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="PATH",
        help="Drive-relative folder to skip (repeatable)",
    )
    common.add_argument(
        "--include-shared-items",
        action="store_true",
        help="Follow items shared with you from other drives",
    )
    common.add_argument("--max-requests-per-minute", type=int, help="API request budget (default 600)")

    parser = argparse.ArgumentParser(
        prog="onedrive-backup",
        description="Mirror a OneDrive to local disk with resumable, throttled transfers",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    backup = subparsers.add_parser(
        "backup",
        parents=[common],
        help="Run backup (default if no command specified)",
    )
    overwrite = backup.add_mutually_exclusive_group()
    overwrite.add_argument("--overwrite", action="store_true", help="Replace files when OneDrive has a newer copy")
    overwrite.add_argument("--overwrite-all", action="store_true", help="Always replace existing files")
    overwrite.add_argument("--interactive", action="store_true", help="Ask before replacing each existing file")
    backup.add_argument("--throttle-limit", type=int, help="Maximum concurrent transfers (default 10)")
    backup.add_argument("--batch-size", type=int, help="Files dispatched per batch (default 15)")
    backup.add_argument("--chunk-size-mb", type=int, help="Byte-range size for large files (default 20)")
    backup.add_argument("--max-retries", type=int, help="Attempts per file or chunk (default 5)")
    backup.add_argument("--sequential", action="store_true", help="Transfer one file at a time")

    subparsers.add_parser(
        "verify",
        parents=[common],
        help="Compare the export folder with OneDrive by file size",
    )
    return parser


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Overlay command-line options on an environment-derived config."""
    if args.export_folder:
        config.export_folder = args.export_folder
    if args.exclude:
        config.excluded_folders = list(config.excluded_folders) + list(args.exclude)
    if args.include_shared_items:
        config.include_shared_items = True
    if args.max_requests_per_minute is not None:
        config.max_requests_per_minute = args.max_requests_per_minute

    if getattr(args, "overwrite", False):
        config.overwrite = True
    if getattr(args, "overwrite_all", False):
        config.overwrite_all = True
    if getattr(args, "interactive", False):
        config.interactive = True
    if getattr(args, "sequential", False):
        config.parallel = False

    for name in ("throttle_limit", "batch_size", "chunk_size_mb", "max_retries"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(config, name, value)
    return config


def connect(config: Config) -> "GraphDriveClient | None":
    """Validate config and reach the drive. Returns a client or None."""
    from .display import print_error, print_header, print_info, print_success
    from .graph import DriveSession, GraphDriveClient
    from .utils import human_size

    print_header("Configuration")
    print()

    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        return None

    print_success("Configuration valid")
    print_info(f"Threads: {config.throttle_limit}  Batch: {config.batch_size}  Chunk: {config.chunk_size_mb} MB")
    print_info(f"Max retries: {config.max_retries}  Requests/min: {config.max_requests_per_minute}")
    if config.excluded_folders:
        print_info(f"Excluded: {', '.join(config.excluded_folders)}")

    print()
    print_info("Connecting to OneDrive...")

    session = DriveSession(config.access_token, config.token_expires_at)
    client = GraphDriveClient(session, timeout=config.request_timeout)
    try:
        drive = client.get_drive()
    except SessionExpiredError as e:
        print_error(f"Authentication failed: {e}")
        print_info("Obtain a fresh access token and set ONEDRIVE_ACCESS_TOKEN.")
        return None
    except DriveError as e:
        print_error(f"Connection failed: {e}")
        return None

    owner = ((drive.get("owner") or {}).get("user") or {}).get("displayName", "unknown")
    print_success(f"Connected: {owner} ({drive.get('driveType', 'personal')})")
    quota = drive.get("quota") or {}
    if quota.get("total"):
        print_info(f"Storage: {human_size(quota.get('used', 0))} / {human_size(quota['total'])}")
    return client


def run_backup(config: Config) -> int:
    """Run a full backup. Returns the process exit code."""
    from .coordinator import BackupCoordinator
    from .display import (
        Colors,
        ProgressDisplay,
        ask_overwrite,
        print_error,
        print_header,
        print_info,
        print_success,
        print_summary,
    )
    from .downloader import Downloader
    from .filters import ExclusionSet
    from .models import BackupStats, PolicyCell
    from .rate_limiter import SlidingWindowRateLimiter
    from .scanner import RemoteTreeEnumerator
    from .throttle import AdaptiveThrottle

    client = connect(config)
    if client is None:
        return 1

    try:
        dest = config.ensure_dest_exists()
    except OSError as e:
        print_error(f"Cannot create export folder: {e}")
        return 1
    print_success(f"Destination: {dest}")

    try:
        usage = shutil.disk_usage(dest)
        print_info(f"Disk: {usage.free / 1e9:.1f} GB free / {usage.total / 1e9:.1f} GB total")
    except OSError:
        pass

    log_file = Path.cwd() / LOG_FILE_NAME
    setup_logging(log_file)
    logger.info("=" * 50)
    logger.info("Backup started")
    print_info(f"Log file: {log_file}")

    limiter = SlidingWindowRateLimiter(config.max_requests_per_minute, config.rate_limit_window)
    stats = BackupStats()
    policy = PolicyCell(config.overwrite_policy)
    throttle = AdaptiveThrottle(config.throttle_limit)
    stop_event = Event()
    install_stop_handler(stop_event)

    downloader = Downloader(
        client,
        limiter,
        stats,
        config,
        policy,
        prompt=ask_overwrite if config.interactive else None,
        stop_event=stop_event,
    )
    coordinator = BackupCoordinator(
        RemoteTreeEnumerator(client, limiter),
        downloader,
        ExclusionSet(config.excluded_folders),
        stats,
        config,
        throttle,
        stop_event=stop_event,
    )

    print_header("Downloading")
    print_info(f"Overwrite policy: {policy.get().value}")
    print_info(f"Mode: {'parallel' if config.parallel else 'sequential'}")
    print()

    # Prompts and the live display would fight over the terminal
    display = None if config.interactive else ProgressDisplay(stats, limiter, throttle)
    if display:
        print(Colors.HIDE_CURSOR, end="", flush=True)
        display.start()

    try:
        coordinator.run()
    except SessionExpiredError as e:
        logger.error("Session expired mid-run: %s", e)
        if display:
            display.stop()
            display = None
            print(Colors.SHOW_CURSOR, end="", flush=True)
        print_error(f"Session expired: {e}")
        print_summary(stats, interrupted=True)
        return 1
    finally:
        if display:
            display.stop()
            print(Colors.SHOW_CURSOR, end="", flush=True)

    interrupted = stop_event.is_set()
    if interrupted:
        logger.warning("Backup interrupted by user")

    print_summary(stats, interrupted)
    logger.info(
        "Backup completed: %d processed, %d skipped, %d errors",
        stats.processed_count,
        stats.skipped_count,
        stats.error_count,
    )
    logger.info("Rate limiter waited %.1fs in total", limiter.total_wait)
    return 130 if interrupted else 0


def run_verify(config: Config) -> int:
    """Compare the export folder with OneDrive. Returns the exit code."""
    from .display import print_error, print_info, print_verification_report
    from .filters import ExclusionSet
    from .rate_limiter import SlidingWindowRateLimiter
    from .scanner import RemoteTreeEnumerator
    from .verifier import Verifier

    client = connect(config)
    if client is None:
        return 1

    dest = Path(config.export_folder)
    if not dest.is_dir():
        print_error(f"Export folder does not exist: {dest}")
        return 1

    setup_logging(Path.cwd() / LOG_FILE_NAME)
    limiter = SlidingWindowRateLimiter(config.max_requests_per_minute, config.rate_limit_window)
    verifier = Verifier(RemoteTreeEnumerator(client, limiter), ExclusionSet(config.excluded_folders))

    print()
    print_info("Indexing OneDrive and local folder...")
    try:
        result = verifier.verify(dest, exclude_shared=not config.include_shared_items)
    except SessionExpiredError as e:
        print_error(f"Session expired: {e}")
        return 1

    print_verification_report(result)
    return 0 if result.is_clean else 1


def cli_main(argv: list[str] | None = None) -> int:
    """CLI entry point with argument parsing."""
    from .display import print_banner

    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in COMMANDS + ("-h", "--help"):
        # Default to backup
        argv.insert(0, "backup")

    args = build_parser().parse_args(argv)
    config = apply_args(Config.from_env(), args)

    print_banner()
    if args.command == "verify":
        return run_verify(config)
    return run_backup(config)


if __name__ == "__main__":
    sys.exit(cli_main())
