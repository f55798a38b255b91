"""Terminal display and UI components for OneDrive Backup."""

import sys
from datetime import datetime
from threading import Event, Lock, Thread
from typing import TYPE_CHECKING

from .utils import (
    get_terminal_width,
    human_size,
    human_speed,
    human_time,
    is_tty,
    truncate_path,
)

if TYPE_CHECKING:
    from .models import BackupStats, VerificationResult
    from .rate_limiter import SlidingWindowRateLimiter
    from .throttle import AdaptiveThrottle


class Colors:
    """ANSI color codes for terminal output."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    GRAY = "\033[90m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RESET = "\033[0m"
    HIDE_CURSOR = "\033[?25l"
    SHOW_CURSOR = "\033[?25h"
    CLEAR_LINE = "\033[2K"

    _disabled = False

    @classmethod
    def disable(cls) -> None:
        """Disable all color codes (for non-TTY output)."""
        if cls._disabled:
            return
        cls._disabled = True
        for attr in dir(cls):
            if not attr.startswith("_") and attr.isupper():
                setattr(cls, attr, "")

    @classmethod
    def init(cls) -> None:
        """Initialize colors based on terminal capability."""
        if not is_tty():
            cls.disable()


# Initialize colors on module load
Colors.init()


def make_bar(percent: float, width: int = 30) -> str:
    """Create a simple progress bar string."""
    percent = max(0, min(100, percent))
    filled = int((percent / 100) * width)
    return "█" * filled + "░" * (width - filled)


def print_banner() -> None:
    """Print the application banner."""
    C = Colors.CYAN
    W = Colors.WHITE
    B = Colors.BOLD
    D = Colors.DIM
    R = Colors.RESET

    print()
    print(f"{C}╔══════════════════════════════════════════════════════════════════════╗{R}")
    print(f"{C}║{R}{B}{W}                          ONEDRIVE BACKUP                             {R}{C}║{R}")
    print(f"{C}╠══════════════════════════════════════════════════════════════════════╣{R}")
    print(f"{C}║{R} {D}Adaptive Throttling  •  Resumable Transfers  •  Mirror Verification{R}  {C}║{R}")
    print(f"{C}╚══════════════════════════════════════════════════════════════════════╝{R}")
    print()


def print_header(text: str) -> None:
    """Print a section header."""
    width = min(get_terminal_width() - 4, 76)
    line_len = max(0, width - len(text) - 5)
    print(f"\n{Colors.MAGENTA}{Colors.BOLD}{'─' * 3} {text} {'─' * line_len}{Colors.RESET}")


def print_success(text: str) -> None:
    """Print a success message."""
    print(f"  {Colors.GREEN}✓{Colors.RESET} {text}")


def print_error(text: str) -> None:
    """Print an error message."""
    print(f"  {Colors.RED}✗{Colors.RESET} {text}")


def print_warning(text: str) -> None:
    """Print a warning message."""
    print(f"  {Colors.YELLOW}⚠{Colors.RESET} {text}")


def print_info(text: str) -> None:
    """Print an info message."""
    print(f"  {Colors.CYAN}ℹ{Colors.RESET} {text}")


def ask_overwrite(path: str) -> str:
    """Ask whether to overwrite an existing file. Returns 'yes', 'no' or 'all'."""
    while True:
        try:
            ans = input(
                f"\n  {Colors.CYAN}?{Colors.RESET} {path} exists. Overwrite? "
                f"{Colors.DIM}[y]es / [N]o / [a]ll{Colors.RESET}: "
            )
            ans = ans.strip().lower()
        except (EOFError, KeyboardInterrupt):
            return "no"

        if not ans or ans in ("n", "no"):
            return "no"
        if ans in ("y", "yes"):
            return "yes"
        if ans in ("a", "all"):
            return "all"

        print_warning("Please enter 'y', 'n' or 'a'.")


def print_summary(stats: "BackupStats", interrupted: bool = False) -> None:
    """Print the backup summary."""
    print("\n" * 2)

    if interrupted:
        print_header(f"{Colors.YELLOW}BACKUP INTERRUPTED{Colors.RESET}")
    else:
        print_header(f"{Colors.GREEN}BACKUP COMPLETE{Colors.RESET}")

    print()
    elapsed = human_time(stats.elapsed_seconds)
    avg_speed = human_speed(stats.speed_bps) if stats.speed_bps > 0 else "N/A"

    print(f"  {Colors.BOLD}Performance{Colors.RESET}")
    print(f"    Completed:    {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"    Duration:     {elapsed}")
    print(f"    Avg Speed:    {avg_speed}")
    print(f"    Folders:      {stats.folders_scanned:,}")
    print()

    print(f"  {Colors.BOLD}Files{Colors.RESET}")
    print(f"    Total:        {stats.total_count:,}")
    print(f"    {Colors.GREEN}Processed:{Colors.RESET}    {stats.processed_count:,} ({human_size(stats.bytes_downloaded)})")
    print(f"    {Colors.BLUE}Skipped:{Colors.RESET}      {stats.skipped_count:,}")
    if stats.error_count > 0:
        print(f"    {Colors.RED}Errors:{Colors.RESET}       {stats.error_count:,}")
    else:
        print("    Errors:       0")
    print()

    if stats.rate_limit_hits > 0 or stats.retries_total > 0:
        print(f"  {Colors.BOLD}Rate Limiting{Colors.RESET}")
        print(f"    Hits: {stats.rate_limit_hits}  Retries: {stats.retries_total}")
        print()

    print(f"  {'─' * 60}")

    if not interrupted and stats.error_count == 0:
        print(f"  {Colors.GREEN}✓{Colors.RESET} {Colors.BOLD}All done!{Colors.RESET} Files safely backed up.")
    elif interrupted:
        print(f"  {Colors.YELLOW}⚠{Colors.RESET} Interrupted. Run again to continue.")
    else:
        print(f"  {Colors.YELLOW}⚠{Colors.RESET} Completed with {stats.error_count} errors. Check log.")

    print(f"  {'─' * 60}")
    print()


def print_verification_report(result: "VerificationResult", limit: int = 50) -> None:
    """Print a verification result, each list sorted by path."""
    result = result.sorted()

    print_header("Verification")
    print()
    print(f"    {Colors.GREEN}Identical:{Colors.RESET}  {result.identical_count:,}")
    print(f"    {Colors.RED}Missing:{Colors.RESET}    {len(result.missing):,}")
    print(f"    {Colors.YELLOW}Modified:{Colors.RESET}   {len(result.modified):,}")
    print(f"    {Colors.BLUE}Extra:{Colors.RESET}      {len(result.extra):,}")

    if result.missing:
        print(f"\n  {Colors.BOLD}Missing locally{Colors.RESET}")
        for entry in result.missing[:limit]:
            print(f"    {entry.path}  ({human_size(entry.size)})")
        if len(result.missing) > limit:
            print(f"    {Colors.DIM}... and {len(result.missing) - limit:,} more{Colors.RESET}")

    if result.modified:
        print(f"\n  {Colors.BOLD}Size differs{Colors.RESET}")
        for diff in result.modified[:limit]:
            print(
                f"    {diff.path}  remote {diff.remote_size:,} B, "
                f"local {diff.local_size:,} B ({diff.difference:+,})"
            )
        if len(result.modified) > limit:
            print(f"    {Colors.DIM}... and {len(result.modified) - limit:,} more{Colors.RESET}")

    if result.extra:
        print(f"\n  {Colors.BOLD}Only on local disk{Colors.RESET}")
        for local in result.extra[:limit]:
            print(f"    {local.path}  ({human_size(local.size)})")
        if len(result.extra) > limit:
            print(f"    {Colors.DIM}... and {len(result.extra) - limit:,} more{Colors.RESET}")

    print()
    if result.is_clean:
        print_success("Local copy matches OneDrive (by size).")
    else:
        print_warning("Local copy differs from OneDrive.")
    print()


class ProgressDisplay:
    """Real-time progress display with fixed slot layout.

    Displays exactly N+2 lines:
    - 1 overall counter line
    - 1 status line (throttle width, rate limiting)
    - N transfer slot bars (matching the maximum throttle width)

    Uses in-place terminal updates for a clean, non-scrolling display.
    """

    REFRESH_INTERVAL = 0.5  # Seconds between updates (reduces CPU load)

    def __init__(
        self,
        stats: "BackupStats",
        rate_limiter: "SlidingWindowRateLimiter",
        throttle: "AdaptiveThrottle",
    ):
        self.stats = stats
        self.rate_limiter = rate_limiter
        self.throttle = throttle
        self.max_slots = throttle.max_width
        self.total_lines = 2 + self.max_slots

        self.lock = Lock()
        self.thread: Thread | None = None
        self.stop_event = Event()
        self._initialized = False

    def start(self) -> None:
        """Start the progress display."""
        self._initialized = False
        self.stop_event.clear()
        self.thread = Thread(target=self._run, daemon=True)
        self.thread.start()

    def stop(self) -> None:
        """Stop the progress display."""
        self.stop_event.set()
        if self.thread:
            self.thread.join(timeout=1)
        self._render()  # Final render

    def _run(self) -> None:
        """Background update loop."""
        while not self.stop_event.is_set():
            self._render()
            # Use Event.wait for interruptible sleep
            self.stop_event.wait(self.REFRESH_INTERVAL)

    def _render(self) -> None:
        """Render the progress display in-place."""
        with self.lock:
            output_lines: list[str] = []

            stats = self.stats
            speed = human_speed(stats.speed_bps)
            output_lines.append(
                f"  {Colors.GREEN}{stats.processed_count:,} processed{Colors.RESET}  "
                f"{Colors.BLUE}{stats.skipped_count:,} skipped{Colors.RESET}  "
                f"{Colors.RED}{stats.error_count:,} errors{Colors.RESET}  "
                f"{human_size(stats.bytes_downloaded)} @ {speed}  "
                f"{human_time(stats.elapsed_seconds)}"
            )

            throttled = f" {Colors.YELLOW}[Rate limited]{Colors.RESET}" if self.rate_limiter.is_throttled else ""
            output_lines.append(
                f"  {Colors.DIM}Active: {stats.active_count}/{self.throttle.width}"
                f"  Folders: {stats.folders_scanned:,}"
                f"  Requests/window: {self.rate_limiter.in_window}{Colors.RESET}{throttled}"
            )

            active = stats.get_active_downloads()
            for i in range(self.max_slots):
                if i < len(active):
                    dl = active[i]
                    dl_percent = dl.progress_percent
                    dl_bar = make_bar(dl_percent, width=20)
                    size_done = human_size(dl.downloaded_bytes, 1)
                    size_total = human_size(dl.total_bytes, 1)
                    name = truncate_path(dl.path, 35)
                    output_lines.append(
                        f"  {Colors.DIM}#{i+1}{Colors.RESET} "
                        f"[{Colors.BLUE}{dl_bar}{Colors.RESET}] {dl_percent:5.1f}% "
                        f"{size_done:>8}/{size_total:<8} {name}"
                    )
                else:
                    output_lines.append(
                        f"  {Colors.DIM}#{i+1} "
                        f"[{'░' * 20}]   --.-% "
                        f"{'':>17} (waiting){Colors.RESET}"
                    )

            # On first render, print blank lines to reserve space
            if not self._initialized:
                sys.stdout.write("\n" * self.total_lines)
                self._initialized = True

            # Move cursor up to overwrite previous output
            sys.stdout.write(f"\033[{self.total_lines}A")

            for line in output_lines:
                sys.stdout.write(f"\r\033[K{line}\n")

            sys.stdout.flush()
