"""Tests for onedrive_backup package."""

import json
import os
import signal
import threading
from datetime import datetime, timedelta, timezone

import pytest
import requests

from onedrive_backup.checkpoint import (
    checkpoint_path_for,
    delete_checkpoint,
    load_checkpoint,
    save_checkpoint,
)
from onedrive_backup.cli import apply_args, build_parser, install_stop_handler
from onedrive_backup.config import Config, _load_env_file
from onedrive_backup.display import (
    Colors,
    ProgressDisplay,
    ask_overwrite,
    print_summary,
    print_verification_report,
)
from onedrive_backup.errors import (
    DriveError,
    DrivePermissionError,
    NotFoundError,
    RangeNotSupportedError,
    SessionExpiredError,
    TransientApiError,
)
from onedrive_backup.filters import ExclusionSet, normalize_path, parse_folder_list
from onedrive_backup.graph import DriveSession, GraphDriveClient
from onedrive_backup.models import (
    ActiveDownload,
    BackupStats,
    Checkpoint,
    DiffEntry,
    LocalFileSummary,
    NodeKind,
    OverwritePolicy,
    RemoteFileSummary,
    VerificationResult,
)
from onedrive_backup.rate_limiter import SlidingWindowRateLimiter
from onedrive_backup.scanner import RemoteTreeEnumerator, parse_entry
from onedrive_backup.throttle import AdaptiveThrottle
from onedrive_backup.utils import (
    compute_backoff,
    human_size,
    human_speed,
    human_time,
    parse_retry_after,
    parse_size,
    parse_timestamp,
    truncate_path,
)


class FakeClock:
    """Simulated monotonic clock whose sleep advances time."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestUtils:
    """Tests for utility functions."""

    def test_human_size(self):
        assert human_size(0) == "0.00 B"
        assert human_size(1023) == "1023.00 B"
        assert human_size(1536) == "1.50 KB"
        assert human_size(1024 ** 3) == "1.00 GB"

    def test_human_time(self):
        assert human_time(59) == "59s"
        assert human_time(90) == "1m 30s"
        assert human_time(3660) == "1h 1m"
        assert human_time(None) == "calculating..."
        assert human_time(-1) == "unknown"

    def test_human_speed(self):
        assert human_speed(100) == "100 B/s"
        assert human_speed(1024) == "1.0 KB/s"
        assert human_speed(1024 * 1024) == "1.00 MB/s"

    def test_truncate_path_long(self):
        result = truncate_path("/very/long/path/that/should/be/truncated/file.txt", 20)
        assert len(result) == 20
        assert result.startswith("...")

    def test_parse_size(self):
        assert parse_size("100") == 100
        assert parse_size("1.5KB") == 1536
        assert parse_size("100MB") == 100 * 1024 * 1024
        assert parse_size("1G") == 1024 ** 3

    def test_backoff_doubles_and_caps(self):
        assert compute_backoff(1.0, jitter=0) == 2.0
        assert compute_backoff(8.0, jitter=0) == 16.0
        assert compute_backoff(50.0, max_delay=60.0, jitter=0) == 60.0

    def test_backoff_retry_after_is_a_floor(self):
        assert compute_backoff(1.0, retry_after=5.0, jitter=0) == 5.0
        # Cap never pushes the delay below what the server asked for
        assert compute_backoff(1.0, retry_after=120.0, max_delay=60.0, jitter=0) == 120.0
        # Escalation wins when it is already larger
        assert compute_backoff(10.0, retry_after=5.0, jitter=0) == 20.0

    def test_backoff_jitter_range(self):
        for _ in range(50):
            delay = compute_backoff(1.0)
            assert 2.0 <= delay <= 3.0

    def test_parse_retry_after_seconds(self):
        assert parse_retry_after("5") == 5.0
        assert parse_retry_after(" 12 ") == 12.0
        assert parse_retry_after(None) is None
        assert parse_retry_after("soon") is None

    def test_parse_retry_after_http_date(self):
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Mon, 01 Jan 2024 12:00:30 GMT", now=now) == 30.0
        assert parse_retry_after("Mon, 01 Jan 2024 11:00:00 GMT", now=now) == 0.0

    def test_parse_timestamp(self):
        parsed = parse_timestamp("2024-03-05T10:20:30Z")
        assert parsed == datetime(2024, 3, 5, 10, 20, 30, tzinfo=timezone.utc)
        assert parse_timestamp("") is None
        assert parse_timestamp("not a date") is None


class TestConfig:
    """Tests for configuration."""

    def test_default_config(self):
        config = Config()
        assert config.throttle_limit == 10
        assert config.batch_size == 15
        assert config.chunk_size_mb == 20
        assert config.chunk_size == 20 * 1024 * 1024
        assert config.max_requests_per_minute == 600
        assert config.large_file_threshold == 100 * 1024 * 1024
        assert config.overwrite_policy is OverwritePolicy.NEVER

    def test_validation_missing_token_and_folder(self):
        errors = Config().validate()
        assert "ONEDRIVE_ACCESS_TOKEN is required" in errors
        assert "Export folder is required" in errors

    def test_validation_placeholder_token(self, tmp_path):
        config = Config(access_token="PASTE_TOKEN_HERE", export_folder=str(tmp_path))
        assert any("placeholder" in e for e in config.validate())

    def test_validation_export_folder_is_file(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")
        config = Config(access_token="token", export_folder=str(target))
        assert any("not a directory" in e for e in config.validate())

    def test_valid_config(self, tmp_path):
        config = Config(access_token="token", export_folder=str(tmp_path))
        assert config.validate() == []

    def test_overwrite_policy_precedence(self):
        assert Config(overwrite=True).overwrite_policy is OverwritePolicy.IF_NEWER
        assert Config(overwrite=True, overwrite_all=True).overwrite_policy is OverwritePolicy.ALWAYS
        assert Config(interactive=True).overwrite_policy is OverwritePolicy.PROMPT

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("ONEDRIVE_ACCESS_TOKEN", "abc")
        monkeypatch.setenv("ONEDRIVE_EXPORT_FOLDER", "/backup")
        monkeypatch.setenv("ONEDRIVE_EXCLUDED_FOLDERS", "Photos, \\Music\\Old\\")
        monkeypatch.setenv("ONEDRIVE_THROTTLE_LIMIT", "4")
        monkeypatch.delenv("ONEDRIVE_LARGE_FILE_THRESHOLD", raising=False)
        monkeypatch.setenv("ONEDRIVE_TOKEN_EXPIRES", "2030-01-01T00:00:00Z")

        config = Config.from_env()

        assert config.access_token == "abc"
        assert config.export_folder == "/backup"
        assert config.excluded_folders == ["Photos", "Music/Old"]
        assert config.throttle_limit == 4
        assert config.large_file_threshold == 100 * 1024 * 1024
        assert config.token_expires_at == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_env_file_does_not_override(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            '# comment\nONEDRIVE_TEST_NEW="from file"\nONEDRIVE_TEST_SET=from file\n',
            encoding="utf-8",
        )
        monkeypatch.delenv("ONEDRIVE_TEST_NEW", raising=False)
        monkeypatch.setenv("ONEDRIVE_TEST_SET", "from env")

        _load_env_file(env_file)

        assert os.environ["ONEDRIVE_TEST_NEW"] == "from file"
        assert os.environ["ONEDRIVE_TEST_SET"] == "from env"
        monkeypatch.delenv("ONEDRIVE_TEST_NEW")


class TestExclusionSet:
    """Tests for prefix-based path exclusion."""

    def test_normalize_path(self):
        assert normalize_path("/Photos/") == "Photos"
        assert normalize_path("\\Music\\Old\\") == "Music/Old"
        assert normalize_path("a//b") == "a/b"
        assert normalize_path("") == ""

    @pytest.mark.parametrize(
        "path",
        [
            "Photos",
            "/Photos",
            "Photos/",
            "\\Photos\\",
            "Photos/2020/a.jpg",
            "\\Photos\\2020\\a.jpg",
            "/Photos/2020/",
        ],
    )
    def test_excluded_under_any_normalization(self, path):
        exclusions = ExclusionSet(["/Photos/"])
        assert exclusions.is_excluded(path) is True

    @pytest.mark.parametrize("path", ["Photos2020", "My Photos", "Docs/Photos", "Photo", ""])
    def test_not_excluded(self, path):
        exclusions = ExclusionSet(["Photos"])
        assert exclusions.is_excluded(path) is False

    def test_nested_prefix(self):
        exclusions = ExclusionSet(["Documents\\Archive"])
        assert exclusions.is_excluded("Documents/Archive/2019/report.pdf")
        assert not exclusions.is_excluded("Documents/report.pdf")
        assert not exclusions.is_excluded("Documents/Archive2")

    def test_mutation(self):
        exclusions = ExclusionSet()
        assert not exclusions.is_excluded("Music/a.mp3")

        exclusions.add("/Music/")
        exclusions.add("Music")
        assert len(exclusions) == 1
        assert exclusions.is_excluded("Music/a.mp3")

        exclusions.remove("Music/")
        assert not exclusions.is_excluded("Music/a.mp3")

        exclusions.add("A")
        exclusions.add("B")
        assert list(exclusions) == ["A", "B"]
        exclusions.clear()
        assert not exclusions

    def test_parse_folder_list(self):
        assert parse_folder_list("") == []
        assert parse_folder_list("Photos, /Music/ ,Photos") == ["Photos", "Music"]


class TestBackupStats:
    """Tests for run statistics."""

    def test_increment(self):
        stats = BackupStats()
        stats.increment("processed_count")
        stats.increment("bytes_downloaded", 1024)
        assert stats.processed_count == 1
        assert stats.bytes_downloaded == 1024

    def test_concurrent_increments(self):
        stats = BackupStats()

        def worker():
            for _ in range(1000):
                stats.increment("error_count")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert stats.error_count == 8000

    def test_total_and_reset(self):
        stats = BackupStats()
        stats.processed_count = 3
        stats.skipped_count = 2
        stats.error_count = 1
        stats.start_download("/a", 10)
        assert stats.total_count == 6

        stats.reset()

        assert stats.total_count == 0
        assert stats.active_count == 0

    def test_active_downloads(self):
        stats = BackupStats()
        slot1 = stats.start_download("a.txt", 1000)
        stats.start_download("b.txt", 2000)
        assert stats.active_count == 2

        stats.update_download(slot1, 500)
        assert stats.get_active_downloads()[0].downloaded_bytes == 500

        stats.finish_download(slot1)
        assert stats.active_count == 1

    def test_progress_percent(self):
        assert ActiveDownload(slot=0, path="a", total_bytes=1000, downloaded_bytes=250).progress_percent == 25.0
        assert ActiveDownload(slot=0, path="a", total_bytes=0).progress_percent == 0.0


class TestRateLimiter:
    """Tests for the sliding-window rate limiter."""

    def test_no_wait_under_limit(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(3, 10.0, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            assert limiter.acquire() == 0.0
        assert clock.sleeps == []
        assert limiter.is_throttled is False

    def test_waits_until_oldest_leaves_window(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(3, 10.0, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            limiter.acquire()
        clock.now = 4.0

        waited = limiter.acquire()

        assert waited == pytest.approx(6.0)
        assert clock.now == pytest.approx(10.0)
        assert limiter.is_throttled is True

    def test_old_entries_expire(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, 1.0, clock=clock, sleep=clock.sleep)
        limiter.acquire()
        limiter.acquire()
        clock.now = 5.0
        assert limiter.acquire() == 0.0
        assert limiter.in_window == 1

    @pytest.mark.parametrize("max_requests,window,step", [(5, 1.0, 0.125), (3, 10.0, 0.0), (10, 2.0, 0.25)])
    def test_no_window_exceeds_limit(self, max_requests, window, step):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests, window, clock=clock, sleep=clock.sleep)

        completed: list[float] = []
        for _ in range(60):
            limiter.acquire()
            completed.append(clock.now)
            clock.now += step

        for t in completed:
            in_window = [c for c in completed if t - window < c <= t]
            assert len(in_window) <= max_requests

    def test_concurrent_reservations_respect_bound(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, 10.0, clock=clock, sleep=lambda s: None)

        # Callers that arrive together each get their own release slot
        waits = [limiter.acquire() for _ in range(6)]

        assert waits == [0.0, 0.0, 10.0, 10.0, 20.0, 20.0]

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(0, 60.0)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(10, 0)


class TestAdaptiveThrottle:
    """Tests for load-driven concurrency width."""

    def test_high_cpu_never_below_one(self):
        throttle = AdaptiveThrottle(max_width=10)
        widths = [throttle.adjust(90.0, 8000.0) for _ in range(6)]
        assert widths == [5, 2, 1, 1, 1, 1]

    def test_low_memory_halves(self):
        throttle = AdaptiveThrottle(max_width=8)
        assert throttle.adjust(10.0, 500.0) == 4

    def test_idle_grows_to_max(self):
        throttle = AdaptiveThrottle(max_width=10)
        for _ in range(4):
            throttle.adjust(95.0, 8000.0)
        assert throttle.width == 1

        widths = [throttle.adjust(10.0, 8000.0) for _ in range(7)]
        assert widths == [3, 5, 7, 9, 10, 10, 10]

    def test_moderate_load_keeps_width(self):
        throttle = AdaptiveThrottle(max_width=6)
        throttle.adjust(90.0, 8000.0)
        assert throttle.adjust(60.0, 2000.0) == 3
        assert throttle.adjust(30.0, 3000.0) == 3

    def test_rebalance_respects_interval(self):
        clock = FakeClock()
        samples = iter([(95.0, 8000.0), (95.0, 8000.0), (95.0, 8000.0)])
        throttle = AdaptiveThrottle(max_width=8, sample_interval=5.0, sampler=lambda: next(samples), clock=clock)

        assert throttle.rebalance() == 4
        clock.now = 1.0
        assert throttle.rebalance() == 4
        clock.now = 6.0
        assert throttle.rebalance() == 2


class TestParseEntry:
    """Tests for raw Graph entry classification."""

    def test_file(self):
        node = parse_entry(
            {
                "id": "F1",
                "name": "report.pdf",
                "size": 1234,
                "file": {"mimeType": "application/pdf"},
                "fileSystemInfo": {"lastModifiedDateTime": "2024-01-02T03:04:05Z"},
            },
            "Documents",
        )
        assert node.kind is NodeKind.FILE
        assert node.is_file
        assert node.relative_path == "Documents/report.pdf"
        assert node.size == 1234
        assert node.last_modified == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_folder_empty_and_not(self):
        empty = parse_entry({"id": "D1", "name": "Empty", "folder": {"childCount": 0}})
        full = parse_entry({"id": "D2", "name": "Full", "folder": {"childCount": 3}}, "/")
        assert empty.kind is NodeKind.FOLDER and empty.is_empty
        assert full.kind is NodeKind.FOLDER and not full.is_empty
        assert full.relative_path == "Full"

    def test_shared_reference(self):
        node = parse_entry(
            {
                "id": "S1",
                "name": "Team",
                "remoteItem": {
                    "id": "R1",
                    "folder": {"childCount": 2},
                    "parentReference": {"driveId": "drive-b"},
                },
            }
        )
        assert node.kind is NodeKind.SHARED
        assert node.is_shared
        assert node.target_is_folder
        assert node.content_id == "R1"
        assert node.drive_id == "drive-b"

    def test_package_ignored(self):
        assert parse_entry({"id": "P1", "name": "Notebook", "package": {"type": "oneNote"}}) is None


class FakePagedClient:
    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def list_children_page(self, folder_id="root", next_link=None, drive_id=None):
        self.calls.append((folder_id, next_link))
        index = 0 if next_link is None else int(next_link)
        next_page = str(index + 1) if index + 1 < len(self.pages) else None
        return self.pages[index], next_page


class TestRemoteTreeEnumerator:
    """Tests for folder listing."""

    def test_follows_pages_and_spends_budget_per_page(self):
        client = FakePagedClient(
            [
                [{"id": "1", "name": "a.txt", "size": 1, "file": {}}],
                [{"id": "2", "name": "Sub", "folder": {"childCount": 1}}],
            ]
        )
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(100, 60.0, clock=clock, sleep=clock.sleep)

        nodes = RemoteTreeEnumerator(client, limiter).list("root", "Docs")

        assert [n.relative_path for n in nodes] == ["Docs/a.txt", "Docs/Sub"]
        assert len(client.calls) == 2
        assert limiter.in_window == 2


class TestCheckpoint:
    """Tests for checkpoint sidecar files."""

    def test_sidecar_name(self, tmp_path):
        assert checkpoint_path_for(tmp_path / "video.mp4").name == "video.mp4.checkpoint"

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "big.bin.checkpoint"
        checkpoint = Checkpoint("ID1", 300, 1000, datetime(2024, 1, 1, tzinfo=timezone.utc))

        save_checkpoint(path, checkpoint)

        assert load_checkpoint(path) == checkpoint
        assert json.loads(path.read_text())["bytes_written"] == 300
        assert not (tmp_path / "big.bin.checkpoint.tmp").exists()

    def test_corrupt_checkpoint_is_discarded(self, tmp_path):
        path = tmp_path / "big.bin.checkpoint"
        path.write_text("{not json")
        assert load_checkpoint(path) is None

    def test_delete_missing_is_noop(self, tmp_path):
        delete_checkpoint(tmp_path / "nothing.checkpoint")


def make_response(status: int, headers: dict | None = None, body: dict | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.headers.update(headers or {})
    response._content = json.dumps(body or {}).encode()
    response._content_consumed = True
    return response


class FakeHttp:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class TestGraphDriveClient:
    """Tests for HTTP status translation."""

    @pytest.mark.parametrize(
        "status,error",
        [
            (401, SessionExpiredError),
            (403, DrivePermissionError),
            (404, NotFoundError),
            (500, TransientApiError),
            (503, TransientApiError),
            (400, DriveError),
        ],
    )
    def test_status_mapping(self, status, error):
        client = GraphDriveClient(DriveSession("token"), http=FakeHttp(make_response(status)))
        with pytest.raises(error):
            client.list_children_page("root")

    def test_429_carries_retry_after(self):
        client = GraphDriveClient(
            DriveSession("token"),
            http=FakeHttp(make_response(429, headers={"Retry-After": "7"})),
        )
        with pytest.raises(TransientApiError) as excinfo:
            client.get_content("ITEM")
        assert excinfo.value.is_rate_limited
        assert excinfo.value.retry_after == 7.0

    def test_network_error_is_transient(self):
        client = GraphDriveClient(DriveSession("token"), http=FakeHttp(requests.ConnectionError("down")))
        with pytest.raises(TransientApiError):
            client.list_children_page("root")

    def test_expired_session_fails_before_request(self):
        http = FakeHttp(make_response(200))
        session = DriveSession("token", datetime.now(timezone.utc) - timedelta(minutes=1))
        client = GraphDriveClient(session, http=http)

        with pytest.raises(SessionExpiredError):
            client.list_children_page("root")
        assert http.requests == []

    def test_list_children_page(self):
        http = FakeHttp(
            make_response(200, body={"value": [{"id": "1"}], "@odata.nextLink": "https://next"})
        )
        client = GraphDriveClient(DriveSession("token"), http=http)

        entries, next_link = client.list_children_page("FOLDER", drive_id="d1")

        assert entries == [{"id": "1"}]
        assert next_link == "https://next"
        url, kwargs = http.requests[0]
        assert url.endswith("/drives/d1/items/FOLDER/children")
        assert kwargs["headers"]["Authorization"] == "Bearer token"

    def test_range_header_is_inclusive(self):
        response = make_response(206)
        response._content = b"x" * 100
        http = FakeHttp(response)
        client = GraphDriveClient(DriveSession("token"), http=http)

        data = client.get_content("ITEM", (100, 200))

        assert len(data) == 100
        assert http.requests[0][1]["headers"]["Range"] == "bytes=100-199"

    def test_ignored_range_is_refused(self):
        response = make_response(200)
        response._content = b"x" * 5000
        http = FakeHttp(response)
        client = GraphDriveClient(DriveSession("token"), http=http)

        with pytest.raises(RangeNotSupportedError):
            client.get_content("ITEM", (1000, 2000))
        assert http.requests[0][1]["stream"] is True

    def test_whole_content_without_range(self):
        response = make_response(200)
        response._content = b"hello"
        client = GraphDriveClient(DriveSession("token"), http=FakeHttp(response))

        assert client.get_content("ITEM") == b"hello"


class TestCli:
    """Tests for argument handling."""

    def test_backup_flags(self):
        args = build_parser().parse_args(
            ["backup", "--overwrite", "--exclude", "Photos", "--exclude", "Music", "--throttle-limit", "4"]
        )
        config = apply_args(Config(excluded_folders=["Old"]), args)

        assert config.overwrite_policy is OverwritePolicy.IF_NEWER
        assert config.excluded_folders == ["Old", "Photos", "Music"]
        assert config.throttle_limit == 4
        assert config.large_file_threshold == 100 * 1024 * 1024
        assert config.batch_size == 15

    def test_sequential_and_shared(self):
        args = build_parser().parse_args(["backup", "--sequential", "--include-shared-items"])
        config = apply_args(Config(), args)
        assert config.parallel is False
        assert config.include_shared_items is True

    def test_overwrite_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["backup", "--overwrite", "--overwrite-all"])

    def test_verify_command(self):
        args = build_parser().parse_args(["verify", "--export-folder", "/backup"])
        config = apply_args(Config(), args)
        assert args.command == "verify"
        assert config.export_folder == "/backup"

    def test_signal_sets_stop_event(self, capsys):
        previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        stop = threading.Event()
        try:
            install_stop_handler(stop)
            signal.getsignal(signal.SIGTERM)(signal.SIGTERM, None)
            signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        assert stop.is_set()
        assert capsys.readouterr().out.count("Gracefully stopping") == 1


class TestDisplay:
    """Smoke tests for terminal output."""

    def setup_method(self):
        Colors.disable()

    def test_progress_display_renders_slots(self, capsys):
        stats = BackupStats()
        stats.processed_count = 3
        stats.skipped_count = 1
        slot = stats.start_download("Docs/report.pdf", 2000)
        stats.update_download(slot, 500)
        throttle = AdaptiveThrottle(max_width=2, sampler=lambda: (50.0, 2000.0))
        display = ProgressDisplay(stats, SlidingWindowRateLimiter(10, 60.0), throttle)

        display._render()

        out = capsys.readouterr().out
        assert "3 processed" in out
        assert "1 skipped" in out
        assert "Active: 1/2" in out
        assert "25.0%" in out
        assert "Docs/report.pdf" in out
        assert "(waiting)" in out

    def test_summary(self, capsys):
        stats = BackupStats()
        stats.processed_count = 2
        stats.error_count = 1

        print_summary(stats, interrupted=True)

        out = capsys.readouterr().out
        assert "BACKUP INTERRUPTED" in out
        assert "Total:        3" in out
        assert "Run again to continue" in out

    def test_verification_report_is_sorted(self, capsys):
        result = VerificationResult(
            missing=[RemoteFileSummary("z.txt", 10), RemoteFileSummary("b.txt", 5)],
            modified=[DiffEntry("m.txt", 100, 90)],
            extra=[LocalFileSummary("x.txt", 1)],
            identical_count=7,
        )

        print_verification_report(result)

        out = capsys.readouterr().out
        assert out.index("b.txt") < out.index("z.txt")
        assert "Identical:  7" in out
        assert "(-10)" in out
        assert "differs from OneDrive" in out

    def test_ask_overwrite(self, monkeypatch):
        answers = iter(["maybe", "A"])
        monkeypatch.setattr("builtins.input", lambda prompt: next(answers))
        assert ask_overwrite("a.txt") == "all"
