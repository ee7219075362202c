import subprocess
from datetime import datetime
from unittest.mock import MagicMock, patch

import psutil
import pytest

from claude_sessions.core.monitor.process_reader import (
    FIRST_CPU_SAMPLE_SECONDS,
    PsProcessReader,
    PsutilProcessReader,
    create_process_reader,
    normalize_terminal,
    parse_cpu_percent,
    parse_start_time,
)
from claude_sessions.core.monitor.types import ProcessDetails


def _completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestParsing:
    def test_single_digit_day_padded(self):
        assert parse_start_time("Mon Oct  5 09:03:07 2026") == datetime(2026, 10, 5, 9, 3, 7)

    def test_double_digit_day(self):
        assert parse_start_time("Mon Oct 19 14:22:01 2026") == datetime(2026, 10, 19, 14, 22, 1)

    def test_single_digit_day_single_space(self):
        assert parse_start_time("Mon Oct 5 09:03:07 2026") == datetime(2026, 10, 5, 9, 3, 7)

    def test_garbage_start_time_is_none(self):
        assert parse_start_time("yesterday-ish") is None

    def test_cpu_defaults_to_zero(self):
        assert parse_cpu_percent("12.5") == 12.5
        assert parse_cpu_percent("n/a") == 0.0

    def test_terminal_normalization(self):
        assert normalize_terminal("/dev/ttys003") == "ttys003"
        assert normalize_terminal("pts/4") == "pts/4"
        assert normalize_terminal(None) == "??"


class TestPsProcessReader:
    def test_list_pids(self):
        reader = PsProcessReader("claude")
        with patch("subprocess.run", return_value=_completed("812\n77\n\n")) as run:
            assert reader.list_pids() == [77, 812]
        assert run.call_args.args[0] == ["pgrep", "-x", "claude"]

    def test_no_matches(self):
        with patch("subprocess.run", return_value=_completed("", returncode=1)):
            assert PsProcessReader("claude").list_pids() == []

    def test_pgrep_missing_yields_empty(self):
        with patch("subprocess.run", side_effect=FileNotFoundError("pgrep")):
            assert PsProcessReader("claude").list_pids() == []

    def test_details(self):
        out = "ttys003  S+    15.2 Mon Oct  5 09:03:07 2026\n"
        with patch("subprocess.run", return_value=_completed(out)):
            info = PsProcessReader("claude").details(812)
        assert info == ProcessDetails(
            pid=812,
            terminal="ttys003",
            run_state="S+",
            start_time=datetime(2026, 10, 5, 9, 3, 7),
            cpu_percent=15.2,
        )

    def test_unparsable_fields_degrade(self):
        out = "ttys003 R ?? not a real date here\n"
        with patch("subprocess.run", return_value=_completed(out)):
            info = PsProcessReader("claude").details(812)
        assert info.start_time is None
        assert info.cpu_percent == 0.0
        assert info.run_state == "R"

    def test_vanished_process_is_dropped(self):
        with patch("subprocess.run", return_value=_completed("", returncode=1)):
            assert PsProcessReader("claude").details(812) is None

    def test_timeout_is_dropped(self):
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(["ps"], 5)):
            assert PsProcessReader("claude").details(812) is None

    def test_working_directory_from_lsof(self):
        out = "p812\nfcwd\nn/Users/dev/myproj\n"
        with patch("subprocess.run", return_value=_completed(out)):
            assert PsProcessReader("claude").working_directory(812) == "/Users/dev/myproj"

    def test_snapshot_skips_vanished(self):
        def fake_run(args, **kwargs):
            if args[0] == "pgrep":
                return _completed("1\n2\n")
            if args[2] == "1":
                return _completed("", returncode=1)
            return _completed("ttys001 S 0.0 Mon Oct 19 14:22:01 2026")

        with patch("subprocess.run", side_effect=fake_run):
            snap = PsProcessReader("claude").snapshot()
        assert [p.pid for p in snap] == [2]


def _fake_proc(pid, name="claude", status=psutil.STATUS_SLEEPING, cpu=0.5, tty="/dev/ttys009", created=1_790_000_000.0):
    proc = MagicMock(spec=psutil.Process)
    proc.pid = pid
    proc.info = {"name": name}
    proc.status.return_value = status
    proc.cpu_percent.return_value = cpu
    proc.terminal.return_value = tty
    proc.create_time.return_value = created
    proc.cwd.return_value = "/home/dev/myproj"
    return proc


class TestPsutilProcessReader:
    def test_filters_by_exact_name(self):
        procs = [_fake_proc(30), _fake_proc(10, name="claude-helper"), _fake_proc(20)]
        with patch("psutil.process_iter", return_value=procs):
            assert PsutilProcessReader("claude").list_pids() == [20, 30]

    def test_details_maps_status_and_terminal(self):
        proc = _fake_proc(42, status=psutil.STATUS_RUNNING, cpu=33.0)
        reader = PsutilProcessReader("claude")
        with patch("psutil.process_iter", return_value=[proc]):
            reader.list_pids()
        info = reader.details(42)
        assert info.run_state == "R"
        assert info.terminal == "ttys009"
        assert info.cpu_percent == 33.0
        assert info.start_time == datetime.fromtimestamp(1_790_000_000.0)

    def test_vanished_process_is_dropped(self):
        proc = _fake_proc(42)
        proc.status.side_effect = psutil.NoSuchProcess(42)
        reader = PsutilProcessReader("claude")
        with patch("psutil.process_iter", return_value=[proc]):
            reader.list_pids()
        assert reader.details(42) is None

    def test_enumeration_failure_yields_empty(self):
        with patch("psutil.process_iter", side_effect=psutil.Error("boom")):
            assert PsutilProcessReader("claude").list_pids() == []

    def test_first_sighting_samples_cpu_over_an_interval(self):
        proc = _fake_proc(42)
        # A busy process: only an interval sample sees its load, a baseline-less call reads 0.0
        proc.cpu_percent.side_effect = lambda interval=None: 95.0 if interval else 0.0
        reader = PsutilProcessReader("claude")
        with patch("psutil.process_iter", return_value=[proc]):
            reader.list_pids()
        assert reader.details(42).cpu_percent == 95.0
        proc.cpu_percent.assert_called_once_with(interval=FIRST_CPU_SAMPLE_SECONDS)

    def test_known_handle_reads_cpu_since_last_poll(self):
        proc = _fake_proc(42, cpu=7.5)
        reader = PsutilProcessReader("claude")
        with patch("psutil.process_iter", return_value=[proc]):
            reader.list_pids()
            reader.details(42)
            reader.list_pids()
        reader.details(42)
        assert proc.cpu_percent.call_args_list[-1].kwargs == {"interval": None}

    def test_replaced_handle_is_sampled_again(self):
        old, new = _fake_proc(42), _fake_proc(42, created=1_790_000_500.0)
        reader = PsutilProcessReader("claude")
        with patch("psutil.process_iter", return_value=[old]):
            reader.list_pids()
        reader.details(42)
        with patch("psutil.process_iter", return_value=[new]):
            reader.list_pids()
        reader.details(42)
        new.cpu_percent.assert_called_once_with(interval=FIRST_CPU_SAMPLE_SECONDS)

    def test_working_directory(self):
        proc = _fake_proc(42)
        reader = PsutilProcessReader("claude")
        with patch("psutil.process_iter", return_value=[proc]):
            reader.list_pids()
        assert reader.working_directory(42) == "/home/dev/myproj"


@pytest.mark.parametrize("backend,cls", [("ps", PsProcessReader), ("psutil", PsutilProcessReader)])
def test_create_process_reader(backend, cls):
    assert isinstance(create_process_reader(backend, "claude"), cls)


@pytest.mark.parametrize("platform,cls", [("darwin", PsProcessReader), ("linux", PsutilProcessReader)])
def test_create_process_reader_platform_default(platform, cls):
    with patch("sys.platform", platform):
        assert isinstance(create_process_reader(None, "claude"), cls)
