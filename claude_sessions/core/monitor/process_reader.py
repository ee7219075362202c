"""
Process table readers for the target CLI executable.

Two interchangeable backends:
  - PsutilProcessReader: psutil, cross-platform, no subprocesses.
  - PsProcessReader: pgrep / ps / lsof command-line tools (macOS, BSD, Linux).

Both fail soft: a process that exits between enumeration and the detail
query is dropped, never reported as an error.
"""

from __future__ import annotations

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import psutil

from .types import ProcessBackend, ProcessDetails, default_process_backend

log = logging.getLogger(__name__)

NO_TERMINAL = "??"
FIRST_CPU_SAMPLE_SECONDS = 0.1

# `ps -o lstart` pads single-digit days with a second space
LSTART_FORMATS = (
    "%a %b %d %H:%M:%S %Y",
    "%a %b  %d %H:%M:%S %Y",
)

_PSUTIL_STATE_CODES = {
    psutil.STATUS_RUNNING: "R",
    psutil.STATUS_SLEEPING: "S",
    psutil.STATUS_DISK_SLEEP: "D",
    psutil.STATUS_STOPPED: "T",
    psutil.STATUS_TRACING_STOP: "T",
    psutil.STATUS_ZOMBIE: "Z",
    psutil.STATUS_DEAD: "X",
    psutil.STATUS_IDLE: "I",
    psutil.STATUS_WAKING: "W",
    psutil.STATUS_LOCKED: "L",
    psutil.STATUS_WAITING: "W",
}


def parse_start_time(text: str) -> Optional[datetime]:
    """Parse a `ps -o lstart` timestamp, None if neither layout matches."""
    text = text.strip()
    for fmt in LSTART_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_cpu_percent(text: str) -> float:
    try:
        return float(text.strip())
    except (TypeError, ValueError):
        return 0.0


def normalize_terminal(tty: Optional[str]) -> str:
    if not tty:
        return NO_TERMINAL
    if tty.startswith("/dev/"):
        return tty[len("/dev/"):]
    return tty


class ProcessReader(ABC):
    """Interface for querying the OS process table for one executable name."""

    def __init__(self, executable_name: str) -> None:
        self._exe_name = executable_name

    @abstractmethod
    def list_pids(self) -> list[int]:
        """Ascending pids of processes named exactly like the target. [] on failure."""
        ...

    @abstractmethod
    def details(self, pid: int) -> Optional[ProcessDetails]:
        """Attributes of one process, None if it vanished or can't be read."""
        ...

    @abstractmethod
    def working_directory(self, pid: int) -> Optional[str]:
        ...

    def snapshot(self) -> list[ProcessDetails]:
        result: list[ProcessDetails] = []
        for pid in self.list_pids():
            info = self.details(pid)
            if info is None:
                continue
            result.append(info)
        return result


class PsutilProcessReader(ProcessReader):
    """
    Process reader backed by psutil.

    Process handles are kept between polls so that cpu_percent() reports
    usage over the interval since the previous poll. A handle seen for the
    first time has no baseline and is sampled over FIRST_CPU_SAMPLE_SECONDS
    instead, blocking the polling thread for that long.
    """

    def __init__(self, executable_name: str) -> None:
        super().__init__(executable_name)
        self._procs: dict[int, psutil.Process] = {}
        self._sampled: set[int] = set()

    def list_pids(self) -> list[int]:
        procs: dict[int, psutil.Process] = {}
        try:
            for p in psutil.process_iter(attrs=["name"]):
                try:
                    if p.info.get("name") != self._exe_name:
                        continue
                    prev = self._procs.get(p.pid)
                    # Process.__eq__ also compares creation time, so a reused pid gets a fresh handle
                    procs[p.pid] = prev if prev is not None and prev == p else p
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    continue
        except psutil.Error as e:
            log.warning(f"Process enumeration failed: {e}")
            self._procs = {}
            self._sampled.clear()
            return []

        self._sampled = {pid for pid in self._sampled if procs.get(pid) is self._procs.get(pid)}
        self._procs = procs
        return sorted(procs)

    def details(self, pid: int) -> Optional[ProcessDetails]:
        proc = self._procs.get(pid)
        try:
            if proc is None:
                proc = psutil.Process(pid)
                self._procs[pid] = proc
                self._sampled.discard(pid)
            with proc.oneshot():
                terminal_fn = getattr(proc, "terminal", None)
                tty = terminal_fn() if terminal_fn is not None else None
                status = proc.status()
                created = proc.create_time()
            # outside oneshot(): cached cpu_times would make the interval sample read 0.0
            if pid in self._sampled:
                cpu = proc.cpu_percent(interval=None)
            else:
                cpu = proc.cpu_percent(interval=FIRST_CPU_SAMPLE_SECONDS)
                self._sampled.add(pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            log.debug(f"Dropping pid {pid}: {e}")
            self._procs.pop(pid, None)
            self._sampled.discard(pid)
            return None

        try:
            start_time: Optional[datetime] = datetime.fromtimestamp(created)
        except (OverflowError, OSError, ValueError):
            start_time = None

        return ProcessDetails(
            pid=pid,
            terminal=normalize_terminal(tty),
            run_state=_PSUTIL_STATE_CODES.get(status, "?"),
            start_time=start_time,
            cpu_percent=float(cpu) if cpu is not None else 0.0,
        )

    def working_directory(self, pid: int) -> Optional[str]:
        proc = self._procs.get(pid)
        try:
            if proc is None:
                proc = psutil.Process(pid)
            return proc.cwd() or None
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            log.debug(f"No working directory for pid {pid}: {e}")
            return None


class PsProcessReader(ProcessReader):
    """
    Process reader backed by pgrep / ps / lsof.

    Commands run with LC_ALL=C so that `lstart` uses English day and month
    abbreviations.
    """

    def __init__(self, executable_name: str, timeout: float = 5.0) -> None:
        super().__init__(executable_name)
        self._timeout = timeout
        self._env = {**os.environ, "LC_ALL": "C"}

    def _run(self, args: list[str]) -> Optional[subprocess.CompletedProcess]:
        try:
            return subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                env=self._env,
            )
        except subprocess.TimeoutExpired:
            log.debug(f"{args[0]} timed out after {self._timeout}s")
            return None
        except (FileNotFoundError, OSError) as e:
            log.debug(f"{args[0]} failed to start: {e}")
            return None

    def list_pids(self) -> list[int]:
        result = self._run(["pgrep", "-x", self._exe_name])
        if result is None:
            log.warning("Process enumeration failed: pgrep unavailable")
            return []
        # pgrep exits 1 when nothing matched
        if result.returncode not in (0, 1):
            log.warning(f"pgrep returned exit code {result.returncode}: {result.stderr.strip()[:200]}")
            return []

        pids: list[int] = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                pids.append(int(line))
            except ValueError:
                log.debug(f"pgrep returned non-numeric pid: {line}")
        return sorted(pids)

    def details(self, pid: int) -> Optional[ProcessDetails]:
        result = self._run(["ps", "-p", str(pid), "-o", "tty=,state=,%cpu=,lstart="])
        if result is None or result.returncode != 0:
            return None

        output = result.stdout.strip()
        if not output:
            return None

        # lstart contains spaces, so it is kept as the unsplit remainder
        parts = output.split(None, 3)
        if len(parts) < 4:
            log.debug(f"Unexpected ps output for pid {pid}: {output!r}")
            return None
        tty, state, cpu, lstart = parts

        return ProcessDetails(
            pid=pid,
            terminal=normalize_terminal(tty),
            run_state=state,
            start_time=parse_start_time(lstart),
            cpu_percent=parse_cpu_percent(cpu),
        )

    def working_directory(self, pid: int) -> Optional[str]:
        result = self._run(["lsof", "-p", str(pid), "-a", "-d", "cwd", "-Fn"])
        if result is None or result.returncode != 0:
            return None
        for line in result.stdout.splitlines():
            if line.startswith("n/"):
                return line[1:]
        return None


def create_process_reader(
    backend: Optional[ProcessBackend], executable_name: str, timeout: float = 5.0
) -> ProcessReader:
    if backend is None:
        backend = default_process_backend()
    if backend == "ps":
        return PsProcessReader(executable_name, timeout=timeout)
    return PsutilProcessReader(executable_name)
