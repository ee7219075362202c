"""
Session registry: polls the process table, correlates each CLI process with
its session log, classifies activity and publishes an immutable snapshot.

Poll cycle: enumerate -> correlate + classify -> prune caches -> sort -> publish
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from .classifier import classify, is_recently_modified
from .correlator import CorrelationCache, SessionCorrelator
from .log_locator import LogLocator
from .process_reader import ProcessReader, create_process_reader
from .types import MonitorConfig, ProcessDetails, RegistryState, Session, SessionSnapshot, default_process_backend

log = logging.getLogger(__name__)


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def sort_sessions(sessions: list[Session]) -> list[Session]:
    """Most recently started first, sessions without a start time last."""
    return sorted(
        sessions,
        key=lambda s: (s.start_time is not None, s.start_time.timestamp() if s.start_time else 0.0),
        reverse=True,
    )


class SessionRegistry:
    """
    Owns the correlation cache and the last published snapshot.

    All cache mutation happens inside poll_once(), which is serialised by a
    cycle lock. Consumers only ever see whole SessionSnapshot objects.
    """

    def __init__(
        self,
        config: dict,
        reader: Optional[ProcessReader] = None,
        locator: Optional[LogLocator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cfg = self._parse_config(config)
        self._clock = clock
        self._reader = reader or self._build_reader(self._cfg)
        self._locator = locator or self._build_locator(self._cfg)
        self._correlator = SessionCorrelator(self._locator, self._reader, self._cfg.excluded_dir_names)
        self._cache = CorrelationCache()

        self._lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._state = RegistryState()
        self._snapshot = SessionSnapshot()

        self._snapshot_cb: Optional[Callable[[SessionSnapshot], None]] = None
        self._error_cb: Optional[Callable[[str], None]] = None

        self._thread: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()
        self._wake_evt = threading.Event()

    @staticmethod
    def _parse_config(config: dict) -> MonitorConfig:
        return MonitorConfig(
            executable_name=config.get("executable_name", "claude"),
            projects_dir=Path(config.get("projects_dir") or Path.home() / ".claude" / "projects").expanduser(),
            log_extension=config.get("log_extension", ".jsonl"),
            poll_interval_seconds=float(config.get("poll_interval_seconds", 5.0)),
            excluded_dir_names=tuple(config.get("excluded_dir_names", ())),
            process_backend=config.get("process_backend") or default_process_backend(),
            command_timeout_seconds=float(config.get("command_timeout_seconds", 5.0)),
        )

    @staticmethod
    def _build_reader(cfg: MonitorConfig) -> ProcessReader:
        return create_process_reader(cfg.process_backend, cfg.executable_name, timeout=cfg.command_timeout_seconds)

    @staticmethod
    def _build_locator(cfg: MonitorConfig) -> LogLocator:
        return LogLocator(cfg.projects_dir, extension=cfg.log_extension)

    def on_snapshot(self, cb: Callable[[SessionSnapshot], None]) -> None:
        self._snapshot_cb = cb

    def on_error(self, cb: Callable[[str], None]) -> None:
        self._error_cb = cb

    def update_config(self, config: dict) -> None:
        cfg = self._parse_config(config)
        with self._cycle_lock:
            self._cfg = cfg
            self._reader = self._build_reader(cfg)
            self._locator = self._build_locator(cfg)
            self._correlator = SessionCorrelator(self._locator, self._reader, cfg.excluded_dir_names)
            self._cache.clear()
        # A sleeping worker picks up the new poll interval immediately
        self._wake_evt.set()

    def get_snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def sessions(self) -> tuple[Session, ...]:
        return self.get_snapshot().sessions

    @property
    def waiting_count(self) -> int:
        return self.get_snapshot().waiting_count

    def get_state(self) -> RegistryState:
        with self._lock:
            return RegistryState(
                status=self._state.status,
                cycles=self._state.cycles,
                last_cycle_ms=self._state.last_cycle_ms,
                last_error=self._state.last_error,
                cached_pids=self._state.cached_pids,
            )

    def start(self) -> None:
        with self._lock:
            if self._state.status == "RUNNING":
                return
            self._state.status = "RUNNING"
            self._state.last_error = None

        # Each run owns its events so a worker still winding down stays stopped
        self._stop_evt = threading.Event()
        self._wake_evt = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop_evt, self._wake_evt), name="SessionRegistry", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_evt.set()
        self._wake_evt.set()
        with self._lock:
            self._state.status = "STOPPED"

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def refresh(self) -> None:
        """Run a poll cycle now, off the caller's thread."""
        with self._lock:
            running = self._state.status == "RUNNING"
        if running:
            self._wake_evt.set()
            return
        threading.Thread(target=self._safe_poll, name="SessionRegistry-refresh", daemon=True).start()

    def poll_once(self) -> SessionSnapshot:
        with self._cycle_lock:
            now = self._clock()
            pids = self._reader.list_pids()

            sessions: list[Session] = []
            for pid in pids:
                proc = self._reader.details(pid)
                if proc is None:
                    continue
                sessions.append(self._build_session(proc, now))

            evicted = self._cache.prune(pids)
            if evicted:
                log.debug(f"Evicted {evicted} cache entr{'y' if evicted == 1 else 'ies'} for exited processes")

            ordered = tuple(sort_sessions(sessions))
            snapshot = SessionSnapshot(
                sessions=ordered,
                waiting_count=sum(1 for s in ordered if s.status == "waiting"),
                taken_at_ms=_now_ms(self._clock),
            )
            cached = tuple(sorted(self._cache.titles))

        self._publish(snapshot, cached)
        return snapshot

    def _build_session(self, proc: ProcessDetails, now: float) -> Session:
        title = self._correlator.resolve_title(proc, self._cache)
        recent = is_recently_modified(self._cache.artifact_for(proc.pid), now)
        return Session(
            id=str(proc.pid),
            pid=proc.pid,
            terminal=proc.terminal,
            title=title,
            status=classify(proc.run_state, proc.cpu_percent, recent),
            start_time=proc.start_time,
        )

    def _publish(self, snapshot: SessionSnapshot, cached_pids: tuple[int, ...]) -> None:
        with self._lock:
            self._snapshot = snapshot
            self._state.cycles += 1
            self._state.last_cycle_ms = snapshot.taken_at_ms
            self._state.cached_pids = cached_pids
        log.debug(f"Published {len(snapshot.sessions)} session(s), {snapshot.waiting_count} waiting")
        if self._snapshot_cb:
            self._snapshot_cb(snapshot)

    def _emit_error(self, msg: str) -> None:
        with self._lock:
            self._state.last_error = msg
        if self._error_cb:
            self._error_cb(msg)

    def _safe_poll(self) -> None:
        try:
            self.poll_once()
        except Exception as e:
            log.exception("Poll cycle error")
            self._emit_error(str(e))

    def _run(self, stop_evt: threading.Event, wake_evt: threading.Event) -> None:
        while not stop_evt.is_set():
            self._safe_poll()
            wake_evt.wait(self._cfg.poll_interval_seconds)
            wake_evt.clear()
