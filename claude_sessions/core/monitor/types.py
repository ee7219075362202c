from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

from claude_sessions.shared.config import ProcessBackendName as ProcessBackend, default_process_backend

SessionStatus = Literal["working", "waiting", "idle"]
RegistryStatus = Literal["STOPPED", "RUNNING"]


@dataclass(frozen=True)
class MonitorConfig:
    executable_name: str
    projects_dir: Path
    log_extension: str
    poll_interval_seconds: float
    excluded_dir_names: tuple[str, ...] = ()
    process_backend: ProcessBackend = field(default_factory=default_process_backend)
    command_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class ProcessDetails:
    """One row of the process table for a target process."""
    pid: int
    terminal: str  # e.g. "ttys003", "??" when detached
    run_state: str  # ps-style state code, e.g. "S+", "R"
    start_time: Optional[datetime]
    cpu_percent: float


@dataclass(frozen=True)
class Session:
    id: str
    pid: int
    terminal: str
    title: str
    status: SessionStatus
    start_time: Optional[datetime] = None


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable result of one poll cycle."""
    sessions: tuple[Session, ...] = ()
    waiting_count: int = 0
    taken_at_ms: int = 0


@dataclass
class RegistryState:
    status: RegistryStatus = "STOPPED"
    cycles: int = 0
    last_cycle_ms: Optional[int] = None
    last_error: Optional[str] = None
    cached_pids: tuple[int, ...] = field(default_factory=tuple)
