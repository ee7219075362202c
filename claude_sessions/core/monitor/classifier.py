from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

from .types import SessionStatus

log = logging.getLogger(__name__)

RUNNABLE_STATE = "R"
CPU_WORKING_THRESHOLD = 2.0  # percent
RECENT_ACTIVITY_SECONDS = 120.0

STATUS_LABELS: dict[SessionStatus, str] = {
    "working": "Working...",
    "waiting": "Needs input",
    "idle": "Idle",
}


def classify(run_state: str, cpu_percent: float, recently_modified: bool) -> SessionStatus:
    """
    working: runnable or burning CPU.
    waiting: quiet, but the session log was just written (turn finished, awaiting input).
    idle:    neither.
    """
    if RUNNABLE_STATE in run_state or cpu_percent > CPU_WORKING_THRESHOLD:
        return "working"
    if recently_modified:
        return "waiting"
    return "idle"


def is_recently_modified(path: Optional[Path], now: Optional[float] = None) -> bool:
    if path is None:
        return False
    try:
        mtime = Path(path).stat().st_mtime
    except OSError as e:
        log.debug(f"Cannot stat {path}: {e}")
        return False
    if now is None:
        now = time.time()
    return now - mtime < RECENT_ACTIVITY_SECONDS
