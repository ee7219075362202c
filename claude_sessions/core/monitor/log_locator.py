from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

log = logging.getLogger(__name__)

MATCH_TOLERANCE_SECONDS = 300.0


def file_creation_time(path: Path) -> Optional[float]:
    """Birth time where the platform records it, inode change time otherwise."""
    try:
        st = path.stat()
    except OSError:
        return None
    birth = getattr(st, "st_birthtime", None)
    if birth:
        return float(birth)
    return float(st.st_ctime)


class LogLocator:
    """
    Finds the session log most likely written by a process, by creation time.

    Scans every immediate subdirectory of the projects dir and picks the log
    file created closest to the process start, strictly within
    MATCH_TOLERANCE_SECONDS. Best effort: two processes started within the
    tolerance of the same file can both be matched to it.
    """

    def __init__(
        self,
        projects_dir: Path,
        extension: str = ".jsonl",
        creation_time: Callable[[Path], Optional[float]] = file_creation_time,
    ) -> None:
        self._root = Path(projects_dir)
        self._extension = extension
        self._creation_time = creation_time

    def iter_log_files(self) -> Iterator[Path]:
        try:
            project_dirs = sorted(e.path for e in os.scandir(self._root) if e.is_dir())
        except OSError as e:
            log.debug(f"Cannot list {self._root}: {e}")
            return

        for d in project_dirs:
            try:
                files = sorted(
                    e.path for e in os.scandir(d)
                    if e.is_file() and e.name.endswith(self._extension)
                )
            except OSError as e:
                log.debug(f"Cannot list {d}: {e}")
                continue
            for f in files:
                yield Path(f)

    def locate(self, start_time: Optional[datetime]) -> Optional[Path]:
        if start_time is None:
            return None
        try:
            started = start_time.timestamp()
        except (OverflowError, OSError, ValueError):
            return None

        best: Optional[Path] = None
        best_diff = MATCH_TOLERANCE_SECONDS
        for path in self.iter_log_files():
            created = self._creation_time(path)
            if created is None:
                continue
            diff = abs(created - started)
            if diff < best_diff:
                best = path
                best_diff = diff

        if best is not None:
            log.debug(f"Matched log {best.name} ({best_diff:.1f}s from process start)")
        return best
