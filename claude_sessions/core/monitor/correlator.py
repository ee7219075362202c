from __future__ import annotations

import getpass
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .log_locator import LogLocator
from .process_reader import ProcessReader
from .title_extractor import extract_title
from .types import ProcessDetails

log = logging.getLogger(__name__)

FALLBACK_TITLE_PREFIX = "Claude Code"


@dataclass
class CorrelationCache:
    """Per-pid title and matched log path. Owned by a single registry."""
    titles: dict[int, str] = field(default_factory=dict)
    artifacts: dict[int, Path] = field(default_factory=dict)

    def artifact_for(self, pid: int) -> Optional[Path]:
        return self.artifacts.get(pid)

    def prune(self, live_pids: Iterable[int]) -> int:
        # pids get reused, so entries for dead processes must not survive a cycle
        live = set(live_pids)
        dead = (set(self.titles) | set(self.artifacts)) - live
        for pid in dead:
            self.titles.pop(pid, None)
            self.artifacts.pop(pid, None)
        return len(dead)

    def clear(self) -> None:
        self.titles.clear()
        self.artifacts.clear()


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


class SessionCorrelator:
    def __init__(
        self,
        locator: LogLocator,
        reader: ProcessReader,
        excluded_dir_names: Iterable[str] = (),
        user_name: Optional[str] = None,
        title_extractor: Callable[[Path], str] = extract_title,
    ) -> None:
        self._locator = locator
        self._reader = reader
        self._user = user_name if user_name is not None else _current_user()
        self._excluded = {n for n in excluded_dir_names if n}
        if self._user:
            self._excluded.add(self._user)
        self._extract_title = title_extractor

    def resolve_title(self, proc: ProcessDetails, cache: CorrelationCache) -> str:
        cached = cache.titles.get(proc.pid)
        if cached is not None:
            return cached

        path = self._locator.locate(proc.start_time)
        if path is not None:
            title = self._extract_title(path)
            cache.artifacts[proc.pid] = path
        else:
            title = self.fallback_title(proc.pid, proc.terminal)

        cache.titles[proc.pid] = title
        log.info(f"pid {proc.pid} -> {title!r}" + (f" ({path.name})" if path is not None else ""))
        return title

    def fallback_title(self, pid: int, terminal: str) -> str:
        cwd = self._reader.working_directory(pid)
        if cwd:
            leaf = Path(cwd).name
            if leaf and leaf not in self._excluded:
                return f"{FALLBACK_TITLE_PREFIX} - {leaf}"
        return f"{FALLBACK_TITLE_PREFIX} ({terminal})"
