"""Shared fixtures: an in-memory process reader and a session log writer."""

import json
from pathlib import Path
from typing import Optional

import pytest

from claude_sessions.core.monitor.process_reader import ProcessReader
from claude_sessions.core.monitor.types import ProcessDetails


class FakeProcessReader(ProcessReader):
    def __init__(self, procs=None, cwds=None):
        super().__init__("claude")
        self.procs: dict[int, ProcessDetails] = {p.pid: p for p in (procs or [])}
        self.cwds: dict[int, str] = dict(cwds or {})
        self.vanished: set[int] = set()
        self.cwd_calls = 0

    def set_processes(self, procs):
        self.procs = {p.pid: p for p in procs}

    def list_pids(self):
        return sorted(self.procs)

    def details(self, pid) -> Optional[ProcessDetails]:
        if pid in self.vanished:
            return None
        return self.procs.get(pid)

    def working_directory(self, pid):
        self.cwd_calls += 1
        return self.cwds.get(pid)


def write_log(path: Path, records) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json.dumps(r) + "\n" for r in records), encoding="utf-8")
    return path


def user_record(text):
    return {"type": "user", "message": {"role": "user", "content": text}}


@pytest.fixture
def fake_reader():
    return FakeProcessReader()


@pytest.fixture
def projects_dir(tmp_path):
    root = tmp_path / "projects"
    root.mkdir()
    return root
