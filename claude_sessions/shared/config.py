from __future__ import annotations

import sys
from typing import List, Literal
from pydantic import BaseModel, Field

from claude_sessions.shared.paths import claude_projects_dir

ProcessBackendName = Literal["psutil", "ps"]


def default_process_backend() -> ProcessBackendName:
    # psutil reports every live macOS process as SRUN; ps derives the state from thread states
    if sys.platform == "darwin":
        return "ps"
    return "psutil"


class AppConfig(BaseModel):
    executable_name: str = "claude"
    projects_dir: str = Field(default_factory=lambda: str(claude_projects_dir()))
    log_extension: str = ".jsonl"
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    excluded_dir_names: List[str] = Field(default_factory=list)
    process_backend: ProcessBackendName = Field(default_factory=default_process_backend)
    terminal_app: str = "Terminal"
    command_timeout_seconds: float = Field(default=5.0, gt=0)

    def to_monitor_config(self) -> dict:
        return {
            "executable_name": self.executable_name,
            "projects_dir": self.projects_dir,
            "log_extension": self.log_extension,
            "poll_interval_seconds": self.poll_interval_seconds,
            "excluded_dir_names": list(self.excluded_dir_names),
            "process_backend": self.process_backend,
            "command_timeout_seconds": self.command_timeout_seconds,
        }
