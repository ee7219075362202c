from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "ClaudeSessionMonitor"


def app_data_dir() -> Path:
    base = os.environ.get("APPDATA") or os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / APP_NAME


def config_path() -> Path:
    return app_data_dir() / "config.json"


def log_path() -> Path:
    return app_data_dir() / "logs" / "monitor.log"


def claude_projects_dir() -> Path:
    # CLAUDE_CONFIG_DIR relocates the CLI's whole ~/.claude tree
    base = os.environ.get("CLAUDE_CONFIG_DIR") or str(Path.home() / ".claude")
    return Path(base).expanduser() / "projects"


def ensure_app_dirs() -> None:
    log_path().parent.mkdir(parents=True, exist_ok=True)
