"""
Terminal automation used by session commands.

On macOS the Terminal app is driven through AppleScript (`osascript`).
Elsewhere a no-op implementation only logs the request.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from typing import Protocol

log = logging.getLogger(__name__)


class TerminalAutomation(Protocol):
    def open_new_session(self, command: str) -> None:
        ...

    def focus_tty(self, device_path: str) -> None:
        ...


def applescript_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class AppleScriptTerminalAutomation:
    def __init__(self, app_name: str = "Terminal", timeout: float = 5.0) -> None:
        self._app = app_name
        self._timeout = timeout

    def open_new_session(self, command: str) -> None:
        script = f"""
        tell application {applescript_quote(self._app)}
            do script {applescript_quote(command)}
            activate
        end tell
        """
        self._run(script)

    def focus_tty(self, device_path: str) -> None:
        # Silently does nothing when no tab owns the tty
        script = f"""
        tell application {applescript_quote(self._app)}
            set targetTTY to {applescript_quote(device_path)}
            repeat with w in windows
                repeat with t in tabs of w
                    if tty of t is targetTTY then
                        set index of w to 1
                        set selected tab of w to t
                        activate
                        return
                    end if
                end repeat
            end repeat
        end tell
        """
        self._run(script)

    def _run(self, script: str) -> None:
        result = subprocess.run(
            ["osascript", "-"],
            input=script,
            capture_output=True,
            text=True,
            timeout=self._timeout,
        )
        if result.returncode != 0:
            log.warning(f"osascript returned exit code {result.returncode}: {result.stderr.strip()[:200]}")


class NoopTerminalAutomation:
    def open_new_session(self, command: str) -> None:
        log.info(f"Terminal automation unavailable on {sys.platform}; not opening {command!r}")

    def focus_tty(self, device_path: str) -> None:
        log.info(f"Terminal automation unavailable on {sys.platform}; not focusing {device_path}")


def create_terminal_automation(app_name: str = "Terminal", timeout: float = 5.0) -> TerminalAutomation:
    if sys.platform == "darwin":
        return AppleScriptTerminalAutomation(app_name, timeout=timeout)
    return NoopTerminalAutomation()
