from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from claude_sessions.core.monitor.process_reader import NO_TERMINAL
from claude_sessions.core.monitor.types import Session
from claude_sessions.shared.config import AppConfig

from .automation import TerminalAutomation, create_terminal_automation

log = logging.getLogger(__name__)


def tty_device_path(terminal: str) -> str:
    if terminal.startswith("/dev/"):
        return terminal
    return f"/dev/{terminal}"


class SessionCommands:
    """
    Fire-and-forget actions on sessions.

    Each request runs on its own daemon thread; failures are logged and
    never raised or retried. The thread is returned so callers may join it.
    """

    def __init__(self, automation: TerminalAutomation, executable_name: str = "claude") -> None:
        self._automation = automation
        self._exe_name = executable_name

    def open_new_session(self) -> threading.Thread:
        return self._dispatch("open", self._automation.open_new_session, self._exe_name)

    def focus_session(self, session: Session) -> Optional[threading.Thread]:
        if not session.terminal or session.terminal == NO_TERMINAL:
            log.info(f"Session {session.id} has no terminal to focus")
            return None
        return self._dispatch("focus", self._automation.focus_tty, tty_device_path(session.terminal))

    def _dispatch(self, name: str, fn: Callable[..., Any], *args: Any) -> threading.Thread:
        t = threading.Thread(target=self._invoke, args=(name, fn, args), name=f"SessionCommand-{name}", daemon=True)
        t.start()
        return t

    @staticmethod
    def _invoke(name: str, fn: Callable[..., Any], args: tuple) -> None:
        try:
            fn(*args)
        except Exception:
            log.exception(f"Session command '{name}' failed")


def create_session_commands(cfg: AppConfig) -> SessionCommands:
    automation = create_terminal_automation(cfg.terminal_app, timeout=cfg.command_timeout_seconds)
    return SessionCommands(automation, cfg.executable_name)
