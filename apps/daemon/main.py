import logging
import signal
import sys
import threading

from claude_sessions.core.logging_ import setup_logging
from claude_sessions.core.monitor.classifier import STATUS_LABELS
from claude_sessions.core.monitor.session_registry import SessionRegistry
from claude_sessions.core.monitor.types import SessionSnapshot
from claude_sessions.shared.paths import ensure_app_dirs
from claude_sessions.shared.store import ConfigStore

log = logging.getLogger("claude_sessions.daemon")


def _log_snapshot(snapshot: SessionSnapshot) -> None:
    summary = ", ".join(f"{s.pid} [{STATUS_LABELS[s.status]}] {s.title}" for s in snapshot.sessions)
    log.info(f"{len(snapshot.sessions)} session(s), {snapshot.waiting_count} waiting" + (f": {summary}" if summary else ""))


def main() -> None:
    ensure_app_dirs()
    setup_logging()

    cfg = ConfigStore().load()
    log.info(f"Watching '{cfg.executable_name}' processes via the {cfg.process_backend} backend")

    registry = SessionRegistry(cfg.to_monitor_config())
    registry.on_snapshot(_log_snapshot)
    registry.on_error(lambda msg: log.error(f"Monitor error: {msg}"))

    done = threading.Event()

    def signal_handler(sig, frame):
        log.info(f"Received signal {sig}, shutting down...")
        done.set()

    signal.signal(signal.SIGINT, signal_handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, signal_handler)

    if hasattr(signal, "SIGUSR1"):
        # kill -USR1 <pid> forces an immediate poll
        signal.signal(signal.SIGUSR1, lambda sig, frame: registry.refresh())

    registry.start()
    while not done.wait(1.0):
        pass
    registry.stop()
    registry.join(timeout=5.0)
    sys.exit(0)


if __name__ == "__main__":
    main()
