from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from claude_sessions.shared.config import AppConfig
from claude_sessions.shared.paths import config_path, ensure_app_dirs

log = logging.getLogger(__name__)


class ConfigStore:
    """JSON-backed AppConfig. A missing or invalid file is rewritten with defaults."""

    def __init__(self, path: Optional[Path] = None) -> None:
        if path is None:
            ensure_app_dirs()
            path = config_path()
        self._path = Path(path)

    def load(self) -> AppConfig:
        try:
            return AppConfig.model_validate(json.loads(self._path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            log.info(f"No config at {self._path}, writing defaults")
        except (OSError, ValueError, ValidationError) as e:
            log.warning(f"Invalid config at {self._path}, restoring defaults: {e}")
        cfg = AppConfig()
        self.save(cfg)
        return cfg

    def save(self, cfg: AppConfig) -> None:
        self._path.write_text(cfg.model_dump_json(indent=2), encoding="utf-8")
