from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

log = logging.getLogger(__name__)

TITLE_READ_BYTES = 16 * 1024
MAX_TITLE_CHARS = 50
ELLIPSIS = "..."


def clean_title(text: str) -> str:
    cleaned = text.replace("\n", " ").strip()
    if len(cleaned) <= MAX_TITLE_CHARS:
        return cleaned
    return cleaned[:MAX_TITLE_CHARS - len(ELLIPSIS)] + ELLIPSIS


def _is_user_record(record: dict) -> bool:
    if record.get("type") == "user":
        return True
    message = record.get("message")
    return isinstance(message, dict) and message.get("role") == "user"


def _message_text(record: dict) -> Optional[str]:
    message = record.get("message")
    if not isinstance(message, dict):
        return None

    content: Any = message.get("content")
    if isinstance(content, str) and content:
        return content
    if isinstance(content, list):
        for item in content:
            if not isinstance(item, dict) or item.get("type") != "text":
                continue
            text = item.get("text")
            if isinstance(text, str) and text:
                return text
    return None


def extract_title(path: Path) -> str:
    """
    Title for a session log: its first user-authored message, cleaned and
    truncated. Falls back to the file name without extension.

    Only the first TITLE_READ_BYTES are read. Lines that don't decode as
    UTF-8 JSON objects are skipped, which covers the record cut off at the
    end of the prefix.
    """
    path = Path(path)
    fallback = path.stem
    try:
        with open(path, "rb") as f:
            data = f.read(TITLE_READ_BYTES)
    except OSError as e:
        log.debug(f"Cannot read {path}: {e}")
        return fallback

    for raw in data.split(b"\n"):
        if not raw.strip():
            continue
        try:
            record = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            continue
        if not isinstance(record, dict) or not _is_user_record(record):
            continue

        text = _message_text(record)
        if text is None:
            continue
        title = clean_title(text)
        if title:
            return title

    return fallback
