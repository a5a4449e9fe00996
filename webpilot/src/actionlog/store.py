"""Append-only JSON-lines record of executed actions."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from webpilot.src.utils.config import CONFIG

REDACTED = "REDACTED"
CREDENTIAL_HINTS = ("password", "passwd", "passcode", "pwd")


class ActionLogRecord(BaseModel):
    action: str
    selector: Optional[str] = None
    xpath: Optional[str] = None
    value: Optional[Any] = None
    url: Optional[str] = None
    status: str = "success"
    error: Optional[str] = None
    strategy: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def looks_like_credential(*locators: Optional[str]) -> bool:
    for locator in locators:
        lowered = (locator or "").lower()
        if any(hint in lowered for hint in CREDENTIAL_HINTS):
            return True
    return False


def redact(record: ActionLogRecord) -> ActionLogRecord:
    if record.action == "type" and looks_like_credential(record.selector, record.xpath):
        return record.model_copy(update={"value": REDACTED})
    return record


class ActionLog:
    """
    Durable action history.

    Each entry is one JSON object per line. Values typed into credential-like
    fields are stored as ``REDACTED``. Write failures are reported through the
    log callback and otherwise ignored so a broken log never stops automation.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.path = Path(path) if path is not None else CONFIG.action_log.path
        self._log_callback = log_callback

    def _log(self, message: str) -> None:
        print(f"[ActionLog] {message}")
        if self._log_callback:
            self._log_callback(message)

    def log_action(self, record: ActionLogRecord) -> Optional[ActionLogRecord]:
        stored = redact(record)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(stored.model_dump_json() + "\n")
        except OSError as exc:
            self._log(f"Failed to write action log {self.path}: {exc}")
            return None
        return stored

    def recent(self, limit: int = 50) -> List[ActionLogRecord]:
        if limit <= 0 or not self.path.exists():
            return []
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            self._log(f"Failed to read action log {self.path}: {exc}")
            return []
        records: List[ActionLogRecord] = []
        for line in lines[-limit:]:
            if not line.strip():
                continue
            try:
                records.append(ActionLogRecord.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError):
                self._log("Skipping malformed action log line")
        return records

    def clear(self) -> bool:
        try:
            if self.path.exists():
                self.path.write_text("", encoding="utf-8")
        except OSError as exc:
            self._log(f"Failed to clear action log {self.path}: {exc}")
            return False
        return True

    def as_dicts(self, limit: int = 50) -> List[Dict[str, Any]]:
        return [record.model_dump() for record in self.recent(limit)]
