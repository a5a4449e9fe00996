"""Action log exports."""
from webpilot.src.actionlog.store import REDACTED, ActionLog, ActionLogRecord, looks_like_credential, redact

__all__ = ["REDACTED", "ActionLog", "ActionLogRecord", "looks_like_credential", "redact"]
