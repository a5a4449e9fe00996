"""Utility exports for webpilot."""
from webpilot.src.utils.config import CONFIG, ActionLogConfig, AppConfig, EngineConfig, HostConfig, LLMConfig
from webpilot.src.utils.errors import (
    ControllerBusyError,
    HostUnavailableError,
    OracleCallError,
    OracleParseError,
    SessionStateError,
    WebpilotError,
)
from webpilot.src.utils.models import (
    Action,
    ClickAction,
    ExecutionPhase,
    ExecutionSession,
    ExecutionStatus,
    Locator,
    NavigateAction,
    PageExplanation,
    ScrollAction,
    Snapshot,
    StepRecord,
    TypeAction,
    VerificationResult,
    parse_action,
)

__all__ = [
    "CONFIG",
    "ActionLogConfig",
    "AppConfig",
    "EngineConfig",
    "HostConfig",
    "LLMConfig",
    "ControllerBusyError",
    "HostUnavailableError",
    "OracleCallError",
    "OracleParseError",
    "SessionStateError",
    "WebpilotError",
    "Action",
    "ClickAction",
    "ExecutionPhase",
    "ExecutionSession",
    "ExecutionStatus",
    "Locator",
    "NavigateAction",
    "PageExplanation",
    "ScrollAction",
    "Snapshot",
    "StepRecord",
    "TypeAction",
    "VerificationResult",
    "parse_action",
]
