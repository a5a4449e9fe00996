"""Action execution exports."""
from webpilot.src.executor.executor import (
    FUZZY_CANDIDATES,
    ActionExecResult,
    ActionExecutor,
    fuzzy_terms,
    normalize_url,
    resolution_plan,
)

__all__ = [
    "FUZZY_CANDIDATES",
    "ActionExecResult",
    "ActionExecutor",
    "fuzzy_terms",
    "normalize_url",
    "resolution_plan",
]
