"""OpenAI-backed oracles and reply normalization."""
from webpilot.src.oracle.client import ChatJSONClient, loads_json, strip_code_fences
from webpilot.src.oracle.explainer import LLMPageExplainer
from webpilot.src.oracle.parsing import navigation_action, navigation_intent, normalize_action, url_for_target
from webpilot.src.oracle.planner import LLMPlanner
from webpilot.src.oracle.verifier import LLMVerifier

__all__ = [
    "ChatJSONClient",
    "loads_json",
    "strip_code_fences",
    "LLMPageExplainer",
    "navigation_action",
    "navigation_intent",
    "normalize_action",
    "url_for_target",
    "LLMPlanner",
    "LLMVerifier",
]
