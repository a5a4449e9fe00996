"""Normalization of planning-oracle replies and navigation-intent detection."""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from webpilot.src.oracle.client import loads_json
from webpilot.src.utils.errors import OracleParseError
from webpilot.src.utils.models import NavigateAction, parse_action

_MAX_DEPTH = 6

ACTION_ALIASES = {
    "goto": "navigate",
    "go": "navigate",
    "open": "navigate",
    "visit": "navigate",
    "fill": "type",
    "input": "type",
    "enter": "type",
    "press": "click",
    "tap": "click",
}


def _direct(payload: Any) -> Any:
    if isinstance(payload, dict) and isinstance(payload.get("action"), str):
        return payload
    return None


def _nested_action(payload: Any) -> Any:
    if isinstance(payload, dict) and isinstance(payload.get("action"), (dict, list)):
        return payload["action"]
    return None


def _first_item(payload: Any) -> Any:
    if isinstance(payload, list) and payload:
        return payload[0]
    return None


def _keyed(key: str) -> Callable[[Any], Any]:
    def extract(payload: Any) -> Any:
        if isinstance(payload, dict):
            return payload.get(key)
        return None

    return extract


# Tried in order; the first shape that yields an action object wins.
SHAPE_EXTRACTORS: List[Tuple[str, Callable[[Any], Any]]] = [
    ("action", _direct),
    ("nested", _nested_action),
    ("array", _first_item),
    ("steps", _keyed("steps")),
    ("actions", _keyed("actions")),
    ("plan", _keyed("plan")),
]


def extract_action_payload(payload: Any, depth: int = 0) -> Optional[Dict[str, Any]]:
    if depth > _MAX_DEPTH:
        return None
    for _name, extractor in SHAPE_EXTRACTORS:
        candidate = extractor(payload)
        if candidate is None:
            continue
        if candidate is payload:
            return candidate
        found = extract_action_payload(candidate, depth + 1)
        if found is not None:
            return found
    return None


def _canonicalize(raw: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(raw)
    name = str(data.get("action", "")).strip().lower()
    name = ACTION_ALIASES.get(name, name)
    data["action"] = name
    if name == "navigate" and not data.get("url"):
        data["url"] = data.get("value") or data.get("target") or data.get("href")
    if name == "type" and data.get("value") is None:
        data["value"] = data.get("text")
    if name == "scroll" and data.get("value") is None:
        data["value"] = data.get("delta", data.get("amount"))
    if name in ("click", "type", "scroll") and not data.get("selector") and not data.get("xpath"):
        data["selector"] = data.get("target") or data.get("element")
    return data


def normalize_action(payload: Any):
    """
    Reduce an oracle reply to exactly one action.

    Accepts the action object itself, an array of actions, an object holding
    ``steps``, ``actions`` or ``plan``, or any nesting of those, and keeps the
    first action found. Raises ``OracleParseError`` when none is present or the
    action is invalid.
    """
    if isinstance(payload, str):
        payload = loads_json(payload)
    raw = extract_action_payload(payload)
    if raw is None:
        raise OracleParseError("No valid action found in response", payload)
    try:
        return parse_action(_canonicalize(raw))
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        raise OracleParseError(f"Invalid action from oracle: {first.get('msg', exc)}", payload) from exc


_NAVIGATION_INTENT = re.compile(
    r"^\s*(?:please\s+)?(?:go|navigate)\s+to\s+(?P<target>\S+?)[\s.!?]*$",
    re.IGNORECASE,
)


def url_for_target(target: str) -> str:
    """Turn the object of a "go to" command into a URL."""
    target = target.strip().strip("\"'")
    if re.match(r"^https?://", target, re.IGNORECASE):
        return target
    host = target.split("/", 1)[0]
    if host.lower().startswith("localhost") or re.match(r"^\d+(\.\d+){3}(:\d+)?$", host):
        return "http://" + target
    if "." in host:
        if host.count(".") == 1 and not host.lower().startswith("www."):
            return "https://www." + target
        return "https://" + target
    return f"https://www.{target}.com"


def navigation_intent(command: str) -> Optional[str]:
    """URL for a pure "go to X" / "navigate to X" command, otherwise ``None``."""
    match = _NAVIGATION_INTENT.match(command or "")
    if not match:
        return None
    return url_for_target(match.group("target"))


def navigation_action(command: str) -> Optional[NavigateAction]:
    url = navigation_intent(command)
    return NavigateAction(url=url) if url else None
