"""Compact snapshot descriptions sent to the oracles."""
from __future__ import annotations

import json
from typing import Any, Dict, List

from webpilot.src.utils.models import Snapshot

_ELEMENT_FIELDS = ("selector", "tag", "type", "role", "name", "text", "placeholder", "aria_label", "href")


def snapshot_context(snapshot: Snapshot, max_elements: int = 60, max_text: int = 500) -> Dict[str, Any]:
    elements: List[Dict[str, Any]] = []
    for element in snapshot.elements[:max_elements]:
        data = element.model_dump(include=set(_ELEMENT_FIELDS))
        elements.append({key: value for key, value in data.items() if value not in (None, "", [])})
    return {
        "url": snapshot.url,
        "title": snapshot.title,
        "headings": [{"level": h.level, "text": h.text} for h in snapshot.headings[:20]],
        "elements": elements,
        "forms": [
            {
                "selector": form.selector,
                "action": form.action,
                "fields": [
                    {key: value for key, value in field.model_dump().items() if value}
                    for field in form.fields[:15]
                ],
            }
            for form in snapshot.forms[:5]
        ],
        "text": snapshot.text[:max_text],
    }


def render_context(snapshot: Snapshot, max_elements: int = 60, max_text: int = 500) -> str:
    return json.dumps(snapshot_context(snapshot, max_elements, max_text), ensure_ascii=False, indent=2)
