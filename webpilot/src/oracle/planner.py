"""Planning oracle: asks the model for the single next action."""
from __future__ import annotations

from typing import Callable, Optional

from webpilot.src.oracle.client import ChatJSONClient
from webpilot.src.oracle.context import render_context
from webpilot.src.oracle.parsing import normalize_action
from webpilot.src.utils.models import Snapshot

PLANNER_SYSTEM_PROMPT = """You control a web browser for a user. Decide the SINGLE next action that moves
the page toward satisfying the user's command. Respond with one JSON object and nothing else.

Allowed actions:
{"action": "navigate", "url": "https://..."}
{"action": "click", "selector": "<css selector>", "xpath": "<optional xpath>"}
{"action": "type", "selector": "<css selector>", "value": "<text to type>"}
{"action": "scroll", "selector": "<optional css selector>", "value": <pixels, positive scrolls down>}

Rules:
- Prefer selectors copied exactly from the page elements you are given.
- If no selector fits, use the element's visible text as the selector.
- Never return more than one action."""


class LLMPlanner:
    """Planning oracle backed by an OpenAI chat model."""

    def __init__(
        self,
        client: Optional[ChatJSONClient] = None,
        max_elements: int = 60,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.client = client or ChatJSONClient()
        self.max_elements = max_elements
        self._log_callback = log_callback

    def _log(self, message: str) -> None:
        print(f"[Planner] {message}")
        if self._log_callback:
            self._log_callback(message)

    async def plan(self, command: str, snapshot: Snapshot):
        user = (
            f"Command: {command}\n\n"
            f"Current page:\n{render_context(snapshot, max_elements=self.max_elements)}\n\n"
            "Return the next action as JSON."
        )
        payload = await self.client.complete_json(PLANNER_SYSTEM_PROMPT, user)
        action = normalize_action(payload)
        self._log(f"Next action: {action.model_dump(exclude_none=True)}")
        return action
