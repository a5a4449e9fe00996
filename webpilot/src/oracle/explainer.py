"""Plain-language explanation of the current page."""
from __future__ import annotations

from typing import Callable, Optional

from webpilot.src.oracle.client import ChatJSONClient
from webpilot.src.oracle.context import render_context
from webpilot.src.utils.errors import OracleCallError, OracleParseError
from webpilot.src.utils.models import PageExplanation, Snapshot

EXPLAINER_SYSTEM_PROMPT = """You explain web pages to users in plain language. Respond with one JSON object:
{"summary": "<2-3 sentences>", "mainPurpose": "<what the page is for>",
 "contentDetails": "<notable content>", "suggestedActions": ["<3 to 5 things the user could do>"]}"""


class LLMPageExplainer:
    def __init__(
        self,
        client: Optional[ChatJSONClient] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.client = client or ChatJSONClient()
        self._log_callback = log_callback

    def _log(self, message: str) -> None:
        print(f"[Explainer] {message}")
        if self._log_callback:
            self._log_callback(message)

    async def explain(self, snapshot: Snapshot) -> PageExplanation:
        user = f"Explain this page:\n{render_context(snapshot, max_elements=40, max_text=2000)}"
        try:
            payload = await self.client.complete_json(EXPLAINER_SYSTEM_PROMPT, user, max_tokens=800)
        except (OracleCallError, OracleParseError) as exc:
            self._log(f"Explanation failed: {exc}")
            return PageExplanation(
                summary="Unable to explain this page.",
                main_purpose="Unknown",
                content_details=str(exc),
            )
        if not isinstance(payload, dict):
            payload = {}
        suggestions = payload.get("suggestedActions") or payload.get("suggested_actions") or []
        if isinstance(suggestions, str):
            suggestions = [suggestions]
        return PageExplanation(
            summary=str(payload.get("summary") or ""),
            main_purpose=str(payload.get("mainPurpose") or payload.get("main_purpose") or ""),
            content_details=str(payload.get("contentDetails") or payload.get("content_details") or ""),
            suggested_actions=[str(item) for item in suggestions][:5],
        )
