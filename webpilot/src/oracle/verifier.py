"""Verification oracle: judges whether the command is satisfied."""
from __future__ import annotations

from typing import Any, Callable, Optional

from webpilot.src.oracle.client import ChatJSONClient
from webpilot.src.oracle.context import render_context
from webpilot.src.utils.errors import OracleParseError
from webpilot.src.utils.models import Snapshot, VerificationResult

VERIFIER_SYSTEM_PROMPT = """You check whether a user's browser command has been fully carried out,
judging only from the current page. Respond with one JSON object:
{"satisfied": true or false, "confidence": <number between 0 and 1>, "reason": "<short explanation>"}"""


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)


def _as_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    # Some models answer on a 0-100 scale. Small overshoots are clamped later.
    if 1.5 < number <= 100.0:
        number /= 100.0
    return number


class LLMVerifier:
    """
    Verification oracle backed by an OpenAI chat model.

    ``check`` never raises: any failure becomes a not-satisfied result with
    zero confidence so the controller keeps looping.
    """

    def __init__(
        self,
        client: Optional[ChatJSONClient] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.client = client or ChatJSONClient()
        self._log_callback = log_callback

    def _log(self, message: str) -> None:
        print(f"[Verifier] {message}")
        if self._log_callback:
            self._log_callback(message)

    async def check(self, command: str, snapshot: Snapshot) -> VerificationResult:
        user = (
            f"Command: {command}\n\n"
            f"Current page:\n{render_context(snapshot, max_elements=30, max_text=1000)}"
        )
        try:
            payload = await self.client.complete_json(VERIFIER_SYSTEM_PROMPT, user)
            if not isinstance(payload, dict):
                raise OracleParseError("Verification reply was not a JSON object", payload)
            result = VerificationResult(
                satisfied=_as_bool(payload.get("satisfied")),
                confidence=_as_confidence(payload.get("confidence", 0)),
                reason=str(payload.get("reason") or ""),
            )
        except Exception as exc:
            self._log(f"Verification failed: {exc}")
            return VerificationResult(
                satisfied=False,
                confidence=0.0,
                reason=f"Error during verification: {exc}",
            )
        self._log(f"satisfied={result.satisfied} confidence={result.confidence:.2f}")
        return result
