"""Thin async wrapper over OpenAI chat completions in JSON mode."""
from __future__ import annotations

import json
import re
from typing import Any, Optional

import openai

from webpilot.src.utils.config import CONFIG, LLMConfig
from webpilot.src.utils.errors import OracleCallError, OracleParseError

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text.strip()).strip()


def loads_json(text: str) -> Any:
    """Parse a model reply, tolerating markdown fences and chatter around the JSON."""
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        raise OracleParseError("Oracle returned an empty response", text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    for opener, closer in (("{", "}"), ("[", "]")):
        start = cleaned.find(opener)
        end = cleaned.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError:
                continue
    raise OracleParseError(f"Oracle returned non-JSON: {cleaned[:100]}", text)


class ChatJSONClient:
    """Sends one system + user exchange and returns the parsed JSON reply."""

    def __init__(self, config: Optional[LLMConfig] = None, client: Any = None) -> None:
        self.config = config or CONFIG.llm
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = openai.AsyncOpenAI(api_key=self.config.api_key, timeout=self.config.timeout)
            except openai.OpenAIError as exc:
                raise OracleCallError(f"OpenAI client unavailable: {exc}") from exc
        return self._client

    async def complete_json(self, system: str, user: str, max_tokens: Optional[int] = None) -> Any:
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                response_format={"type": "json_object"},
                max_tokens=max_tokens or self.config.max_tokens,
            )
        except openai.OpenAIError as exc:
            raise OracleCallError(f"OpenAI request failed: {exc}") from exc
        if not response.choices:
            raise OracleParseError("Oracle returned no choices")
        return loads_json(response.choices[0].message.content or "")
