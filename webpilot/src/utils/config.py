"""Configuration helpers for webpilot services."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class LLMConfig:
    """Settings for the OpenAI-backed planning and verification oracles."""

    api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    model: str = field(default_factory=lambda: os.getenv("WEBPILOT_LLM_MODEL", "gpt-4.1"))
    timeout: float = field(default_factory=lambda: _env_float("WEBPILOT_LLM_TIMEOUT", 60.0))
    max_tokens: int = field(default_factory=lambda: _env_int("WEBPILOT_LLM_MAX_TOKENS", 500))


@dataclass(slots=True)
class EngineConfig:
    """Loop budget, timing and snapshot bounds for the execution engine."""

    max_steps: int = field(default_factory=lambda: _env_int("WEBPILOT_MAX_STEPS", 5))
    confidence_threshold: float = field(
        default_factory=lambda: _env_float("WEBPILOT_CONFIDENCE_THRESHOLD", 0.7)
    )
    settle_delay: float = field(default_factory=lambda: _env_float("WEBPILOT_SETTLE_DELAY", 2.0))
    observation_timeout: float = field(
        default_factory=lambda: _env_float("WEBPILOT_OBSERVATION_TIMEOUT", 5.0)
    )
    navigation_timeout: float = field(
        default_factory=lambda: _env_float("WEBPILOT_NAVIGATION_TIMEOUT", 10.0)
    )
    script_timeout: float = field(default_factory=lambda: _env_float("WEBPILOT_SCRIPT_TIMEOUT", 10.0))
    max_elements: int = 200
    max_headings: int = 40
    max_forms: int = 20
    max_text_chars: int = 5000


@dataclass(slots=True)
class ActionLogConfig:
    """Where the append-only action log lives."""

    path: Path = field(
        default_factory=lambda: Path(
            os.getenv("WEBPILOT_ACTION_LOG", str(Path.home() / ".webpilot" / "actions.log"))
        ).expanduser()
    )


@dataclass(slots=True)
class HostConfig:
    """Connection details for the browser host."""

    host_url: str = field(default_factory=lambda: os.getenv("WEBPILOT_HOST_URL", "http://localhost:8011"))
    request_timeout: float = field(default_factory=lambda: _env_float("WEBPILOT_HOST_TIMEOUT", 300.0))
    headless: bool = field(default_factory=lambda: _env_flag("WEBPILOT_HEADLESS", True))


@dataclass(slots=True)
class AppConfig:
    """Aggregated configuration for the engine, oracles and host."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    action_log: ActionLogConfig = field(default_factory=ActionLogConfig)
    host: HostConfig = field(default_factory=HostConfig)


CONFIG = AppConfig()
