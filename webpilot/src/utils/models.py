"""Shared data models for the webpilot engine."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from webpilot.src.utils.errors import SessionStateError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class Viewport(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = 0
    height: int = 0


class BoundingRect(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class Heading(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: int = Field(..., ge=1, le=6, description="Heading level (h1-h6)")
    text: str = ""
    selector: str


class PageElement(BaseModel):
    """An interactive element as seen at observation time."""

    model_config = ConfigDict(frozen=True)

    tag: str
    role: Optional[str] = None
    type: Optional[str] = None
    name: Optional[str] = None
    id: Optional[str] = None
    classes: List[str] = Field(default_factory=list)
    text: str = ""
    placeholder: Optional[str] = None
    aria_label: Optional[str] = None
    href: Optional[str] = None
    bounding_rect: BoundingRect = Field(default_factory=BoundingRect)
    selector: str


class FormField(BaseModel):
    model_config = ConfigDict(frozen=True)

    selector: str
    name: Optional[str] = None
    type: Optional[str] = None
    placeholder: Optional[str] = None
    aria_label: Optional[str] = None


class Form(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    action: Optional[str] = None
    selector: str
    fields: List[FormField] = Field(default_factory=list)


class Snapshot(BaseModel):
    """
    Structured, bounded description of the page at one moment.

    Snapshots are built fresh on every observation and never mutated.
    ``extraction_mode`` records which extraction path produced the data:
    ``primary`` for the full walk, ``robust`` for the simplified retry and
    ``empty`` when nothing usable could be read.
    """

    model_config = ConfigDict(frozen=True)

    url: str = ""
    title: str = ""
    viewport: Viewport = Field(default_factory=Viewport)
    headings: List[Heading] = Field(default_factory=list)
    elements: List[PageElement] = Field(default_factory=list)
    forms: List[Form] = Field(default_factory=list)
    text: str = ""
    extraction_mode: Literal["primary", "robust", "empty"] = "primary"
    captured_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def empty(cls, url: str = "", title: str = "") -> "Snapshot":
        return cls(url=url, title=title, extraction_mode="empty")

    @property
    def is_blank(self) -> bool:
        viewport_empty = self.viewport.width == 0 and self.viewport.height == 0
        return viewport_empty and not self.headings and not self.elements

    @property
    def degraded(self) -> bool:
        return self.extraction_mode != "primary"


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class Locator(BaseModel):
    """Ways of finding an element again: a CSS selector and/or a path expression."""

    selector: Optional[str] = None
    xpath: Optional[str] = None

    @field_validator("selector", "xpath", mode="before")
    @classmethod
    def strip_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @property
    def has_target(self) -> bool:
        return bool(self.selector or self.xpath)

    def describe(self) -> str:
        return self.selector or self.xpath or ""


class _TargetedAction(Locator):
    @model_validator(mode="after")
    def require_locator(self) -> "_TargetedAction":
        if not self.has_target:
            raise ValueError(f"'{self.action}' requires a selector or xpath")
        return self


class NavigateAction(BaseModel):
    action: Literal["navigate"] = "navigate"
    url: str = Field(..., min_length=1, description="Destination URL")

    @field_validator("url", mode="before")
    @classmethod
    def strip_url(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class ClickAction(_TargetedAction):
    action: Literal["click"] = "click"


class TypeAction(_TargetedAction):
    action: Literal["type"] = "type"
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ScrollAction(Locator):
    action: Literal["scroll"] = "scroll"
    value: int = Field(0, description="Vertical scroll delta in pixels")

    @field_validator("value", mode="before")
    @classmethod
    def coerce_delta(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            match = re.search(r"-?\d+", value)
            return int(match.group(0)) if match else 0
        return value


Action = Annotated[
    Union[NavigateAction, ClickAction, TypeAction, ScrollAction],
    Field(discriminator="action"),
]

ACTION_ADAPTER: TypeAdapter = TypeAdapter(Action)


def parse_action(payload: Any) -> Union[NavigateAction, ClickAction, TypeAction, ScrollAction]:
    """Validate one flat action object. Raises ``pydantic.ValidationError``."""
    return ACTION_ADAPTER.validate_python(payload)


# ---------------------------------------------------------------------------
# Verification / explanation
# ---------------------------------------------------------------------------


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    satisfied: bool = False
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    reason: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if number != number:  # NaN
            return 0.0
        return min(1.0, max(0.0, number))


class PageExplanation(BaseModel):
    summary: str = ""
    main_purpose: str = ""
    content_details: str = ""
    suggested_actions: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Execution session
# ---------------------------------------------------------------------------


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    SATISFIED = "satisfied"
    MAX_STEPS_REACHED = "max_steps_reached"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ExecutionPhase(str, Enum):
    IDLE = "idle"
    OBSERVING = "observing"
    PLANNING = "planning"
    EXECUTING = "executing"
    REOBSERVING = "reobserving"
    VERIFYING = "verifying"
    CONTINUING = "continuing"
    DONE = "done"


class StepRecord(BaseModel):
    """Outcome of one observe/plan/execute/verify cycle."""

    step_number: int
    action: Optional[Union[NavigateAction, ClickAction, TypeAction, ScrollAction]] = None
    success: bool = False
    error: Optional[str] = None
    strategy: Optional[str] = None
    verification: Optional[VerificationResult] = None
    duration_ms: int = 0


class ExecutionSession(BaseModel):
    """
    Mutable state of one command run, owned by the execution controller.

    Status only moves from ``running`` to one terminal value. Any attempt to
    change a terminal session raises ``SessionStateError``.
    """

    session_id: str
    command: str
    max_steps: int = Field(5, ge=1)
    confidence_threshold: float = Field(0.7, ge=0.0, le=1.0)
    step_count: int = 0
    status: ExecutionStatus = ExecutionStatus.RUNNING
    phase: ExecutionPhase = ExecutionPhase.IDLE
    last_action: Optional[Union[NavigateAction, ClickAction, TypeAction, ScrollAction]] = None
    last_verification: Optional[VerificationResult] = None
    last_error: Optional[str] = None
    reason: Optional[str] = None
    steps: List[StepRecord] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not ExecutionStatus.RUNNING

    @property
    def budget_exhausted(self) -> bool:
        return self.step_count >= self.max_steps

    def _ensure_running(self) -> None:
        if self.is_terminal:
            raise SessionStateError(
                f"session {self.session_id} already finished with status {self.status.value}"
            )

    def begin_step(self) -> int:
        self._ensure_running()
        if self.budget_exhausted:
            raise SessionStateError(
                f"session {self.session_id} has no steps left ({self.step_count}/{self.max_steps})"
            )
        self.step_count += 1
        return self.step_count

    def enter(self, phase: ExecutionPhase) -> None:
        self._ensure_running()
        self.phase = phase

    def finish(self, status: ExecutionStatus, reason: Optional[str] = None) -> None:
        if status is ExecutionStatus.RUNNING:
            raise SessionStateError("cannot finish a session with status 'running'")
        self._ensure_running()
        self.status = status
        self.phase = ExecutionPhase.DONE
        self.reason = reason
        self.finished_at = _utcnow()
