"""Action execution against a live page view."""
from __future__ import annotations

import asyncio
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Union

from webpilot.src.actionlog.store import ActionLog, ActionLogRecord
from webpilot.src.page.scripts import LOCATE_ELEMENT_SCRIPT, PERFORM_ACTION_SCRIPT, TARGET_MARKER
from webpilot.src.page.view import LOAD_FAIL, LOAD_FINISH, PageView
from webpilot.src.utils.config import CONFIG, EngineConfig
from webpilot.src.utils.models import ClickAction, NavigateAction, ScrollAction, TypeAction

ExecutableAction = Union[NavigateAction, ClickAction, TypeAction, ScrollAction]

# Elements scanned by the text-matching fallback, per action kind.
FUZZY_CANDIDATES = {
    "click": (
        'a, button, [role="button"], [role="link"], [role="tab"], [role="menuitem"], '
        'input[type="button"], input[type="submit"], label'
    ),
    "type": 'input, textarea, [role="textbox"], [role="searchbox"], [contenteditable="true"]',
    "scroll": '[role="region"], [role="feed"], [role="list"], main, section, article, aside, nav, ul, ol, div',
}

_SCHEME = re.compile(r"^(?:[a-zA-Z][a-zA-Z0-9+.-]*://|about:|data:|file:|blob:)", re.IGNORECASE)
_QUOTED = re.compile(r"""["']([^"']+)["']""")
_IDENT = re.compile(r"[#.]([A-Za-z_][\w-]*)")


@dataclass(slots=True)
class ActionExecResult:
    success: bool
    reason_code: str = "ok"
    reason: str = ""
    strategy: Optional[str] = None

    def as_error_message(self) -> Optional[str]:
        if self.success:
            return None
        return f"[{self.reason_code}] {self.reason or 'Unknown error'}"


def normalize_url(url: str) -> str:
    """Default the scheme to https for bare hosts."""
    url = url.strip()
    if not url or _SCHEME.match(url):
        return url
    return "https://" + url.lstrip("/")


def fuzzy_terms(locator: str) -> List[str]:
    """Search strings derived from a locator for text matching, most literal first."""
    terms: List[str] = []

    def add(term: str) -> None:
        term = term.strip()
        if term and term.lower() not in (existing.lower() for existing in terms):
            terms.append(term)

    add(locator)
    if locator.lower().startswith("text="):
        add(locator[5:])
    for quoted in _QUOTED.findall(locator):
        add(quoted)
    identifiers = _IDENT.findall(locator)
    if identifiers:
        add(identifiers[-1])
        add(re.sub(r"[-_]+", " ", identifiers[-1]))
    return terms


def resolution_plan(action: ExecutableAction) -> List[Tuple[str, str]]:
    """Ordered (strategy, query) pairs tried until one resolves a target."""
    plan: List[Tuple[str, str]] = []
    selector = getattr(action, "selector", None)
    xpath = getattr(action, "xpath", None)
    if selector:
        plan.append(("selector", selector))
    if xpath or selector:
        plan.append(("xpath", xpath or selector))
    if selector or xpath:
        for term in fuzzy_terms(selector or xpath):
            plan.append(("fuzzy", term))
    if isinstance(action, ScrollAction):
        plan.append(("document", ""))
    return plan


class ActionExecutor:
    """
    Resolves an action's target and performs it.

    Targets are resolved by CSS selector, then as a path expression, then by
    case-insensitive text match over a fixed set of candidate elements. Page
    failures come back as ``ActionExecResult`` values instead of exceptions.
    An unresolved target raises the manual-completion fallback.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        action_log: Optional[ActionLog] = None,
        fallback_callback: Optional[Callable[[str], None]] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config = config or CONFIG.engine
        self.action_log = action_log
        self._fallback_callback = fallback_callback
        self._log_callback = log_callback

    def _log(self, message: str) -> None:
        print(f"[Executor] {message}")
        if self._log_callback:
            self._log_callback(message)

    async def execute(self, view: PageView, action: ExecutableAction) -> ActionExecResult:
        self._log(f"Executing {action.action}: {self._describe(action)}")
        try:
            if isinstance(action, NavigateAction):
                result = await self._navigate(view, action)
            else:
                result = await self._perform(view, action)
        except asyncio.TimeoutError:
            result = ActionExecResult(
                success=False,
                reason_code="script_timeout",
                reason=f"Page did not answer within {self.config.script_timeout}s",
            )
        except Exception as exc:
            result = ActionExecResult(success=False, reason_code="execution_error", reason=str(exc))

        if result.success:
            self._log(f"{action.action} succeeded ({result.reason_code})")
        else:
            self._log(f"{action.action} failed: {result.as_error_message()}")
        await self._record(view, action, result)
        if result.reason_code == "locator_unresolved":
            self._offer_fallback(action, result)
        return result

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    async def _navigate(self, view: PageView, action: NavigateAction) -> ActionExecResult:
        url = normalize_url(action.url)
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future = loop.create_future()

        def on_finish(*_args: Any) -> None:
            if not outcome.done():
                outcome.set_result(("finished", None))

        def on_fail(*args: Any) -> None:
            if not outcome.done():
                outcome.set_result(("failed", args[0] if args else "load failed"))

        view.add_listener(LOAD_FINISH, on_finish)
        view.add_listener(LOAD_FAIL, on_fail)
        try:
            view.load_url(url)
            try:
                kind, detail = await asyncio.wait_for(outcome, self.config.navigation_timeout)
            except asyncio.TimeoutError:
                return ActionExecResult(
                    success=True,
                    reason_code="navigation_timeout",
                    reason=f"No load signal for {url} within {self.config.navigation_timeout}s, continuing",
                    strategy="navigate",
                )
        finally:
            view.remove_listener(LOAD_FINISH, on_finish)
            view.remove_listener(LOAD_FAIL, on_fail)

        if kind == "failed":
            return ActionExecResult(
                success=False,
                reason_code="navigation_failed",
                reason=f"Failed to load {url}: {detail}",
                strategy="navigate",
            )
        return ActionExecResult(success=True, reason=f"Loaded {url}", strategy="navigate")

    # ------------------------------------------------------------------
    # Element actions
    # ------------------------------------------------------------------
    async def _perform(self, view: PageView, action: ExecutableAction) -> ActionExecResult:
        kind = action.action
        token = uuid.uuid4().hex
        for strategy, query in resolution_plan(action):
            located = await self._evaluate(
                view,
                LOCATE_ELEMENT_SCRIPT,
                {
                    "strategy": strategy,
                    "query": query,
                    "token": token,
                    "marker": TARGET_MARKER,
                    "candidates": FUZZY_CANDIDATES[kind],
                },
            )
            if not (isinstance(located, dict) and located.get("found")):
                continue

            self._log(f"Resolved target via {strategy} ({located.get('tag')})")
            outcome = await self._evaluate(
                view,
                PERFORM_ACTION_SCRIPT,
                {
                    "marker": TARGET_MARKER,
                    "token": token,
                    "op": kind,
                    "value": action.value if isinstance(action, TypeAction) else "",
                    "delta": action.value if isinstance(action, ScrollAction) else 0,
                },
            )
            if isinstance(outcome, dict) and outcome.get("success"):
                return ActionExecResult(success=True, reason=f"{kind} via {strategy}", strategy=strategy)
            error = outcome.get("error") if isinstance(outcome, dict) else None
            return ActionExecResult(
                success=False,
                reason_code="action_failed",
                reason=error or f"{kind} had no effect",
                strategy=strategy,
            )

        return ActionExecResult(
            success=False,
            reason_code="locator_unresolved",
            reason=f"No element matched '{self._describe(action)}' by selector, path or text",
        )

    async def _evaluate(self, view: PageView, script: str, arg: Any) -> Any:
        return await asyncio.wait_for(view.evaluate(script, arg), self.config.script_timeout)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    async def _record(self, view: PageView, action: ExecutableAction, result: ActionExecResult) -> None:
        if self.action_log is None:
            return
        try:
            url = await asyncio.wait_for(view.get_url(), self.config.script_timeout)
        except Exception:
            url = None
        if isinstance(action, NavigateAction):
            url = action.url
        self.action_log.log_action(
            ActionLogRecord(
                action=action.action,
                selector=getattr(action, "selector", None),
                xpath=getattr(action, "xpath", None),
                value=getattr(action, "value", None),
                url=url,
                status="success" if result.success else "error",
                error=None if result.success else result.reason,
                strategy=result.strategy,
            )
        )

    def _offer_fallback(self, action: ExecutableAction, result: ActionExecResult) -> None:
        message = (
            f"Automation could not {action.action} '{self._describe(action)}': {result.reason}. "
            "Please complete this step manually."
        )
        if self._fallback_callback:
            self._fallback_callback(message)
        else:
            self._log(message)

    @staticmethod
    def _describe(action: ExecutableAction) -> str:
        if isinstance(action, NavigateAction):
            return action.url
        return getattr(action, "selector", None) or getattr(action, "xpath", None) or "document"
