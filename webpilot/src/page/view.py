"""
Page view capability.

The engine only talks to a page through :class:`PageView`: current url/title,
script evaluation, URL loading with load notifications, reload and history.
:class:`PlaywrightPageView` implements it on top of a Playwright ``Page``.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, runtime_checkable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from webpilot.src.page.scripts import HISTORY_STATE_SCRIPT

LOAD_START = "load-start"
LOAD_FINISH = "load-finish"
LOAD_FAIL = "load-fail"

PAGE_EVENTS = (LOAD_START, LOAD_FINISH, LOAD_FAIL)

PageListener = Callable[..., None]


@runtime_checkable
class PageView(Protocol):
    async def get_url(self) -> str: ...

    async def get_title(self) -> str: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    def load_url(self, url: str) -> None: ...

    async def reload(self) -> None: ...

    async def go_back(self) -> bool: ...

    async def go_forward(self) -> bool: ...

    async def can_go_back(self) -> bool: ...

    async def can_go_forward(self) -> bool: ...

    def add_listener(self, event: str, listener: PageListener) -> None: ...

    def remove_listener(self, event: str, listener: PageListener) -> None: ...


class PageEventEmitter:
    """Listener bookkeeping shared by page view implementations."""

    def __init__(self, log_callback: Optional[Callable[[str], None]] = None) -> None:
        self._listeners: Dict[str, List[PageListener]] = defaultdict(list)
        self._log_callback = log_callback

    def add_listener(self, event: str, listener: PageListener) -> None:
        if event not in PAGE_EVENTS:
            raise ValueError(f"Unknown page event: {event}")
        self._listeners[event].append(listener)

    def remove_listener(self, event: str, listener: PageListener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(items) for items in self._listeners.values())

    def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(*args)
            except Exception as exc:
                self._log(f"Listener for {event} failed: {exc}")

    def _log(self, message: str) -> None:
        print(f"[PageView] {message}")
        if self._log_callback:
            self._log_callback(message)


class PlaywrightPageView(PageEventEmitter):
    """PageView over a Playwright page."""

    def __init__(
        self,
        page: Page,
        load_timeout: float = 30.0,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        super().__init__(log_callback)
        self.page = page
        self.load_timeout = load_timeout
        self._pending_loads: Set[asyncio.Task] = set()
        self._cdp_session: Any = None
        page.on("load", lambda _page: self.emit(LOAD_FINISH))

    async def get_url(self) -> str:
        return self.page.url

    async def get_title(self) -> str:
        return await self.page.title()

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    def load_url(self, url: str) -> None:
        task = asyncio.ensure_future(self._load(url))
        self._pending_loads.add(task)
        task.add_done_callback(self._pending_loads.discard)

    async def _load(self, url: str) -> None:
        self.emit(LOAD_START, url)
        try:
            await self.page.goto(url, wait_until="load", timeout=self.load_timeout * 1000)
        except PlaywrightError as exc:
            self._log(f"Load failed for {url}: {exc}")
            self.emit(LOAD_FAIL, str(exc))
            return
        self.emit(LOAD_FINISH)

    async def reload(self) -> None:
        await self.page.reload(wait_until="load")

    async def go_back(self) -> bool:
        if not await self.can_go_back():
            return False
        await self.page.go_back(wait_until="load")
        return True

    async def go_forward(self) -> bool:
        if not await self.can_go_forward():
            return False
        await self.page.go_forward(wait_until="load")
        return True

    async def can_go_back(self) -> bool:
        history = await self._navigation_history()
        if history is None:
            state = await self.page.evaluate(HISTORY_STATE_SCRIPT)
            return int((state or {}).get("length", 0)) > 1
        return history["currentIndex"] > 0

    async def can_go_forward(self) -> bool:
        history = await self._navigation_history()
        if history is None:
            return False
        return history["currentIndex"] < len(history["entries"]) - 1

    async def _navigation_history(self) -> Optional[Dict[str, Any]]:
        """Exact history from the DevTools protocol (Chromium only)."""
        try:
            if self._cdp_session is None:
                self._cdp_session = await self.page.context.new_cdp_session(self.page)
            return await self._cdp_session.send("Page.getNavigationHistory")
        except PlaywrightError as exc:
            self._log(f"Navigation history unavailable: {exc}")
            return None

    async def close(self) -> None:
        for task in list(self._pending_loads):
            task.cancel()
        self._pending_loads.clear()
