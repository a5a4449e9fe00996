import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from webpilot.src.page.scripts import DOCUMENT_TREE_SCRIPT
from webpilot.src.page.view import LOAD_FAIL, LOAD_FINISH, LOAD_START, PageEventEmitter
from webpilot.src.utils.config import EngineConfig


def el(tag: str, *children: Any, id: Optional[str] = None, classes=(), attrs=None,
       visible: bool = True, inline_hidden: bool = False, inner_text: Optional[str] = None,
       value: Optional[str] = None, rect=None) -> Dict[str, Any]:
    node: Dict[str, Any] = {
        "tag": tag,
        "id": id,
        "classes": list(classes),
        "attrs": dict(attrs or {}),
        "visible": visible,
        "inlineHidden": inline_hidden,
        "rect": rect or {"x": 0, "y": 0, "width": 100, "height": 20},
        "children": [child if isinstance(child, dict) else {"text": child} for child in children],
    }
    if inner_text is not None:
        node["innerText"] = inner_text
    if value is not None:
        node["value"] = value
    return node


def page(*body_children: Any, head=(), width: int = 1280, height: int = 720) -> Dict[str, Any]:
    return {
        "viewport": {"width": width, "height": height},
        "root": el("html", el("head", *head), el("body", *body_children)),
        "truncated": False,
    }


class FakePageView(PageEventEmitter):
    """Scripted page view: answers evaluate() from per-script handlers."""

    def __init__(self, url: str = "https://example.test/", title: str = "Example",
                 tree: Optional[Dict[str, Any]] = None,
                 handlers: Optional[Dict[str, Any]] = None,
                 load_outcome: str = "finish") -> None:
        super().__init__()
        self.url = url
        self.title = title
        self.tree = tree
        self.handlers: Dict[str, Any] = dict(handlers or {})
        self.load_outcome = load_outcome
        self.calls: List[tuple] = []
        self.loaded: List[str] = []
        self.history: List[str] = [url]
        self.index = 0

    async def get_url(self) -> str:
        return self.url

    async def get_title(self) -> str:
        return self.title

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append((script, arg))
        if script in self.handlers:
            handler = self.handlers[script]
            result = handler(arg) if callable(handler) else handler
            if isinstance(result, BaseException):
                raise result
            return result
        if script == DOCUMENT_TREE_SCRIPT:
            return self.tree
        raise AssertionError("unexpected script evaluated")

    def scripts_called(self, script: str) -> List[Any]:
        return [arg for called, arg in self.calls if called == script]

    def load_url(self, url: str) -> None:
        self.loaded.append(url)
        loop = asyncio.get_running_loop()
        loop.call_soon(self.emit, LOAD_START, url)
        if self.load_outcome == "finish":
            self.url = url
            self.history = self.history[: self.index + 1] + [url]
            self.index = len(self.history) - 1
            loop.call_soon(self.emit, LOAD_FINISH)
        elif self.load_outcome == "fail":
            loop.call_soon(self.emit, LOAD_FAIL, "net::ERR_NAME_NOT_RESOLVED")

    async def reload(self) -> None:
        return None

    async def go_back(self) -> bool:
        if not await self.can_go_back():
            return False
        self.index -= 1
        self.url = self.history[self.index]
        return True

    async def go_forward(self) -> bool:
        if not await self.can_go_forward():
            return False
        self.index += 1
        self.url = self.history[self.index]
        return True

    async def can_go_back(self) -> bool:
        return self.index > 0

    async def can_go_forward(self) -> bool:
        return self.index < len(self.history) - 1


@pytest.fixture
def fast_config() -> EngineConfig:
    return EngineConfig(
        max_steps=5,
        confidence_threshold=0.7,
        settle_delay=0.0,
        observation_timeout=1.0,
        navigation_timeout=0.2,
        script_timeout=1.0,
    )


@pytest.fixture
def make_view() -> Callable[..., FakePageView]:
    return FakePageView
