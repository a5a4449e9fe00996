"""HTTP host that owns browser sessions and runs commands against them."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Literal, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from playwright.async_api import Browser, Page, Playwright, async_playwright
from pydantic import BaseModel, Field

from webpilot.src.actionlog.store import ActionLog
from webpilot.src.engine.controller import ExecutionController
from webpilot.src.executor.executor import ActionExecutor
from webpilot.src.oracle.explainer import LLMPageExplainer
from webpilot.src.oracle.planner import LLMPlanner
from webpilot.src.oracle.verifier import LLMVerifier
from webpilot.src.page.view import PlaywrightPageView
from webpilot.src.utils.config import CONFIG
from webpilot.src.utils.errors import ControllerBusyError
from webpilot.src.utils.models import NavigateAction

app = FastAPI(title="webpilot host", description="Natural-language command execution for browser sessions")

playwright_instance: Optional[Playwright] = None
action_log = ActionLog()


class BrowserSession:
    """One browser page with its own controller, registry and step counter."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.browser: Optional[Browser] = None
        self.page: Optional[Page] = None
        self.view: Optional[PlaywrightPageView] = None
        self.controller: Optional[ExecutionController] = None
        self._lock = asyncio.Lock()

    async def ensure_ready(self) -> "BrowserSession":
        if self.controller is not None:
            return self
        # Concurrent first requests share one browser launch.
        async with self._lock:
            if self.controller is not None:
                return self
            if not playwright_instance:
                raise HTTPException(status_code=503, detail="Playwright not initialized")
            self.browser = await playwright_instance.chromium.launch(headless=CONFIG.host.headless)
            self.page = await self.browser.new_page()
            self.view = PlaywrightPageView(self.page)
            self.controller = ExecutionController(
                self.view,
                LLMPlanner(),
                LLMVerifier(),
                executor=ActionExecutor(CONFIG.engine, action_log=action_log),
                caller_id=self.session_id,
            )
        return self

    async def close(self) -> None:
        if self.controller is not None:
            self.controller.cancel()
            self.controller.registry.cancel_all()
        if self.view is not None:
            await self.view.close()
        if self.browser:
            await self.browser.close()
        self.browser = None
        self.page = None
        self.view = None
        self.controller = None


active_sessions: Dict[str, BrowserSession] = {}


async def _get_session(session_id: str) -> BrowserSession:
    session = active_sessions.get(session_id)
    if session is None:
        session = BrowserSession(session_id)
        active_sessions[session_id] = session
    return await session.ensure_ready()


class CommandRequest(BaseModel):
    command: str = Field(..., min_length=1, description="Natural-language command")
    session_id: str = "default"
    max_steps: Optional[int] = Field(None, ge=1)
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    start_url: Optional[str] = Field(None, description="Page to load before the command starts")


class SessionRequest(BaseModel):
    session_id: str = "default"


class BrowserRequest(BaseModel):
    session_id: str = "default"
    action: Literal["back", "forward", "reload", "navigate", "state"]
    url: Optional[str] = None


@app.on_event("startup")
async def startup_event() -> None:
    global playwright_instance
    print("Initializing Playwright...")
    playwright_instance = await async_playwright().start()
    print("Playwright initialized.")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    for session in list(active_sessions.values()):
        await session.close()
    active_sessions.clear()
    if playwright_instance:
        print("Stopping Playwright...")
        await playwright_instance.stop()
        print("Playwright stopped.")


@app.post("/execute-command")
async def execute_command(request: CommandRequest) -> Dict[str, Any]:
    session = await _get_session(request.session_id)
    controller = session.controller
    if controller.is_running:
        raise HTTPException(status_code=409, detail=f"Session '{request.session_id}' is already running a command")
    if request.start_url:
        await controller.executor.execute(session.view, NavigateAction(url=request.start_url))
    try:
        outcome = await controller.run(
            request.command,
            max_steps=request.max_steps,
            confidence_threshold=request.confidence_threshold,
        )
    except ControllerBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return outcome.model_dump(mode="json")


@app.post("/stop")
async def stop(request: SessionRequest) -> Dict[str, Any]:
    """Emergency stop: the running command ends as cancelled at its next checkpoint."""
    session = active_sessions.get(request.session_id)
    if session is None or session.controller is None:
        return {"success": False, "message": f"Session '{request.session_id}' not found"}
    was_running = session.controller.is_running
    session.controller.cancel()
    return {"success": True, "was_running": was_running}


@app.post("/snapshot")
async def snapshot(request: SessionRequest) -> Dict[str, Any]:
    session = await _get_session(request.session_id)
    result = await session.controller.observe()
    return result.model_dump(mode="json")


@app.post("/explain")
async def explain(request: SessionRequest) -> Dict[str, Any]:
    session = await _get_session(request.session_id)
    current = await session.controller.observe()
    explanation = await LLMPageExplainer().explain(current)
    return explanation.model_dump()


@app.post("/browser")
async def browser_action(request: BrowserRequest) -> Dict[str, Any]:
    session = await _get_session(request.session_id)
    view = session.view
    success = True
    message = ""
    if request.action == "back":
        success = await view.go_back()
    elif request.action == "forward":
        success = await view.go_forward()
    elif request.action == "reload":
        await view.reload()
    elif request.action == "navigate":
        if not request.url:
            raise HTTPException(status_code=400, detail="url is required for 'navigate'")
        result = await session.controller.executor.execute(view, NavigateAction(url=request.url))
        success = result.success
        message = result.reason
    return {
        "success": success,
        "message": message,
        "url": await view.get_url(),
        "title": await view.get_title(),
        "can_go_back": await view.can_go_back(),
        "can_go_forward": await view.can_go_forward(),
    }


@app.get("/logs")
async def get_logs(limit: int = 50) -> Dict[str, Any]:
    return {"logs": action_log.as_dicts(limit)}


@app.delete("/logs")
async def clear_logs() -> Dict[str, Any]:
    return {"success": action_log.clear()}


@app.post("/close-session")
async def close_session(request: SessionRequest) -> Dict[str, Any]:
    session = active_sessions.pop(request.session_id, None)
    if session is None:
        return {"success": False, "message": f"Session '{request.session_id}' not found"}
    await session.close()
    return {"success": True, "message": f"Session '{request.session_id}' closed"}


@app.get("/")
async def root() -> Dict[str, Any]:
    return {"message": "webpilot host is running.", "active_sessions": len(active_sessions)}


def main(host: str = "0.0.0.0", port: int = 8011) -> None:
    import uvicorn

    load_dotenv()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
