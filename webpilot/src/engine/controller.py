"""
Closed-loop command execution.

``ExecutionController.run`` drives a page toward a natural-language command:

    observe -> plan -> execute -> settle -> re-observe -> verify -> decide

bounded by a step budget and a confidence threshold, and stoppable at any
time through ``cancel``. Pure "go to X" commands skip planning and
verification and load the URL directly.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from typing import Callable, Optional, Protocol

from webpilot.src.engine.registry import SessionRegistry
from webpilot.src.executor.executor import ActionExecResult, ActionExecutor
from webpilot.src.oracle.parsing import navigation_action
from webpilot.src.page.snapshot import SnapshotExtractor
from webpilot.src.page.view import PageView
from webpilot.src.utils.config import CONFIG, EngineConfig
from webpilot.src.utils.errors import ControllerBusyError
from webpilot.src.utils.models import (
    ExecutionPhase,
    ExecutionSession,
    ExecutionStatus,
    Snapshot,
    StepRecord,
    VerificationResult,
)


class PlanningOracle(Protocol):
    async def plan(self, command: str, snapshot: Snapshot): ...


class VerificationOracle(Protocol):
    async def check(self, command: str, snapshot: Snapshot) -> VerificationResult: ...


class ExecutionController:
    """State machine sequencing observation, planning, execution and verification."""

    def __init__(
        self,
        view: PageView,
        planner: PlanningOracle,
        verifier: VerificationOracle,
        *,
        executor: Optional[ActionExecutor] = None,
        extractor: Optional[SnapshotExtractor] = None,
        registry: Optional[SessionRegistry] = None,
        config: Optional[EngineConfig] = None,
        caller_id: Optional[str] = None,
        status_callback: Optional[Callable[[ExecutionSession], None]] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.view = view
        self.planner = planner
        self.verifier = verifier
        self.config = config or CONFIG.engine
        self.executor = executor or ActionExecutor(self.config, log_callback=log_callback)
        self.extractor = extractor or SnapshotExtractor(self.config, log_callback=log_callback)
        self.registry = registry or SessionRegistry(self.config.observation_timeout, log_callback=log_callback)
        self.caller_id = caller_id or f"controller-{uuid.uuid4().hex[:8]}"
        self._status_callback = status_callback
        self._log_callback = log_callback
        self._cancel_requested = False
        self._running = False
        self.session: Optional[ExecutionSession] = None

    def _log(self, message: str) -> None:
        print(f"[Controller] {message}")
        if self._log_callback:
            self._log_callback(message)

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """Request a stop. Honored at the next checkpoint of the current cycle."""
        if self._running:
            self._log("Stop requested")
        self._cancel_requested = True

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    async def run(
        self,
        command: str,
        *,
        max_steps: Optional[int] = None,
        confidence_threshold: Optional[float] = None,
        session_id: Optional[str] = None,
    ) -> ExecutionSession:
        if self._running:
            raise ControllerBusyError("A command is already running on this page")

        session = ExecutionSession(
            session_id=session_id or uuid.uuid4().hex[:12],
            command=command,
            max_steps=max_steps if max_steps is not None else self.config.max_steps,
            confidence_threshold=(
                confidence_threshold if confidence_threshold is not None else self.config.confidence_threshold
            ),
        )
        self.session = session
        self._cancel_requested = False
        self._running = True
        self._log(f"Running '{command}' (max_steps={session.max_steps}, threshold={session.confidence_threshold})")
        try:
            shortcut = navigation_action(command)
            if shortcut is not None:
                await self._run_navigation(session, shortcut)
            else:
                await self._run_loop(session)
        except Exception as exc:
            self._log(f"Controller failure: {exc}")
            if not session.is_terminal:
                self._finish(session, ExecutionStatus.FAILED, str(exc))
        finally:
            self._running = False
        self._log(f"Finished with status {session.status.value} after {session.step_count} step(s)")
        return session

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    async def _run_loop(self, session: ExecutionSession) -> None:
        while not session.is_terminal:
            if self._cancel_requested:
                self._finish(session, ExecutionStatus.CANCELLED, "Stopped by user")
                return
            step_number = session.begin_step()
            record = StepRecord(step_number=step_number)
            started = time.monotonic()
            try:
                await self._run_cycle(session, record)
            except Exception as exc:
                self._log(f"Step {step_number} failed: {exc}")
                record.success = False
                record.error = str(exc)
                session.last_error = str(exc)
            record.duration_ms = int((time.monotonic() - started) * 1000)
            session.steps.append(record)

            if session.is_terminal or self._cancelled(session):
                return
            if session.budget_exhausted:
                self._finish(
                    session,
                    ExecutionStatus.MAX_STEPS_REACHED,
                    f"Command not satisfied within {session.max_steps} step(s)",
                )
                return
            self._enter(session, ExecutionPhase.CONTINUING)

    async def _run_cycle(self, session: ExecutionSession, record: StepRecord) -> None:
        self._enter(session, ExecutionPhase.OBSERVING)
        snapshot = await self.observe()

        self._enter(session, ExecutionPhase.PLANNING)
        action = await self.planner.plan(session.command, snapshot)
        record.action = action
        session.last_action = action

        self._enter(session, ExecutionPhase.EXECUTING)
        result = await self.executor.execute(self.view, action)
        record.strategy = result.strategy
        if self._cancelled(session):
            return
        if not result.success:
            record.error = result.as_error_message()
            session.last_error = record.error
            return
        record.success = True

        await asyncio.sleep(self.config.settle_delay)
        if self._cancelled(session):
            return

        self._enter(session, ExecutionPhase.REOBSERVING)
        snapshot = await self.observe()

        self._enter(session, ExecutionPhase.VERIFYING)
        verification = await self.verifier.check(session.command, snapshot)
        record.verification = verification
        session.last_verification = verification
        if self._cancelled(session):
            return

        if verification.satisfied and verification.confidence >= session.confidence_threshold:
            self._finish(session, ExecutionStatus.SATISFIED, verification.reason)
        else:
            self._log(
                f"Not satisfied yet (satisfied={verification.satisfied}, "
                f"confidence={verification.confidence:.2f}): {verification.reason}"
            )

    async def _run_navigation(self, session: ExecutionSession, action) -> None:
        if self._cancelled(session):
            return
        step_number = session.begin_step()
        record = StepRecord(step_number=step_number, action=action)
        session.last_action = action
        started = time.monotonic()

        self._enter(session, ExecutionPhase.PLANNING)
        self._log(f"Navigation command, loading {action.url} directly")
        self._enter(session, ExecutionPhase.EXECUTING)
        result: ActionExecResult = await self.executor.execute(self.view, action)
        record.success = result.success
        record.strategy = result.strategy
        record.error = result.as_error_message()
        record.duration_ms = int((time.monotonic() - started) * 1000)
        session.steps.append(record)

        if self._cancelled(session):
            return
        if result.success:
            self._finish(session, ExecutionStatus.SATISFIED, result.reason)
        else:
            session.last_error = record.error
            self._finish(session, ExecutionStatus.FAILED, result.reason)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def observe(self) -> Snapshot:
        """Capture a snapshot through the registry under this controller's caller id."""
        return await self.registry.request(
            self.caller_id,
            lambda: self.extractor.capture(self.view),
            timeout=self.config.observation_timeout,
        )

    def _cancelled(self, session: ExecutionSession) -> bool:
        if not self._cancel_requested:
            return False
        if not session.is_terminal:
            self._finish(session, ExecutionStatus.CANCELLED, "Stopped by user")
        return True

    def _enter(self, session: ExecutionSession, phase: ExecutionPhase) -> None:
        session.enter(phase)
        self._notify(session)

    def _finish(self, session: ExecutionSession, status: ExecutionStatus, reason: Optional[str]) -> None:
        session.finish(status, reason)
        self._log(f"Session {session.session_id}: {status.value} ({reason})")
        self._notify(session)

    def _notify(self, session: ExecutionSession) -> None:
        if self._status_callback is None:
            return
        try:
            self._status_callback(session)
        except Exception as exc:
            self._log(f"Status callback failed: {exc}")
