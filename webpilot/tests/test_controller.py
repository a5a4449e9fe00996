import asyncio

import pytest

from conftest import FakePageView
from webpilot.src.engine.controller import ExecutionController
from webpilot.src.executor.executor import ActionExecResult, ActionExecutor
from webpilot.src.utils.errors import ControllerBusyError, OracleCallError, OracleParseError, SessionStateError
from webpilot.src.utils.models import (
    ClickAction,
    ExecutionPhase,
    ExecutionSession,
    ExecutionStatus,
    NavigateAction,
    Snapshot,
    VerificationResult,
)


class _Extractor:
    def __init__(self):
        self.captures = 0

    async def capture(self, view):
        self.captures += 1
        return Snapshot(url=view.url, title=f"capture {self.captures}")


class _Planner:
    def __init__(self, actions=None):
        self.actions = list(actions or [])
        self.calls = []

    async def plan(self, command, snapshot):
        self.calls.append((command, snapshot))
        if self.actions:
            item = self.actions.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return ClickAction(selector="#next")


class _Verifier:
    def __init__(self, results=None, default=None):
        self.results = list(results or [])
        self.default = default or VerificationResult(satisfied=False, confidence=0.1, reason="nope")
        self.calls = []

    async def check(self, command, snapshot):
        self.calls.append((command, snapshot))
        return self.results.pop(0) if self.results else self.default


class _Executor:
    def __init__(self, results=None, on_execute=None):
        self.results = list(results or [])
        self.executed = []
        self.on_execute = on_execute

    async def execute(self, view, action):
        self.executed.append(action)
        if self.on_execute:
            self.on_execute(action)
        if self.results:
            return self.results.pop(0)
        return ActionExecResult(success=True, strategy="selector")


def _controller(fast_config, planner=None, verifier=None, executor=None, **kwargs):
    return ExecutionController(
        FakePageView(),
        planner or _Planner(),
        verifier or _Verifier(),
        executor=executor or _Executor(),
        extractor=_Extractor(),
        config=fast_config,
        **kwargs,
    )


def _satisfied(confidence=0.9):
    return VerificationResult(satisfied=True, confidence=confidence, reason="done")


class TestLoop:
    def test_satisfied_on_first_step(self, fast_config):
        verifier = _Verifier([_satisfied()])
        controller = _controller(fast_config, verifier=verifier)
        session = asyncio.run(controller.run("click next"))

        assert session.status is ExecutionStatus.SATISFIED
        assert session.step_count == 1
        assert session.phase is ExecutionPhase.DONE
        assert session.last_verification.confidence == 0.9
        assert session.steps[0].success is True
        assert controller.extractor.captures == 2

    def test_low_confidence_exhausts_budget(self, fast_config):
        planner = _Planner()
        verifier = _Verifier(default=VerificationResult(satisfied=True, confidence=0.5))
        controller = _controller(fast_config, planner=planner, verifier=verifier)
        session = asyncio.run(controller.run("do the thing", max_steps=4))

        assert session.status is ExecutionStatus.MAX_STEPS_REACHED
        assert session.step_count == 4
        assert len(planner.calls) == 4
        assert len(verifier.calls) == 4
        assert [step.step_number for step in session.steps] == [1, 2, 3, 4]

    def test_threshold_is_inclusive(self, fast_config):
        verifier = _Verifier([_satisfied(confidence=0.7)])
        session = asyncio.run(_controller(fast_config, verifier=verifier).run("x", confidence_threshold=0.7))
        assert session.status is ExecutionStatus.SATISFIED

    def test_unsatisfied_high_confidence_continues(self, fast_config):
        verifier = _Verifier([VerificationResult(satisfied=False, confidence=0.99), _satisfied()])
        session = asyncio.run(_controller(fast_config, verifier=verifier).run("x"))
        assert session.status is ExecutionStatus.SATISFIED
        assert session.step_count == 2

    def test_planner_failures_consume_steps_without_aborting(self, fast_config):
        planner = _Planner([OracleParseError("No valid action found"), OracleCallError("timeout")])
        verifier = _Verifier([_satisfied()])
        controller = _controller(fast_config, planner=planner, verifier=verifier)
        session = asyncio.run(controller.run("x"))

        assert session.status is ExecutionStatus.SATISFIED
        assert session.step_count == 3
        assert "No valid action" in session.steps[0].error
        assert session.steps[1].error == "timeout"
        assert len(verifier.calls) == 1

    def test_execution_failure_skips_verification(self, fast_config):
        executor = _Executor([ActionExecResult(success=False, reason_code="locator_unresolved", reason="nothing")])
        verifier = _Verifier([_satisfied()])
        controller = _controller(fast_config, executor=executor, verifier=verifier)
        session = asyncio.run(controller.run("x"))

        assert session.status is ExecutionStatus.SATISFIED
        assert session.step_count == 2
        assert session.steps[0].error.startswith("[locator_unresolved]")
        assert len(verifier.calls) == 1

    def test_all_steps_failing_ends_at_budget(self, fast_config):
        planner = _Planner([RuntimeError("boom")] * 3)
        session = asyncio.run(_controller(fast_config, planner=planner).run("x", max_steps=3))
        assert session.status is ExecutionStatus.MAX_STEPS_REACHED
        assert session.step_count == 3

    def test_step_count_never_exceeds_budget(self, fast_config):
        seen = []

        def record(session):
            seen.append((session.step_count, session.max_steps))

        controller = _controller(fast_config, status_callback=record)
        asyncio.run(controller.run("x", max_steps=2))
        assert seen
        assert all(count <= budget for count, budget in seen)


class TestCancellation:
    def test_cancel_before_start_of_cycle(self, fast_config):
        planner = _Planner()
        controller = _controller(fast_config, planner=planner)

        def stop_after_first_step(session):
            if session.phase is ExecutionPhase.CONTINUING:
                controller.cancel()

        controller._status_callback = stop_after_first_step
        session = asyncio.run(controller.run("x"))

        assert session.status is ExecutionStatus.CANCELLED
        assert session.step_count == 1
        assert len(planner.calls) == 1

    def test_cancel_during_execution_skips_verification(self, fast_config):
        verifier = _Verifier([_satisfied()])
        holder = {}
        executor = _Executor(on_execute=lambda action: holder["controller"].cancel())
        controller = _controller(fast_config, verifier=verifier, executor=executor)
        holder["controller"] = controller
        session = asyncio.run(controller.run("x"))

        assert session.status is ExecutionStatus.CANCELLED
        assert verifier.calls == []

    def test_cancel_wins_over_satisfied_verification(self, fast_config):
        holder = {}

        class CancellingVerifier(_Verifier):
            async def check(self, command, snapshot):
                holder["controller"].cancel()
                return _satisfied()

        controller = _controller(fast_config, verifier=CancellingVerifier())
        holder["controller"] = controller
        session = asyncio.run(controller.run("x"))
        assert session.status is ExecutionStatus.CANCELLED

    def test_cancel_during_failing_last_step_wins_over_budget(self, fast_config):
        holder = {}

        class CancelThenFail(_Planner):
            async def plan(self, command, snapshot):
                holder["controller"].cancel()
                raise RuntimeError("planner crashed")

        controller = _controller(fast_config, planner=CancelThenFail())
        holder["controller"] = controller
        session = asyncio.run(controller.run("x", max_steps=1))

        assert session.status is ExecutionStatus.CANCELLED
        assert session.step_count == 1
        assert session.steps[0].error == "planner crashed"

    def test_cancel_from_another_task(self, fast_config):
        fast_config.settle_delay = 0.05
        verifier = _Verifier(default=VerificationResult(satisfied=False, confidence=0.0))
        controller = _controller(fast_config, verifier=verifier)

        async def scenario():
            task = asyncio.ensure_future(controller.run("x", max_steps=50))
            await asyncio.sleep(0.02)
            controller.cancel()
            return await task

        session = asyncio.run(scenario())
        assert session.status is ExecutionStatus.CANCELLED
        assert session.step_count < 50


class TestNavigationShortcut:
    def test_go_to_loads_directly_without_verification(self, fast_config):
        planner = _Planner()
        verifier = _Verifier()
        executor = _Executor()
        controller = _controller(fast_config, planner=planner, verifier=verifier, executor=executor)
        session = asyncio.run(controller.run("go to example.com"))

        assert session.status is ExecutionStatus.SATISFIED
        assert executor.executed == [NavigateAction(url="https://www.example.com")]
        assert planner.calls == []
        assert verifier.calls == []
        assert session.step_count == 1

    def test_load_failure_fails_session(self, fast_config):
        executor = _Executor([ActionExecResult(success=False, reason_code="navigation_failed", reason="dns")])
        session = asyncio.run(_controller(fast_config, executor=executor).run("go to nowhere.invalid"))
        assert session.status is ExecutionStatus.FAILED
        assert "dns" in session.reason

    def test_with_real_executor_and_timeout(self, fast_config):
        view = FakePageView(load_outcome="hang")
        controller = ExecutionController(
            view,
            _Planner(),
            _Verifier(),
            executor=ActionExecutor(fast_config),
            extractor=_Extractor(),
            config=fast_config,
        )
        session = asyncio.run(controller.run("go to example.com"))
        assert session.status is ExecutionStatus.SATISFIED
        assert view.loaded == ["https://www.example.com"]


class TestSessionModel:
    def test_terminal_session_cannot_be_resurrected(self):
        session = ExecutionSession(session_id="s1", command="x")
        session.finish(ExecutionStatus.CANCELLED)
        with pytest.raises(SessionStateError):
            session.finish(ExecutionStatus.SATISFIED)
        with pytest.raises(SessionStateError):
            session.begin_step()

    def test_begin_step_respects_budget(self):
        session = ExecutionSession(session_id="s1", command="x", max_steps=1)
        assert session.begin_step() == 1
        with pytest.raises(SessionStateError):
            session.begin_step()

    def test_concurrent_run_is_rejected(self, fast_config):
        fast_config.settle_delay = 0.05
        controller = _controller(fast_config)

        async def scenario():
            task = asyncio.ensure_future(controller.run("x", max_steps=2))
            await asyncio.sleep(0)
            with pytest.raises(ControllerBusyError):
                await controller.run("y")
            return await task

        session = asyncio.run(scenario())
        assert session.command == "x"
