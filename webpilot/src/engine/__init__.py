"""Command execution engine."""
from webpilot.src.engine.controller import ExecutionController, PlanningOracle, VerificationOracle
from webpilot.src.engine.registry import SessionRegistry

__all__ = ["ExecutionController", "PlanningOracle", "VerificationOracle", "SessionRegistry"]
