"""Iteration engine — the refinement loop and the session that owns it."""

from app.engine.orchestrator import IterationOrchestrator
from app.engine.session import RunSession

__all__ = [
    "IterationOrchestrator",
    "RunSession",
]
