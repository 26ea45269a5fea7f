"""Iteration orchestrator — drives N sequential refinement calls for one run.

State machine per run: Idle → Running → {Succeeded, Failed}.

Step k (1-based) refines the output of step k-1; steps never overlap. Every
remote or codec error is caught at the step boundary and turned into the run's
failure detail, so nothing escapes ``run()`` / ``run_streaming()``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from typing import Any

from app.errors import RunInProgressError, ValidationError
from app.imaging import codec
from app.langflow.client import Refiner
from app.models.artifacts import (
    BinaryImage,
    ImageArtifact,
    IterationRun,
    NotificationTarget,
    RunState,
    utc_now,
)
from app.notify.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

_SUPPORT_HINT = "Please try again later or contact support if the issue persists."


def step_failure_detail(step: int, error: BaseException) -> str:
    return f"Error in iteration {step}: {_describe(error)}. {_SUPPORT_HINT}"


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class IterationOrchestrator:
    """Runs refinement loops. One instance can serve many runs, one at a time."""

    def __init__(
        self,
        refiner: Refiner,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.refiner = refiner
        self.dispatcher = dispatcher
        self.clock = clock

    def start(
        self,
        run: IterationRun,
        source_image: BinaryImage | None,
        iteration_count: int,
    ) -> IterationRun:
        """Validate and move ``run`` to Running with the seed at index 0.

        Nothing changes on ``run`` if validation or seed encoding fails.
        """
        if source_image is None:
            raise ValidationError("Please upload an image first")
        if iteration_count < 1:
            raise ValidationError("Iteration count must be at least 1")
        if run.run_state == RunState.RUNNING:
            raise RunInProgressError("A run is already in progress")

        seed_uri = codec.encode(source_image)

        run.source_image = source_image
        run.target_iteration_count = iteration_count
        run.reset()
        run.append(ImageArtifact(sequence_index=0, encoded_image=seed_uri, captured_at=self.clock()))
        run.run_state = RunState.RUNNING
        return run

    async def run(self, run: IterationRun, target: NotificationTarget) -> IterationRun:
        """Drive a started run to a terminal state."""
        async for _ in self.run_streaming(run, target):
            pass
        return run

    async def run_streaming(
        self, run: IterationRun, target: NotificationTarget
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Drive a started run, yielding a progress event at every step boundary.

        ``run`` is mutated in place; once the generator is exhausted it holds
        the terminal state (same as ``run()``).
        """
        if run.run_state != RunState.RUNNING:
            raise ValidationError("Run has not been started")

        total = run.target_iteration_count
        start = time.perf_counter()
        target = target.snapshot()

        logger.info("Run started: %d iterations", total)
        yield self._event("started", run, step=0, start=start, artifact=run.history[0])

        current = run.source_image
        for step in range(1, total + 1):
            t0 = time.perf_counter()
            yield self._event("running", run, step=step, start=start)
            try:
                result_uri = await self.refiner.refine(current)
                current = codec.decode(result_uri)
            except Exception as e:
                logger.warning("Iteration %d FAILED: %s", step, e)
                self._fail(run, step, step_failure_detail(step, e))
                yield self._event("failed", run, step=step, error=run.failure_detail, start=start)
                await self._notify_failure(target, run)
                return

            artifact = ImageArtifact(sequence_index=step, encoded_image=result_uri, captured_at=self.clock())
            run.append(artifact)
            run.completed_count = step
            logger.debug("Iteration %d completed in %.1fms", step, (time.perf_counter() - t0) * 1000)
            yield self._event("step", run, step=step, start=start, artifact=artifact)

        run.run_state = RunState.SUCCEEDED
        logger.info(
            "Run complete: %d/%d iterations in %.0fms",
            run.completed_count,
            total,
            (time.perf_counter() - start) * 1000,
        )
        yield self._event("succeeded", run, step=total, start=start)
        await self._notify_success(target, run)

    def reset(self, run: IterationRun) -> IterationRun:
        if run.run_state == RunState.RUNNING:
            raise RunInProgressError("Cannot reset while a run is in progress")
        run.reset()
        return run

    def _fail(self, run: IterationRun, step: int, detail: str) -> None:
        run.run_state = RunState.FAILED
        run.failed_step = step
        run.failure_detail = detail

    def _event(
        self,
        status: str,
        run: IterationRun,
        step: int,
        start: float,
        error: str | None = None,
        artifact: ImageArtifact | None = None,
    ) -> dict[str, Any]:
        event: dict[str, Any] = {
            "status": status,
            "step": step,
            "total": run.target_iteration_count,
            "completed": run.completed_count,
            "run_state": run.run_state.value,
            "elapsed_ms": round((time.perf_counter() - start) * 1000, 1),
            "error": error or "",
        }
        if artifact is not None:
            event["artifact"] = artifact.to_dict()
        return event

    async def _notify_success(self, target: NotificationTarget, run: IterationRun) -> None:
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.notify_success(target, run)
        except Exception:
            logger.exception("Completion notification failed")

    async def _notify_failure(self, target: NotificationTarget, run: IterationRun) -> None:
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.notify_failure(target, run)
        except Exception:
            logger.exception("Failure notification failed")
