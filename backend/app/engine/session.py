"""RunSession — the single in-process session the API renders.

Holds what the browser app kept in component state: the source image, the
chosen iteration count, the current IterationRun and the NotificationTarget.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from typing import Any

from app.config import MAX_ITERATION_COUNT, RuntimeConfig
from app.engine.orchestrator import IterationOrchestrator
from app.errors import RunInProgressError, ValidationError
from app.models.artifacts import BinaryImage, IterationRun, NotificationTarget, RunState
from app.notify.alerts import LocalAlertChannel
from app.notify.preferences import PreferenceStore

logger = logging.getLogger(__name__)

_SENTINEL = object()  # marks end of queue


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.warning("Run task was cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Run task crashed: %s", exc, exc_info=exc)


class RunSession:
    def __init__(
        self,
        config: RuntimeConfig,
        orchestrator: IterationOrchestrator,
        preferences: PreferenceStore,
        alerts: LocalAlertChannel | None = None,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator
        self.preferences = preferences
        self.alerts = alerts or LocalAlertChannel()
        self.source_image: BinaryImage | None = None
        self.iteration_count = config.default_iteration_count
        self.run = IterationRun(target_iteration_count=self.iteration_count)
        # Persisted address seeds the target once; later changes go through set_email()
        self.target = NotificationTarget(email_address=preferences.load_email())
        self._task: asyncio.Task | None = None

    # ── Inputs ────────────────────────────────────────────

    def set_source_image(self, image: BinaryImage | None) -> None:
        self._ensure_idle("change the source image")
        self.source_image = image
        self.run.reset()
        self.run.source_image = image

    def set_iteration_count(self, count: int) -> None:
        if not self.config.show_iteration_control:
            raise PermissionError("Iteration count is fixed by configuration")
        if not 1 <= count <= MAX_ITERATION_COUNT:
            raise ValidationError(f"Iteration count must be between 1 and {MAX_ITERATION_COUNT}")
        self.iteration_count = count
        if self.run.run_state != RunState.RUNNING:
            self.run.target_iteration_count = count

    def set_email(self, email: str | None) -> None:
        email = (email or "").strip() or None
        self.target.email_address = email
        self.preferences.save_email(email)

    def set_alerts_permission(self, granted: bool) -> bool:
        self.target.browser_alerts_enabled = self.alerts.request_permission(granted)
        return self.target.browser_alerts_enabled

    # ── Runs ──────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self.run.run_state == RunState.RUNNING

    def start(self) -> IterationRun:
        return self.orchestrator.start(self.run, self.source_image, self.iteration_count)

    async def run_to_completion(self) -> IterationRun:
        self.start()
        return await self.orchestrator.run(self.run, self.target)

    async def stream(self) -> AsyncGenerator[dict[str, Any], None]:
        """Drive the run started by ``start()`` in a background task and yield its progress events.

        The task keeps going if the consumer disconnects, so the run always
        reaches a terminal state.
        """
        if not self.is_running:
            raise ValidationError("Run has not been started")
        queue: asyncio.Queue = asyncio.Queue()

        async def _drive() -> None:
            try:
                async for event in self.orchestrator.run_streaming(self.run, self.target):
                    queue.put_nowait(event)
            finally:
                queue.put_nowait(_SENTINEL)

        self._task = asyncio.create_task(_drive())
        self._task.add_done_callback(_log_task_failure)
        while True:
            item = await queue.get()
            if item is _SENTINEL:
                break
            yield item

    def reset(self) -> IterationRun:
        return self.orchestrator.reset(self.run)

    def _ensure_idle(self, action: str) -> None:
        if self.is_running:
            raise RunInProgressError(f"Cannot {action} while a run is in progress")
