"""Run state: the image handle, produced artifacts, and the run record.

ImageArtifact → one entry per successful step (index 0 is the seed upload)
IterationRun  → mutable state of one user-triggered run
NotificationTarget → where completion/failure notices go; outlives runs
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BinaryImage:
    """Raw image bytes plus the media type and filename used for uploads."""

    data: bytes
    media_type: str = "image/png"
    filename: str = "iteration.png"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ImageArtifact:
    sequence_index: int
    encoded_image: str  # data:image/...;base64,...
    captured_at: datetime = field(default_factory=utc_now)

    def to_dict(self, include_image: bool = True) -> dict[str, Any]:
        out: dict[str, Any] = {
            "sequence_index": self.sequence_index,
            "captured_at": self.captured_at.isoformat(),
        }
        if include_image:
            out["encoded_image"] = self.encoded_image
        return out


class RunState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SUCCEEDED, RunState.FAILED)


@dataclass
class IterationRun:
    """State of one run. History includes the seed at index 0."""

    source_image: BinaryImage | None = None
    target_iteration_count: int = 1
    completed_count: int = 0
    history: list[ImageArtifact] = field(default_factory=list)
    run_state: RunState = RunState.IDLE
    failure_detail: str | None = None
    # 1-based step whose refinement call failed
    failed_step: int | None = None

    def append(self, artifact: ImageArtifact) -> None:
        expected = len(self.history)
        if artifact.sequence_index != expected:
            raise ValueError(
                f"artifact index {artifact.sequence_index} out of order (expected {expected})"
            )
        self.history.append(artifact)

    def latest_image(self) -> ImageArtifact | None:
        return self.history[-1] if self.history else None

    def reset(self) -> None:
        """Back to Idle; keeps the source image and target count."""
        self.history = []
        self.completed_count = 0
        self.run_state = RunState.IDLE
        self.failure_detail = None
        self.failed_step = None

    def to_dict(self, include_images: bool = True) -> dict[str, Any]:
        return {
            "run_state": self.run_state.value,
            "target_iteration_count": self.target_iteration_count,
            "completed_count": self.completed_count,
            "failure_detail": self.failure_detail,
            "failed_step": self.failed_step,
            "has_source_image": self.source_image is not None,
            "history": [a.to_dict(include_image=include_images) for a in self.history],
        }


@dataclass
class NotificationTarget:
    email_address: str | None = None
    browser_alerts_enabled: bool = False

    def snapshot(self) -> NotificationTarget:
        return replace(self)
