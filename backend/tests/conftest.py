"""Shared test fixtures."""

from __future__ import annotations

import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from app.config import RuntimeConfig
from app.models.artifacts import BinaryImage, ImageArtifact
from app.notify.email import EmailNotification


# Distinct solid colors so consecutive frames never coincide
FRAME_COLORS = [
    (220, 20, 60),
    (30, 144, 255),
    (50, 205, 50),
    (255, 215, 0),
    (138, 43, 226),
    (255, 140, 0),
    (0, 206, 209),
    (128, 128, 128),
]


def make_png(color: tuple[int, int, int] = FRAME_COLORS[0], size: tuple[int, int] = (64, 64)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def make_data_uri(color: tuple[int, int, int] = FRAME_COLORS[0], size: tuple[int, int] = (64, 64)) -> str:
    return "data:image/png;base64," + base64.b64encode(make_png(color, size)).decode("ascii")


def make_history(n_frames: int) -> list[ImageArtifact]:
    return [
        ImageArtifact(sequence_index=i, encoded_image=make_data_uri(FRAME_COLORS[i % len(FRAME_COLORS)]))
        for i in range(n_frames)
    ]


def make_config(**overrides) -> RuntimeConfig:
    values = dict(
        workflow_base_url="http://langflow.test",
        flow_id="flow-123",
        image_component_key="ImageFile-GJs3c",
        email_endpoint="/api/send-email",
        default_iteration_count=3,
        show_iteration_control=True,
    )
    values.update(overrides)
    return RuntimeConfig(**values)


class FakeRefiner:
    """Stands in for LangflowClient. Outcomes are data URIs or exceptions to raise."""

    def __init__(self, outcomes: list[str | BaseException] | None = None) -> None:
        self.outcomes = outcomes
        self.calls: list[BinaryImage] = []

    async def refine(self, image: BinaryImage) -> str:
        self.calls.append(image)
        step = len(self.calls)
        if self.outcomes is None:
            return make_data_uri(FRAME_COLORS[step % len(FRAME_COLORS)])
        outcome = self.outcomes[step - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingRelay:
    """Stands in for EmailRelayClient."""

    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error
        self.sent: list[EmailNotification] = []

    async def send(self, notification: EmailNotification) -> dict:
        self.sent.append(notification)
        if self.error is not None:
            raise self.error
        return {"message": "Email sent successfully", "recipient": notification.email}


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def source_image(png_bytes: bytes) -> BinaryImage:
    return BinaryImage(data=png_bytes, media_type="image/png", filename="seed.png")


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"
