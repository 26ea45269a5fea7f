"""Tests for the iteration orchestrator state machine."""

from __future__ import annotations

import base64
import io

import pytest
from PIL import Image

from app.engine.orchestrator import IterationOrchestrator
from app.errors import EncodingError, RequestTimeoutError, RunInProgressError, UploadError, ValidationError
from app.imaging import codec
from app.models.artifacts import BinaryImage, IterationRun, NotificationTarget, RunState
from app.notify.dispatcher import NotificationDispatcher
from tests.conftest import FakeRefiner, RecordingRelay, make_data_uri


class SpyDispatcher:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.successes: list[tuple[NotificationTarget, IterationRun]] = []
        self.failures: list[tuple[NotificationTarget, IterationRun]] = []

    async def notify_success(self, target, run):
        self.successes.append((target, run))
        if self.error:
            raise self.error

    async def notify_failure(self, target, run):
        self.failures.append((target, run))
        if self.error:
            raise self.error


async def run_once(orchestrator, source_image, count, target=None) -> IterationRun:
    run = IterationRun()
    orchestrator.start(run, source_image, count)
    return await orchestrator.run(run, target or NotificationTarget())


@pytest.mark.asyncio
class TestSuccessfulRun:
    @pytest.mark.parametrize("count", [1, 3, 5])
    async def test_history_has_seed_plus_one_per_step(self, source_image, count):
        refiner = FakeRefiner()
        run = await run_once(IterationOrchestrator(refiner), source_image, count)

        assert run.run_state == RunState.SUCCEEDED
        assert run.completed_count == count
        assert len(run.history) == count + 1
        assert [a.sequence_index for a in run.history] == list(range(count + 1))
        assert len(refiner.calls) == count

    async def test_seed_is_source_image(self, source_image):
        run = await run_once(IterationOrchestrator(FakeRefiner()), source_image, 1)
        assert run.history[0].encoded_image == codec.encode(source_image)

    async def test_each_step_refines_previous_output(self, source_image):
        refiner = FakeRefiner()
        run = await run_once(IterationOrchestrator(refiner), source_image, 3)

        assert refiner.calls[0] is source_image
        for k in (1, 2):
            assert refiner.calls[k].data == codec.decode(run.history[k].encoded_image).data

    async def test_failure_fields_clear(self, source_image):
        run = await run_once(IterationOrchestrator(FakeRefiner()), source_image, 2)
        assert run.failure_detail is None
        assert run.failed_step is None


@pytest.mark.asyncio
class TestFailedRun:
    async def test_timeout_at_step_three(self, source_image):
        outcomes = [make_data_uri((1, 1, 1)), make_data_uri((2, 2, 2)), RequestTimeoutError("Request timed out after 180 seconds")]
        refiner = FakeRefiner(outcomes + [make_data_uri((4, 4, 4))] * 2)
        run = await run_once(IterationOrchestrator(refiner), source_image, 5)

        assert run.run_state == RunState.FAILED
        assert len(run.history) == 3
        assert run.completed_count == 2
        assert run.failed_step == 3
        assert "iteration 3" in run.failure_detail
        assert "timed out" in run.failure_detail
        # No further remote calls after the failing step
        assert len(refiner.calls) == 3

    async def test_failure_on_first_step_keeps_seed(self, source_image):
        refiner = FakeRefiner([UploadError("File upload failed (Status 500): Internal Server Error")])
        run = await run_once(IterationOrchestrator(refiner), source_image, 3)

        assert run.run_state == RunState.FAILED
        assert len(run.history) == 1
        assert run.failure_detail.startswith("Error in iteration 1: File upload failed")
        assert run.failure_detail.endswith("contact support if the issue persists.")

    async def test_undecodable_result(self, source_image):
        refiner = FakeRefiner(["data:image/png;base64,!!!"])
        run = await run_once(IterationOrchestrator(refiner), source_image, 2)

        assert run.run_state == RunState.FAILED
        assert run.failed_step == 1
        assert len(run.history) == 1

    async def test_unexpected_exception_is_contained(self, source_image):
        refiner = FakeRefiner([RuntimeError("socket exploded")])
        run = await run_once(IterationOrchestrator(refiner), source_image, 1)
        assert run.run_state == RunState.FAILED
        assert "socket exploded" in run.failure_detail


class TestStartValidation:
    def test_unreadable_seed_is_rejected_at_start(self):
        refiner = FakeRefiner()
        run = IterationRun()
        bad = BinaryImage(data=b"not an image", media_type="")
        with pytest.raises(EncodingError):
            IterationOrchestrator(refiner).start(run, bad, 2)

        assert run.run_state == RunState.IDLE
        assert run.history == []
        assert refiner.calls == []

    def test_no_source_image(self):
        run = IterationRun()
        with pytest.raises(ValidationError, match="upload an image"):
            IterationOrchestrator(FakeRefiner()).start(run, None, 3)
        assert run.run_state == RunState.IDLE

    def test_count_below_one(self, source_image):
        run = IterationRun()
        with pytest.raises(ValidationError):
            IterationOrchestrator(FakeRefiner()).start(run, source_image, 0)
        assert run.run_state == RunState.IDLE

    def test_already_running(self, source_image):
        orchestrator = IterationOrchestrator(FakeRefiner())
        run = IterationRun()
        orchestrator.start(run, source_image, 2)
        with pytest.raises(RunInProgressError, match="already in progress"):
            orchestrator.start(run, source_image, 2)

    def test_start_replaces_previous_history_with_seed(self, source_image):
        orchestrator = IterationOrchestrator(FakeRefiner())
        run = IterationRun()
        run.history = [object()]
        run.run_state = RunState.FAILED
        run.failure_detail = "old"
        orchestrator.start(run, source_image, 2)
        assert [a.sequence_index for a in run.history] == [0]
        assert run.history[0].encoded_image == codec.encode(source_image)
        assert run.completed_count == len(run.history) - 1
        assert run.failure_detail is None
        assert run.run_state == RunState.RUNNING


@pytest.mark.asyncio
class TestReset:
    async def test_reset_keeps_source(self, source_image):
        orchestrator = IterationOrchestrator(FakeRefiner())
        run = await run_once(orchestrator, source_image, 2)
        orchestrator.reset(run)

        assert run.run_state == RunState.IDLE
        assert run.history == []
        assert run.completed_count == 0
        assert run.source_image is source_image

    async def test_reset_while_running(self, source_image):
        orchestrator = IterationOrchestrator(FakeRefiner())
        run = IterationRun()
        orchestrator.start(run, source_image, 2)
        with pytest.raises(ValidationError):
            orchestrator.reset(run)


@pytest.mark.asyncio
class TestStreaming:
    async def test_event_sequence(self, source_image):
        orchestrator = IterationOrchestrator(FakeRefiner())
        run = IterationRun()
        orchestrator.start(run, source_image, 2)
        events = [e async for e in orchestrator.run_streaming(run, NotificationTarget())]

        assert [e["status"] for e in events] == ["started", "running", "step", "running", "step", "succeeded"]
        assert events[-1]["run_state"] == "succeeded"
        assert events[2]["artifact"]["sequence_index"] == 1

    async def test_completed_tracks_history(self, source_image):
        orchestrator = IterationOrchestrator(FakeRefiner())
        run = IterationRun()
        orchestrator.start(run, source_image, 3)
        async for event in orchestrator.run_streaming(run, NotificationTarget()):
            if event["status"] == "step":
                assert event["completed"] == len(run.history) - 1

    async def test_failed_event(self, source_image):
        orchestrator = IterationOrchestrator(FakeRefiner([make_data_uri(), UploadError("nope")]))
        run = IterationRun()
        orchestrator.start(run, source_image, 3)
        events = [e async for e in orchestrator.run_streaming(run, NotificationTarget())]

        assert events[-1]["status"] == "failed"
        assert events[-1]["step"] == 2
        assert "iteration 2" in events[-1]["error"]

    async def test_not_started(self, source_image):
        orchestrator = IterationOrchestrator(FakeRefiner())
        with pytest.raises(ValidationError):
            async for _ in orchestrator.run_streaming(IterationRun(), NotificationTarget()):
                pass


@pytest.mark.asyncio
class TestNotifications:
    async def test_success_notifies_once(self, source_image):
        spy = SpyDispatcher()
        await run_once(IterationOrchestrator(FakeRefiner(), spy), source_image, 2)
        assert len(spy.successes) == 1
        assert spy.failures == []

    async def test_failure_notifies_once(self, source_image):
        spy = SpyDispatcher()
        await run_once(IterationOrchestrator(FakeRefiner([UploadError("x")]), spy), source_image, 2)
        assert len(spy.failures) == 1
        assert spy.successes == []

    async def test_dispatcher_error_does_not_change_outcome(self, source_image):
        spy = SpyDispatcher(error=RuntimeError("smtp down"))
        run = await run_once(IterationOrchestrator(FakeRefiner(), spy), source_image, 2)
        assert run.run_state == RunState.SUCCEEDED

    async def test_target_snapshot_taken_at_start(self, source_image):
        spy = SpyDispatcher()
        target = NotificationTarget(email_address="a@example.com")
        orchestrator = IterationOrchestrator(FakeRefiner(), spy)
        run = IterationRun()
        orchestrator.start(run, source_image, 2)

        async for event in orchestrator.run_streaming(run, target):
            if event["status"] == "started":
                target.email_address = "b@example.com"

        (notified, _), = spy.successes
        assert notified.email_address == "a@example.com"


@pytest.mark.asyncio
async def test_three_step_run_emails_four_frame_gif(source_image):
    """End to end through the real dispatcher and GIF builder."""
    relay = RecordingRelay()
    dispatcher = NotificationDispatcher(email=relay)
    target = NotificationTarget(email_address="user@example.com")
    run = await run_once(IterationOrchestrator(FakeRefiner(), dispatcher), source_image, 3, target)

    assert run.run_state == RunState.SUCCEEDED
    (sent,) = relay.sent
    assert sent.email == "user@example.com"
    assert sent.subject == "Your Image Processing is Complete"
    assert sent.image_data.startswith("data:image/gif;base64,")

    gif = Image.open(io.BytesIO(base64.b64decode(sent.image_data.split(",", 1)[1])))
    assert gif.n_frames == 4
