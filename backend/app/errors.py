"""Error taxonomy for runs, codecs, the workflow host and notifications."""

from __future__ import annotations


class ExactishError(Exception):
    """Base error: a short user-facing summary plus optional technical detail."""

    def __init__(self, summary: str, detail: str | None = None) -> None:
        super().__init__(summary)
        self.summary = summary
        self.detail = detail

    def __str__(self) -> str:
        return self.summary


class ValidationError(ExactishError):
    """Missing or invalid user input (no source image, bad iteration count)."""


class RunInProgressError(ValidationError):
    """Action needs an idle run but one is still in progress."""


class EncodingError(ExactishError):
    """Binary image source could not be read into a data URI."""


class DecodingError(ExactishError):
    """String is not a well-formed ``data:image/...;base64,`` payload."""


class RefinementError(ExactishError):
    """Any failure talking to the workflow host."""


class UploadError(RefinementError):
    pass


class InvocationError(RefinementError):
    pass


class RequestTimeoutError(RefinementError, TimeoutError):
    """A workflow phase exceeded its timeout and was aborted."""


class CompositionError(ExactishError):
    """Frames could not be assembled into an animation."""

    def __init__(self, summary: str, detail: str | None = None, index: int | None = None) -> None:
        super().__init__(summary, detail)
        self.index = index


class RelayError(ExactishError):
    """Email relay endpoint rejected the payload or was unreachable."""
