"""Notification dispatcher — local alerts + email on run completion/failure.

Both channels are best-effort: nothing raised here reaches the orchestrator.
Success email attachment fallback chain (exactly one email is sent):
  1. GIF of the full history
  2. on CompositionError → the last artifact's image
  3. no artifacts at all → no attachment
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from app.errors import CompositionError, RelayError
from app.imaging.compositor import gif_data_uri
from app.models.artifacts import ImageArtifact, IterationRun, NotificationTarget
from app.notify.alerts import LocalAlertChannel
from app.notify.email import EmailNotification, EmailRelayClient

logger = logging.getLogger(__name__)

SUCCESS_SUBJECT = "Your Image Processing is Complete"
ERROR_SUBJECT = "Error Processing Your Image"

ATTACH_GIF = "gif"
ATTACH_LAST_FRAME = "last_frame"
ATTACH_NONE = "none"

GifBuilder = Callable[[Sequence[ImageArtifact]], str]


class NotificationDispatcher:
    def __init__(
        self,
        alerts: LocalAlertChannel | None = None,
        email: EmailRelayClient | None = None,
        gif_builder: GifBuilder = gif_data_uri,
    ) -> None:
        self.alerts = alerts
        self.email = email
        self.gif_builder = gif_builder

    async def notify_success(self, target: NotificationTarget, run: IterationRun) -> str | None:
        """Fire completion notices. Returns the attachment kind emailed, if any."""
        n = run.target_iteration_count
        self._alert(
            target,
            "Image Processing Complete",
            f"Successfully completed {n} iterations of your image.",
        )
        if not target.email_address:
            logger.info("No notification email set; skipping completion email")
            return None

        history = list(run.history)
        base = f"Your image processing has completed successfully with {n} iterations."
        kind, image_data = await self._build_attachment(history)
        if kind == ATTACH_GIF:
            message = f"{base} We've attached a GIF showing all iterations of your image."
        elif kind == ATTACH_LAST_FRAME:
            message = f"{base} We've attached the final result of your image processing."
        else:
            message = f"{base} Unfortunately, we couldn't generate an image attachment."

        await self._send(
            EmailNotification(
                email=target.email_address,
                subject=SUCCESS_SUBJECT,
                message=message,
                image_data=image_data,
            )
        )
        return kind

    async def notify_failure(self, target: NotificationTarget, run: IterationRun) -> None:
        step = run.failed_step
        if step:
            alert_body = (
                f"There was an error processing your image in iteration {step}. "
                "Please check the application for details."
            )
            message = (
                f"There was an error processing your image in iteration {step}. "
                "Please try again with a different image."
            )
        else:
            alert_body = "There was an error processing your image. Please check the application for details."
            message = "There was an error processing your image. Please try again with a different image."

        self._alert(target, "Image Processing Error", alert_body)
        if not target.email_address:
            return
        await self._send(
            EmailNotification(email=target.email_address, subject=ERROR_SUBJECT, message=message)
        )

    async def _build_attachment(self, history: list[ImageArtifact]) -> tuple[str, str | None]:
        if not history:
            logger.warning("No images in history; sending email without attachment")
            return ATTACH_NONE, None
        try:
            gif = await asyncio.to_thread(self.gif_builder, history)
            logger.info("Built GIF attachment from %d frames (%d chars)", len(history), len(gif))
            return ATTACH_GIF, gif
        except CompositionError as e:
            logger.warning("GIF creation failed (%s); attaching final image instead", e)
        except Exception:
            logger.exception("Unexpected error building GIF; attaching final image instead")
        return ATTACH_LAST_FRAME, history[-1].encoded_image

    def _alert(self, target: NotificationTarget, title: str, body: str) -> None:
        if self.alerts is None or not target.browser_alerts_enabled:
            return
        try:
            self.alerts.notify(title, body)
        except Exception:
            logger.exception("Failed to post local alert %r", title)

    async def _send(self, notification: EmailNotification) -> None:
        if self.email is None:
            logger.warning("No email relay configured; dropping %r", notification.subject)
            return
        try:
            await self.email.send(notification)
        except RelayError as e:
            logger.error("Email relay failed for %s: %s (%s)", notification.email, e, e.detail)
        except Exception:
            logger.exception("Unexpected error sending email to %s", notification.email)
