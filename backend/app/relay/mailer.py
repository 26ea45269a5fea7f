"""SendGrid delivery for the email relay endpoint."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any

from python_http_client.exceptions import HTTPError as SendGridHTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, ReplyTo

from app.config import Settings
from app.errors import RelayError

logger = logging.getLogger(__name__)

APP_NAME = "Exactish App"


@dataclass(frozen=True)
class RelayMessage:
    email: str
    subject: str
    message: str
    image_data: str | None = None


def render_html(msg: RelayMessage) -> str:
    subject = html.escape(msg.subject)
    body = html.escape(msg.message)
    image_block = ""
    if msg.image_data and msg.image_data.startswith("data:image/"):
        src = html.escape(msg.image_data, quote=True)
        image_block = f"""
      <div style="margin: 20px 0;">
        <p style="margin-bottom: 10px; font-weight: bold;">Your processed image:</p>
        <img src="{src}" alt="Processed Image" style="max-width: 100%; border-radius: 8px; box-shadow: 0 4px 6px rgba(0, 0, 0, 0.1);" />
      </div>"""
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #6366f1;">{subject}</h2>
      <p>{body}</p>{image_block}
      <p style="margin-top: 20px; font-size: 0.9em; color: #666;">
        This email was sent from the {APP_NAME}.
      </p>
    </div>
    """


def build_mail(msg: RelayMessage, s: Settings) -> Mail:
    mail = Mail(
        from_email=s.sendgrid_from_email,
        to_emails=msg.email,
        subject=msg.subject,
        plain_text_content=msg.message,
        html_content=render_html(msg),
    )
    reply_to = s.sendgrid_reply_email or s.sendgrid_from_email
    if reply_to:
        mail.reply_to = ReplyTo(reply_to)
    return mail


def add_marketing_contact(client: SendGridAPIClient, email: str, list_id: str) -> None:
    """Upsert the recipient into the marketing list. Never raises."""
    body: dict[str, Any] = {
        "contacts": [
            {"email": email, "first_name": email.split("@")[0], "custom_fields": {}},
        ],
    }
    if list_id:
        body["list_ids"] = [list_id]
    try:
        response = client.client.marketing.contacts.put(request_body=body)
        logger.info("Added %s to marketing contacts (HTTP %s)", email, response.status_code)
    except SendGridHTTPError as e:
        if e.status_code == 403:
            logger.warning(
                "Marketing contacts permission denied; the SendGrid API key needs "
                "Marketing > Contacts access"
            )
        else:
            logger.error("Error adding contact to list: %s %s", e.status_code, e.body)
    except Exception:
        logger.exception("Error adding contact to list")


def send_relay_message(msg: RelayMessage, s: Settings) -> int:
    """Send through SendGrid. Returns the provider status code; raises RelayError."""
    if not s.sendgrid_api_key:
        raise RelayError("SendGrid API key is not configured")

    client = SendGridAPIClient(s.sendgrid_api_key)
    logger.info("Sending email via SendGrid to %s (image=%s)", msg.email, bool(msg.image_data))
    try:
        response = client.send(build_mail(msg, s))
    except SendGridHTTPError as e:
        logger.error("SendGrid error %s: %s", e.status_code, e.body)
        detail = e.body.decode("utf-8", errors="replace") if isinstance(e.body, bytes) else str(e.body)
        raise RelayError(f"SendGrid rejected the message (HTTP {e.status_code})", detail=detail) from e

    if s.sendgrid_enable_marketing:
        add_marketing_contact(client, msg.email, s.sendgrid_marketing_list_id)
    else:
        logger.debug("Marketing contacts disabled")
    return response.status_code
