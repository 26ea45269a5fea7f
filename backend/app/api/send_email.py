"""POST /send-email — relay a notification through SendGrid.

Mounted at /api/send-email (Vercel layout) and /.netlify/functions/send-email
(Netlify layout). Every response carries a permissive CORS origin header.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from app.config import Settings
from app.dependencies import get_settings
from app.errors import RelayError
from app.models.requests import SendEmailRequest
from app.models.responses import SendEmailResponse
from app.relay.mailer import RelayMessage, send_relay_message

logger = logging.getLogger(__name__)

router = APIRouter()

_CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Max-Age": "86400",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status: int, error: str, details: str | None = None) -> JSONResponse:
    body: dict[str, str] = {"error": error}
    if details is not None:
        body["details"] = details
        body["timestamp"] = _now()
    return JSONResponse(body, status_code=status, headers=_CORS_HEADERS)


@router.options("/send-email")
async def send_email_preflight() -> Response:
    return Response(status_code=204, headers=_PREFLIGHT_HEADERS)


@router.api_route("/send-email", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def send_email_not_allowed() -> JSONResponse:
    return _error(405, "Method Not Allowed")


@router.post("/send-email", response_model=SendEmailResponse)
async def send_email(req: SendEmailRequest, s: Settings = Depends(get_settings)) -> JSONResponse:
    logger.info(
        "send-email: to=%s subject=%r message_len=%d image=%s",
        req.email,
        req.subject,
        len(req.message or ""),
        bool(req.imageData),
    )
    if not req.email or not req.subject or not req.message:
        return _error(400, "Missing required fields")
    if not s.sendgrid_api_key:
        logger.error("SENDGRID_API_KEY is not configured")
        return _error(500, "SendGrid API key is not configured")

    msg = RelayMessage(email=req.email, subject=req.subject, message=req.message, image_data=req.imageData)
    try:
        await asyncio.to_thread(send_relay_message, msg, s)
    except RelayError as e:
        return _error(500, "Error sending email", e.detail or e.summary)
    except Exception as e:
        logger.exception("Error in send-email")
        return _error(500, "Error sending email", str(e))

    body = SendEmailResponse(message="Email sent successfully", recipient=req.email, timestamp=_now())
    return JSONResponse(body.model_dump(), status_code=200, headers=_CORS_HEADERS)
