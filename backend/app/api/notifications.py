"""Notification endpoints: persisted email address and the local alert feed."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from app.dependencies import get_session
from app.engine.session import RunSession
from app.models.requests import AlertPermissionRequest, NotificationEmailRequest
from app.models.responses import AlertPermissionResponse, AlertResponse, NotificationEmailResponse

router = APIRouter(prefix="/notifications")


@router.get("/email", response_model=NotificationEmailResponse)
async def get_email(session: RunSession = Depends(get_session)) -> NotificationEmailResponse:
    return NotificationEmailResponse(email=session.target.email_address)


@router.put("/email", response_model=NotificationEmailResponse)
async def set_email(
    req: NotificationEmailRequest,
    session: RunSession = Depends(get_session),
) -> NotificationEmailResponse:
    if req.email and "@" not in req.email:
        raise HTTPException(status_code=422, detail="Invalid email address")
    session.set_email(req.email)
    return NotificationEmailResponse(email=session.target.email_address)


@router.delete("/email", status_code=204)
async def clear_email(session: RunSession = Depends(get_session)) -> Response:
    session.set_email(None)
    return Response(status_code=204)


@router.post("/permission", response_model=AlertPermissionResponse)
async def set_permission(
    req: AlertPermissionRequest,
    session: RunSession = Depends(get_session),
) -> AlertPermissionResponse:
    return AlertPermissionResponse(granted=session.set_alerts_permission(req.granted))


@router.get("/alerts", response_model=list[AlertResponse])
async def list_alerts(session: RunSession = Depends(get_session)) -> list[AlertResponse]:
    return [AlertResponse(**a.to_dict()) for a in session.alerts.active()]


@router.delete("/alerts/{alert_id}", status_code=204)
async def dismiss_alert(alert_id: int, session: RunSession = Depends(get_session)) -> Response:
    if not session.alerts.dismiss(alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return Response(status_code=204)
