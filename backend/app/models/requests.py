"""API request models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class IterationCountRequest(BaseModel):
    count: int = Field(..., description="Number of refinement iterations to run")


class NotificationEmailRequest(BaseModel):
    email: str | None = Field(default=None, description="Address for completion/failure emails; null clears it")


class AlertPermissionRequest(BaseModel):
    granted: bool = Field(..., description="Whether the user allowed local alerts")


class SendEmailRequest(BaseModel):
    # All optional so missing fields produce the relay's own 400, not a 422
    email: str | None = None
    subject: str | None = None
    message: str | None = None
    imageData: str | None = Field(default=None, description="Optional data:image/... URI to embed")
