"""API response models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"


class PublicConfigResponse(BaseModel):
    show_iteration_control: bool = True
    default_iteration_count: int = 5
    max_iteration_count: int = 20
    email_endpoint: str = ""
    platform: str = "netlify"


class ArtifactResponse(BaseModel):
    sequence_index: int
    captured_at: str
    encoded_image: str | None = None


class RunResponse(BaseModel):
    run_state: str
    target_iteration_count: int
    completed_count: int = 0
    failure_detail: str | None = None
    failed_step: int | None = None
    has_source_image: bool = False
    history: list[ArtifactResponse] = Field(default_factory=list)


class SourceImageResponse(BaseModel):
    filename: str
    media_type: str
    size: int
    preview: str


class IterationCountResponse(BaseModel):
    count: int


class NotificationEmailResponse(BaseModel):
    email: str | None = None


class AlertPermissionResponse(BaseModel):
    granted: bool


class AlertResponse(BaseModel):
    id: int
    title: str
    body: str
    icon: str
    created_at: str
    expires_at: str | None = None


class SendEmailResponse(BaseModel):
    message: str
    recipient: str
    timestamp: str
