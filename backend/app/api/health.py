"""Health check + public configuration."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.config import MAX_ITERATION_COUNT, RuntimeConfig
from app.dependencies import get_runtime_config
from app.models.responses import HealthResponse, PublicConfigResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", version="0.1.0")


@router.get("/config", response_model=PublicConfigResponse)
async def public_config(config: RuntimeConfig = Depends(get_runtime_config)) -> PublicConfigResponse:
    return PublicConfigResponse(
        show_iteration_control=config.show_iteration_control,
        default_iteration_count=config.default_iteration_count,
        max_iteration_count=MAX_ITERATION_COUNT,
        email_endpoint=config.email_endpoint,
        platform=config.platform,
    )
