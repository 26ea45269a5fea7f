"""Master API router — mounts all endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from app.api import animation, health, notifications, run, send_email

api_router = APIRouter(prefix="/api")

api_router.include_router(health.router)
api_router.include_router(run.router)
api_router.include_router(animation.router)
api_router.include_router(notifications.router)
api_router.include_router(send_email.router)

# Netlify functions layout for the same relay handler
netlify_router = APIRouter(prefix="/.netlify/functions")
netlify_router.include_router(send_email.router)
