"""GET /api/run/animation.* — download the run history as a GIF or WebM."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Response

from app.config import Settings
from app.dependencies import get_session, get_settings
from app.engine.session import RunSession
from app.imaging.compositor import composite_gif, composite_video

router = APIRouter(prefix="/run")


@router.get("/animation.gif")
async def animation_gif(
    session: RunSession = Depends(get_session),
    s: Settings = Depends(get_settings),
) -> Response:
    history = list(session.run.history)
    gif = await asyncio.to_thread(
        composite_gif, history, s.frame_delay_ms, s.frame_width, s.frame_height
    )
    return Response(
        content=gif,
        media_type="image/gif",
        headers={"Content-Disposition": 'attachment; filename="iterations.gif"'},
    )


@router.get("/animation.webm")
async def animation_video(
    session: RunSession = Depends(get_session),
    s: Settings = Depends(get_settings),
) -> Response:
    history = list(session.run.history)
    video = await asyncio.to_thread(
        composite_video, history, s.frame_delay_ms, s.frame_width, s.frame_height
    )
    return Response(
        content=video,
        media_type="video/webm",
        headers={"Content-Disposition": 'attachment; filename="iterations.webm"'},
    )
