"""Run endpoints — source image, iteration count, start/stream/reset, gallery images."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from fastapi.responses import StreamingResponse

from app.dependencies import get_session
from app.engine.session import RunSession
from app.errors import DecodingError
from app.imaging import codec
from app.models.artifacts import BinaryImage
from app.models.requests import IterationCountRequest
from app.models.responses import IterationCountResponse, RunResponse, SourceImageResponse

router = APIRouter()


def _ensure_not_running(session: RunSession) -> None:
    if session.is_running:
        raise HTTPException(status_code=409, detail="A run is already in progress")


@router.put("/source", response_model=SourceImageResponse)
async def upload_source(
    file: UploadFile = File(...),
    session: RunSession = Depends(get_session),
) -> SourceImageResponse:
    _ensure_not_running(session)
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    # Raises EncodingError (→ 400) for bytes Pillow cannot identify
    media_type = codec.sniff_media_type(data)
    image = BinaryImage(data=data, media_type=media_type, filename=file.filename or "upload")
    preview = codec.encode(image)
    session.set_source_image(image)
    return SourceImageResponse(
        filename=image.filename,
        media_type=image.media_type,
        size=image.size,
        preview=preview,
    )


@router.delete("/source", status_code=204)
async def clear_source(session: RunSession = Depends(get_session)) -> Response:
    _ensure_not_running(session)
    session.set_source_image(None)
    return Response(status_code=204)


@router.put("/iterations", response_model=IterationCountResponse)
async def set_iterations(
    req: IterationCountRequest,
    session: RunSession = Depends(get_session),
) -> IterationCountResponse:
    session.set_iteration_count(req.count)
    return IterationCountResponse(count=session.iteration_count)


@router.get("/run", response_model=RunResponse)
async def get_run(include_images: bool = True, session: RunSession = Depends(get_session)) -> RunResponse:
    return RunResponse(**session.run.to_dict(include_images=include_images))


@router.post("/run", response_model=RunResponse)
async def start_run(session: RunSession = Depends(get_session)) -> RunResponse:
    _ensure_not_running(session)
    run = await session.run_to_completion()
    return RunResponse(**run.to_dict())


async def _stream_run(session: RunSession) -> AsyncGenerator[str, None]:
    async for event in session.stream():
        yield f"event: progress\ndata: {json.dumps(event)}\n\n"

    result = RunResponse(**session.run.to_dict(include_images=False))
    yield f"event: result\ndata: {json.dumps(result.model_dump())}\n\n"
    yield f"event: done\ndata: {json.dumps({'type': 'done'})}\n\n"


@router.post("/run/stream")
async def start_run_stream(session: RunSession = Depends(get_session)) -> StreamingResponse:
    _ensure_not_running(session)
    # Started before the body streams, so a concurrent request sees Running and gets a 409
    session.start()
    return StreamingResponse(
        _stream_run(session),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/run/reset", response_model=RunResponse)
async def reset_run(session: RunSession = Depends(get_session)) -> RunResponse:
    _ensure_not_running(session)
    run = session.reset()
    return RunResponse(**run.to_dict())


@router.get("/run/images/{index}")
async def get_image(index: int, session: RunSession = Depends(get_session)) -> Response:
    history = session.run.history
    if not 0 <= index < len(history):
        raise HTTPException(status_code=404, detail=f"No image at index {index}")
    try:
        image = codec.decode(history[index].encoded_image)
    except DecodingError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return Response(content=image.data, media_type=image.media_type)
