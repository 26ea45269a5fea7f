"""Assemble an image history into a looping GIF or a WebM video.

Every frame is drawn onto the same fixed-size canvas, stretched to fill it
exactly. Aspect ratio is NOT preserved; frames from non-square sources are
distorted the same way the browser canvas did.
"""

from __future__ import annotations

import base64
import io
import logging
import tempfile
from collections.abc import Sequence
from pathlib import Path

from PIL import GifImagePlugin, Image, UnidentifiedImageError

from app.errors import CompositionError, DecodingError
from app.imaging.codec import decode
from app.models.artifacts import ImageArtifact

logger = logging.getLogger(__name__)

FRAME_DELAY_MS = 1000
FRAME_WIDTH = 512
FRAME_HEIGHT = 512
VIDEO_FPS = 30
_BACKGROUND = (255, 255, 255)


def _ordered(history: Sequence[ImageArtifact]) -> list[ImageArtifact]:
    if not history:
        raise CompositionError("No images to animate")
    return sorted(history, key=lambda a: a.sequence_index)


def _load_frame_source(artifact: ImageArtifact) -> Image.Image:
    try:
        image = decode(artifact.encoded_image)
        with Image.open(io.BytesIO(image.data)) as img:
            img.load()
            return img.convert("RGBA")
    except (DecodingError, UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise CompositionError(
            f"Could not decode frame {artifact.sequence_index}",
            detail=str(e),
            index=artifact.sequence_index,
        ) from e


def render_frames(
    history: Sequence[ImageArtifact],
    frame_width: int = FRAME_WIDTH,
    frame_height: int = FRAME_HEIGHT,
) -> list[Image.Image]:
    """Draw each artifact onto the canvas and snapshot it, in sequence order."""
    canvas = Image.new("RGB", (frame_width, frame_height), _BACKGROUND)
    frames: list[Image.Image] = []
    for artifact in _ordered(history):
        src = _load_frame_source(artifact)
        canvas.paste(_BACKGROUND, (0, 0, frame_width, frame_height))
        stretched = src.resize((frame_width, frame_height), Image.Resampling.LANCZOS)
        canvas.paste(stretched, (0, 0), mask=stretched)
        frames.append(canvas.copy())
    return frames


def _shared_palette(frames: Sequence[Image.Image]) -> Image.Image:
    """One adaptive palette covering every frame, so the global color table fits all of them."""
    width, height = frames[0].size
    sheet = Image.new("RGB", (width, height * len(frames)))
    for i, frame in enumerate(frames):
        sheet.paste(frame, (0, i * height))
    return sheet.quantize(colors=256)


def composite_gif(
    history: Sequence[ImageArtifact],
    frame_delay_ms: int = FRAME_DELAY_MS,
    frame_width: int = FRAME_WIDTH,
    frame_height: int = FRAME_HEIGHT,
) -> bytes:
    """Render the history into a looping GIF. All-or-nothing.

    Frames are written one by one with GifImagePlugin's header/frame helpers
    rather than ``save(save_all=True)``, which folds identical consecutive
    frames into one and sums their durations. Here every artifact yields its
    own frame with its own ``frame_delay_ms``.
    """
    frames = render_frames(history, frame_width, frame_height)

    buf = io.BytesIO()
    try:
        palette = _shared_palette(frames)
        quantized = [
            f.quantize(palette=palette, dither=Image.Dither.FLOYDSTEINBERG) for f in frames
        ]
        header, _ = GifImagePlugin.getheader(
            quantized[0], info={"loop": 0, "duration": frame_delay_ms, "optimize": False}
        )
        buf.write(b"".join(header))
        for frame in quantized:
            for block in GifImagePlugin.getdata(frame, duration=frame_delay_ms, disposal=2):
                buf.write(block)
        buf.write(b";")  # trailer
    except (OSError, ValueError, MemoryError) as e:
        raise CompositionError("GIF encoding failed", detail=str(e)) from e

    logger.info("Composited %d frames into GIF (%d bytes)", len(frames), buf.tell())
    return buf.getvalue()


def gif_data_uri(
    history: Sequence[ImageArtifact],
    frame_delay_ms: int = FRAME_DELAY_MS,
    frame_width: int = FRAME_WIDTH,
    frame_height: int = FRAME_HEIGHT,
) -> str:
    """GIF of the history as a data URI, for email attachments."""
    gif = composite_gif(history, frame_delay_ms, frame_width, frame_height)
    return "data:image/gif;base64," + base64.b64encode(gif).decode("ascii")


def composite_video(
    history: Sequence[ImageArtifact],
    frame_delay_ms: int = FRAME_DELAY_MS,
    frame_width: int = FRAME_WIDTH,
    frame_height: int = FRAME_HEIGHT,
    fps: int = VIDEO_FPS,
) -> bytes:
    """Render the same frame sequence into a WebM container via ffmpeg.

    Each frame is held for ``frame_delay_ms`` at a fixed ``fps`` cadence.
    """
    import ffmpeg

    frames = render_frames(history, frame_width, frame_height)
    repeats = max(1, round(fps * frame_delay_ms / 1000))
    raw = b"".join(f.tobytes() * repeats for f in frames)

    with tempfile.TemporaryDirectory(prefix="exactish_video_") as tmpdir:
        out_path = Path(tmpdir) / "animation.webm"
        try:
            (
                ffmpeg.input(
                    "pipe:",
                    format="rawvideo",
                    pix_fmt="rgb24",
                    s=f"{frame_width}x{frame_height}",
                    framerate=fps,
                )
                .output(str(out_path), vcodec="libvpx", pix_fmt="yuv420p", video_bitrate="5M")
                .run(input=raw, overwrite_output=True, capture_stdout=True, capture_stderr=True)
            )
        except ffmpeg.Error as e:
            stderr = e.stderr.decode("utf8", errors="replace") if e.stderr else str(e)
            raise CompositionError("Video encoding failed", detail=stderr[-2000:]) from e
        except FileNotFoundError as e:
            raise CompositionError("Video encoding unavailable: ffmpeg not installed", detail=str(e)) from e
        data = out_path.read_bytes()

    logger.info("Composited %d frames into WebM (%d bytes)", len(frames), len(data))
    return data
