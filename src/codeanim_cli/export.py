"""Offline export of a slide sequence to a video or GIF artifact.

An export walks the timeline at a fixed frame rate, draws every frame on a
rendering surface, and hands the frame sequence to a media encoder. It runs
as a single coroutine that yields to the event loop after every frame;
encoding runs in a worker thread. Each ``VideoExporter`` admits one export at
a time and rejects, rather than queues, any concurrent request.
"""
from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field

from .config import CodeAnimConfig
from .render.compositor import PillowSurface
from .render.frames import FrameSampler
from .render.lines import split_code_lines
from .render.renderer import CodeSource, RenderingSurface
from .render.timeline import compute_timeline_steps
from .render.video import EncoderRegistry, mime_type_for
from .render.window import ScrollingWindow
from .schema import Slide, VideoSettings

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage

logger = logging.getLogger(__name__)

ExportPhase = Literal["idle", "preparing", "rendering", "encoding", "complete", "error"]
ErrorKind = Literal["validation", "render", "encoding", "cancelled", "busy", "unknown"]

TAIL_BUFFER_SEC = 0.5
PROGRESS_EVERY_N_FRAMES = 10


class ExportError(Exception):
    kind: ErrorKind = "unknown"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def info(self) -> "ExportErrorInfo":
        return ExportErrorInfo(
            kind=self.kind,
            message=self.message,
            cause=repr(self.cause) if self.cause is not None else None,
            timestamp=self.timestamp,
        )


class ExportValidationError(ExportError):
    kind = "validation"


class RenderError(ExportError):
    kind = "render"


class EncodingError(ExportError):
    kind = "encoding"


class ExportCancelledError(ExportError):
    kind = "cancelled"

    def __init__(self, message: str = "Export cancelled"):
        super().__init__(message)


class ExportBusyError(ExportError):
    kind = "busy"

    def __init__(self, message: str = "An export is already in progress"):
        super().__init__(message)


class ExportErrorInfo(BaseModel):
    kind: ErrorKind
    message: str
    cause: Optional[str] = None
    timestamp: datetime


class ExportProgress(BaseModel):
    phase: ExportPhase
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    current_frame: int = 0
    total_frames: int = 0
    message: str = ""
    error: Optional[ExportErrorInfo] = None


class ExportOptions(BaseModel):
    video_settings: VideoSettings = VideoSettings()
    project_name: str = "codeanim"


ExportProgressCallback = Callable[[ExportProgress], None]
SurfaceFactory = Callable[[VideoSettings], RenderingSurface]


@dataclass
class ExportArtifact:
    data: bytes
    format: str
    mime_type: str
    width: int
    height: int
    frame_count: int
    frame_rate: int
    duration_sec: float

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def write(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExportCancelledError()


class ExportSession:
    """Try-acquire guard admitting a single active export."""

    def __init__(self):
        self._lock = threading.Lock()
        self.token = CancellationToken()

    def try_acquire(self) -> bool:
        if not self._lock.acquire(blocking=False):
            return False
        self.token = CancellationToken()
        return True

    def release(self) -> None:
        self._lock.release()

    @property
    def active(self) -> bool:
        return self._lock.locked()


def count_export_frames(total_duration_ms: float, frame_rate: int) -> int:
    seconds = total_duration_ms / 1000.0 + TAIL_BUFFER_SEC
    return math.ceil(round(seconds * frame_rate, 6))


def _code_lines(code: Union[str, CodeSource]) -> list[str]:
    if isinstance(code, CodeSource):
        return code.get_lines()
    return split_code_lines(code)


class VideoExporter:
    def __init__(
        self,
        config: Optional[CodeAnimConfig] = None,
        encoders: Optional[EncoderRegistry] = None,
        surface_factory: Optional[SurfaceFactory] = None,
    ):
        self.config = config or CodeAnimConfig()
        self.encoders = encoders or EncoderRegistry()
        self._surface_factory = surface_factory or self._default_surface
        self._session = ExportSession()

    def _default_surface(self, settings: VideoSettings) -> RenderingSurface:
        return PillowSurface(
            self.config.viewport, self.config.theme, resolution=settings.resolution
        )

    def is_exporting(self) -> bool:
        return self._session.active

    def cancel_export(self) -> bool:
        """Request cancellation of the active export; False when none is running."""
        if not self._session.active:
            return False
        logger.info("Cancellation requested")
        self._session.token.cancel()
        return True

    async def export_video(
        self,
        code: Union[str, CodeSource],
        language: str,
        slides: Sequence[Slide],
        options: Optional[ExportOptions] = None,
        on_progress: Optional[ExportProgressCallback] = None,
        global_speed: float = 1.0,
    ) -> ExportArtifact:
        if not self._session.try_acquire():
            raise ExportBusyError()

        options = options or ExportOptions()
        token = self._session.token
        total_frames = 0
        started = time.monotonic()

        def emit(progress: ExportProgress) -> None:
            if on_progress is not None:
                on_progress(progress)

        try:
            emit(ExportProgress(phase="preparing", message="Preparing export"))
            code_lines = _code_lines(code)
            self._validate(code_lines, slides, options, global_speed)

            settings = options.video_settings
            steps = compute_timeline_steps(slides, global_speed, len(code_lines))
            total_ms = steps[-1].end_time_ms
            total_frames = count_export_frames(total_ms, settings.frame_rate)
            logger.info(
                "Exporting %s: %d slides, %.2fs, %d frames at %d fps (%s)",
                options.project_name, len(slides), total_ms / 1000.0,
                total_frames, settings.frame_rate, settings.format,
            )

            surface = self._surface_factory(settings)
            sampler = FrameSampler(
                "\n".join(code_lines),
                language,
                steps,
                ScrollingWindow(self.config.viewport.max_visible_lines),
            )

            images = await self._render_frames(sampler, surface, settings, total_frames, token, emit)
            data = await self._encode(images, surface.dimensions, settings, total_frames, token, emit)

            width, height = surface.dimensions
            artifact = ExportArtifact(
                data=data,
                format=settings.format,
                mime_type=mime_type_for(settings.format),
                width=width,
                height=height,
                frame_count=total_frames,
                frame_rate=settings.frame_rate,
                duration_sec=total_frames / settings.frame_rate,
            )
            logger.info(
                "Export complete: %d bytes in %.2fs", artifact.size_bytes, time.monotonic() - started
            )
            emit(
                ExportProgress(
                    phase="complete",
                    progress=1.0,
                    current_frame=total_frames,
                    total_frames=total_frames,
                    message="Export complete",
                )
            )
            return artifact

        except ExportError as e:
            self._report_failure(e, total_frames, emit)
            raise
        except Exception as e:
            err = ExportError(f"Unexpected export failure: {e}", cause=e)
            self._report_failure(err, total_frames, emit)
            raise err from e
        finally:
            self._session.release()

    def _validate(
        self,
        code_lines: Sequence[str],
        slides: Sequence[Slide],
        options: ExportOptions,
        global_speed: float,
    ) -> None:
        if not "".join(code_lines).strip():
            raise ExportValidationError("No code to export")
        if not slides:
            raise ExportValidationError("No slides to export")
        if global_speed <= 0:
            raise ExportValidationError(f"global_speed must be greater than 0, got {global_speed}")
        fmt = options.video_settings.format
        if not self.encoders.supports(fmt):
            raise ExportValidationError(
                f"Unsupported format: '{fmt}'. Available formats: {self.encoders.formats}"
            )

    async def _render_frames(
        self,
        sampler: FrameSampler,
        surface: RenderingSurface,
        settings: VideoSettings,
        total_frames: int,
        token: CancellationToken,
        emit: ExportProgressCallback,
    ) -> list[PILImage]:
        images: list[PILImage] = []
        for index in range(total_frames):
            t_ms = index * 1000.0 / settings.frame_rate
            try:
                images.append(surface.draw_frame(sampler.sample(t_ms)))
            except Exception as e:
                raise RenderError(f"Failed to render frame {index}: {e}", cause=e) from e

            if (index + 1) % PROGRESS_EVERY_N_FRAMES == 0 or index == total_frames - 1:
                emit(
                    ExportProgress(
                        phase="rendering",
                        progress=(index + 1) / total_frames,
                        current_frame=index + 1,
                        total_frames=total_frames,
                        message=f"Rendering frame {index + 1}/{total_frames}",
                    )
                )

            await asyncio.sleep(0)
            token.raise_if_cancelled()

        logger.debug("Rendered %d frames", len(images))
        return images

    async def _encode(
        self,
        images: list[PILImage],
        dimensions: tuple[int, int],
        settings: VideoSettings,
        total_frames: int,
        token: CancellationToken,
        emit: ExportProgressCallback,
    ) -> bytes:
        emit(
            ExportProgress(
                phase="encoding",
                progress=0.0,
                current_frame=total_frames,
                total_frames=total_frames,
                message=f"Encoding {settings.format}",
            )
        )
        encoder = self.encoders.get_encoder(settings.format)
        loop = asyncio.get_running_loop()

        def relay(fraction: float) -> None:
            token.raise_if_cancelled()
            progress = ExportProgress(
                phase="encoding",
                progress=max(0.0, min(1.0, fraction)),
                current_frame=total_frames,
                total_frames=total_frames,
                message=f"Encoding {settings.format}",
            )
            loop.call_soon_threadsafe(emit, progress)

        try:
            data = await asyncio.to_thread(
                encoder.encode, images, settings.frame_rate, dimensions, settings.format, relay
            )
        except ExportError:
            raise
        except Exception as e:
            raise EncodingError(f"Encoding failed: {e}", cause=e) from e

        token.raise_if_cancelled()
        return data

    def _report_failure(
        self, error: ExportError, total_frames: int, emit: ExportProgressCallback
    ) -> None:
        if error.kind == "cancelled":
            logger.info("Export cancelled")
        else:
            logger.error("Export failed (%s): %s", error.kind, error.message)
        emit(
            ExportProgress(
                phase="error",
                total_frames=total_frames,
                message=error.message,
                error=error.info(),
            )
        )
