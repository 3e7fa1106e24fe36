from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import Optional, Sequence

import pytest
from PIL import Image

from codeanim_cli.config import CodeAnimConfig, ViewportConfig
from codeanim_cli.export import (
    EncodingError,
    ExportBusyError,
    ExportCancelledError,
    ExportOptions,
    ExportProgress,
    ExportValidationError,
    RenderError,
    VideoExporter,
    count_export_frames,
)
from codeanim_cli.render.ir import RenderFrame
from codeanim_cli.render.renderer import MediaEncoder, ProgressCallback, RenderingSurface
from codeanim_cli.render.video import EncoderRegistry, GifEncoder
from codeanim_cli.schema import LineRange, Slide, VideoSettings

CODE = "\n".join(f"value_{i} = {i}" for i in range(1, 11))


class RecordingSurface(RenderingSurface):
    def __init__(self, fail_at: Optional[int] = None):
        self.frames: list[Optional[RenderFrame]] = []
        self.fail_at = fail_at

    @property
    def dimensions(self) -> tuple[int, int]:
        return (64, 36)

    def draw_frame(self, frame: Optional[RenderFrame]) -> Image.Image:
        if self.fail_at is not None and len(self.frames) == self.fail_at:
            raise RuntimeError("surface exploded")
        self.frames.append(frame)
        return Image.new("RGB", self.dimensions)


class StubEncoder(MediaEncoder):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: list[tuple[int, int, tuple[int, int], str]] = []

    @property
    def formats(self) -> tuple[str, ...]:
        return ("mp4",)

    def encode(
        self,
        frames: Sequence[Image.Image],
        frame_rate: int,
        dimensions: tuple[int, int],
        fmt: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        self.calls.append((len(frames), frame_rate, dimensions, fmt))
        if on_progress is not None:
            on_progress(0.5)
        if self.error is not None:
            raise self.error
        if on_progress is not None:
            on_progress(1.0)
        return b"encoded"


def _slides() -> list[Slide]:
    return [
        Slide(id="a", name="A", line_ranges=[LineRange(start=1, end=3)], duration_ms=1000),
        Slide(id="b", name="B", line_ranges=[LineRange(start=2, end=5)], duration_ms=1000, order=1),
    ]


def _options(fmt: str = "mp4", frame_rate: int = 10) -> ExportOptions:
    return ExportOptions(video_settings=VideoSettings(frame_rate=frame_rate, format=fmt))


def _exporter(surface: RecordingSurface, encoder: Optional[MediaEncoder] = None) -> VideoExporter:
    return VideoExporter(
        encoders=EncoderRegistry([encoder or StubEncoder()]),
        surface_factory=lambda settings: surface,
    )


class TestCountExportFrames:
    def test_includes_tail_buffer(self):
        assert count_export_frames(2000, 10) == 25
        assert count_export_frames(1000, 30) == 45


class TestExportVideo:
    def test_frame_count_and_sampling(self):
        surface = RecordingSurface()
        encoder = StubEncoder()
        artifact = asyncio.run(_exporter(surface, encoder).export_video(CODE, "python", _slides(), _options()))

        assert artifact.frame_count == 25
        assert artifact.data == b"encoded"
        assert artifact.mime_type == "video/mp4"
        assert (artifact.width, artifact.height) == (64, 36)
        assert artifact.duration_sec == pytest.approx(2.5)
        assert encoder.calls == [(25, 10, (64, 36), "mp4")]

        assert len(surface.frames) == 25
        assert surface.frames[0].slide_index == 0
        assert surface.frames[0].progress == 0.0
        assert surface.frames[15].slide_index == 1
        assert surface.frames[15].progress == pytest.approx(0.5)
        assert all(f is None for f in surface.frames[20:])

    def test_global_speed_shortens_export(self):
        surface = RecordingSurface()
        artifact = asyncio.run(
            _exporter(surface).export_video(CODE, "python", _slides(), _options(), global_speed=2.0)
        )
        assert artifact.frame_count == 15

    def test_progress_sequence(self):
        events: list[ExportProgress] = []
        asyncio.run(
            _exporter(RecordingSurface()).export_video(
                CODE, "python", _slides(), _options(), on_progress=events.append
            )
        )

        phases = [e.phase for e in events]
        assert phases[0] == "preparing"
        assert phases[-1] == "complete"
        assert "error" not in phases

        rendering = [e for e in events if e.phase == "rendering"]
        assert [e.current_frame for e in rendering] == [10, 20, 25]
        assert rendering[-1].progress == 1.0

        encoding = [e.progress for e in events if e.phase == "encoding"]
        assert encoding == [0.0, 0.5, 1.0]
        assert phases.index("encoding") > phases.index("rendering")

    def test_session_released_after_success(self):
        exporter = _exporter(RecordingSurface())
        asyncio.run(exporter.export_video(CODE, "python", _slides(), _options()))
        assert not exporter.is_exporting()
        asyncio.run(exporter.export_video(CODE, "python", _slides(), _options()))


class TestValidation:
    @pytest.mark.parametrize(
        "code,slides,options,speed",
        [
            ("   \n  ", _slides(), _options(), 1.0),
            (CODE, [], _options(), 1.0),
            (CODE, _slides(), _options(fmt="avi"), 1.0),
            (CODE, _slides(), _options(), 0.0),
        ],
    )
    def test_rejected_before_rendering(self, code, slides, options, speed):
        surface = RecordingSurface()
        exporter = _exporter(surface)
        events: list[ExportProgress] = []

        with pytest.raises(ExportValidationError) as exc_info:
            asyncio.run(exporter.export_video(code, "python", slides, options, events.append, speed))

        assert exc_info.value.kind == "validation"
        assert surface.frames == []
        assert not exporter.is_exporting()
        assert events[-1].phase == "error"
        assert events[-1].error.kind == "validation"


class TestConcurrency:
    def test_second_export_rejected(self):
        exporter = _exporter(RecordingSurface())
        second_events: list[ExportProgress] = []

        async def scenario():
            first = asyncio.create_task(exporter.export_video(CODE, "python", _slides(), _options()))
            await asyncio.sleep(0)
            assert exporter.is_exporting()

            with pytest.raises(ExportBusyError) as exc_info:
                await exporter.export_video(CODE, "python", _slides(), _options(), second_events.append)
            assert exc_info.value.kind == "busy"

            return await first

        artifact = asyncio.run(scenario())
        assert artifact.frame_count == 25
        assert second_events == []
        assert not exporter.is_exporting()

    def test_cancel_during_rendering(self):
        surface = RecordingSurface()
        exporter = _exporter(surface)
        events: list[ExportProgress] = []

        def on_progress(p: ExportProgress) -> None:
            events.append(p)
            if p.phase == "rendering" and p.current_frame == 10:
                assert exporter.cancel_export()

        with pytest.raises(ExportCancelledError) as exc_info:
            asyncio.run(exporter.export_video(CODE, "python", _slides(), _options(), on_progress))

        assert exc_info.value.kind == "cancelled"
        assert events[-1].error.cause is None
        assert len(surface.frames) == 10
        assert not exporter.is_exporting()
        assert events[-1].phase == "error"
        assert events[-1].error.kind == "cancelled"

    def test_cancel_during_encoding(self):
        encoder = StubEncoder()
        exporter = _exporter(RecordingSurface(), encoder)

        def on_progress(p: ExportProgress) -> None:
            if p.phase == "encoding":
                exporter.cancel_export()

        with pytest.raises(ExportCancelledError):
            asyncio.run(exporter.export_video(CODE, "python", _slides(), _options(), on_progress))
        assert len(encoder.calls) == 1
        assert not exporter.is_exporting()

    def test_cancel_when_idle(self):
        assert not _exporter(RecordingSurface()).cancel_export()


class TestFailures:
    def test_render_failure(self):
        exporter = _exporter(RecordingSurface(fail_at=3))
        with pytest.raises(RenderError) as exc_info:
            asyncio.run(exporter.export_video(CODE, "python", _slides(), _options()))
        assert "frame 3" in exc_info.value.message
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert not exporter.is_exporting()

    def test_encoding_failure(self):
        cause = RuntimeError("disk full")
        exporter = _exporter(RecordingSurface(), StubEncoder(error=cause))
        events: list[ExportProgress] = []

        with pytest.raises(EncodingError) as exc_info:
            asyncio.run(exporter.export_video(CODE, "python", _slides(), _options(), events.append))

        assert exc_info.value.cause is cause
        assert "disk full" in exc_info.value.message
        assert events[-1].error.kind == "encoding"
        assert events[-1].error.cause == repr(cause)
        assert events[-1].error.timestamp == exc_info.value.timestamp
        assert exc_info.value.timestamp is not None
        assert not exporter.is_exporting()


class TestEndToEnd:
    def test_gif_with_pillow_surface(self, tmp_path: Path):
        config = CodeAnimConfig(viewport=ViewportConfig(width=160, height=90, padding=4))
        exporter = VideoExporter(config, EncoderRegistry([GifEncoder()]))
        slides = [Slide(id="a", name="A", line_ranges=[LineRange(start=1, end=2)], duration_ms=1000)]
        options = ExportOptions(
            video_settings=VideoSettings(resolution="720p", frame_rate=5, format="gif"),
            project_name="tiny",
        )

        artifact = asyncio.run(exporter.export_video("x = 1\ny = 2", "python", slides, options))
        out = artifact.write(tmp_path / "out" / "tiny.gif")

        assert artifact.frame_count == 8
        img = Image.open(io.BytesIO(out.read_bytes()))
        assert img.size == (1280, 720)
        assert img.n_frames >= 2
