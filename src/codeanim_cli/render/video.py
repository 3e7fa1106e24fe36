from __future__ import annotations

import io
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from .ffmpeg import check_ffmpeg, run_ffmpeg
from .renderer import MediaEncoder, ProgressCallback

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage

logger = logging.getLogger(__name__)

MIME_TYPES: dict[str, str] = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "gif": "image/gif",
}

# Share of encoder progress spent writing frames before ffmpeg runs.
FRAME_WRITE_SHARE = 0.8


class FFmpegNotFoundError(RuntimeError):
    """Raised when ffmpeg is not installed."""

    def __init__(self):
        super().__init__(
            "ffmpeg not found. Install with: brew install ffmpeg (or apt install ffmpeg)"
        )


class NoFramesError(RuntimeError):
    """Raised when there is nothing to encode."""

    def __init__(self, source: object):
        super().__init__(f"No frames found in {source}")


class UnsupportedFormatError(ValueError):
    def __init__(self, fmt: str, available: Sequence[str]):
        self.fmt = fmt
        super().__init__(f"Unsupported format: '{fmt}'. Available formats: {sorted(available)}")


def _codec_args(fmt: str, crf: int) -> list[str]:
    if fmt == "webm":
        return ["-c:v", "libvpx-vp9", "-b:v", "0", "-crf", str(crf + 8), "-pix_fmt", "yuv420p"]
    return [
        "-c:v", "libx264",
        "-pix_fmt", "yuv420p",
        "-crf", str(crf),
        "-movflags", "+faststart",
    ]


def assemble_video(
    frames_dir: Path,
    output_path: Path,
    fps: int = 30,
    fmt: str = "mp4",
    crf: int = 23,
) -> Path:
    """Assemble frames into a video file using ffmpeg.

    Args:
        frames_dir: Directory containing frame_NNNNNN.png files
        output_path: Path for the output video file
        fps: Frame rate (default 30)
        fmt: Container, "mp4" (H.264) or "webm" (VP9)
        crf: Quality setting (0-51, lower = better, default 23)

    Returns:
        Path to the output video file

    Raises:
        FFmpegNotFoundError: If ffmpeg is not installed
        NoFramesError: If no frames are found in frames_dir
    """
    if not check_ffmpeg():
        raise FFmpegNotFoundError()

    frames = sorted(frames_dir.glob("frame_*.png"))
    if not frames:
        raise NoFramesError(frames_dir)

    output_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = [
        "ffmpeg",
        "-y",
        "-framerate", str(fps),
        "-i", str(frames_dir / "frame_%06d.png"),
        # libx264 with yuv420p needs even dimensions
        "-vf", "pad=ceil(iw/2)*2:ceil(ih/2)*2",
        *_codec_args(fmt, crf),
        str(output_path),
    ]
    run_ffmpeg(cmd)

    return output_path


class FFmpegVideoEncoder(MediaEncoder):
    def __init__(self, crf: int = 23):
        self.crf = crf

    @property
    def formats(self) -> tuple[str, ...]:
        return ("mp4", "webm")

    def encode(
        self,
        frames: Sequence[PILImage],
        frame_rate: int,
        dimensions: tuple[int, int],
        fmt: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        if not self.supports(fmt):
            raise UnsupportedFormatError(fmt, self.formats)
        if not frames:
            raise NoFramesError("frame sequence")
        if not check_ffmpeg():
            raise FFmpegNotFoundError()

        total = len(frames)
        with tempfile.TemporaryDirectory(prefix="codeanim-") as tmp:
            frames_dir = Path(tmp) / "frames"
            frames_dir.mkdir()
            for i, image in enumerate(frames):
                if image.size != dimensions:
                    image = image.resize(dimensions)
                image.save(frames_dir / f"frame_{i + 1:06d}.png")
                if on_progress is not None:
                    on_progress(FRAME_WRITE_SHARE * (i + 1) / total)

            output_path = Path(tmp) / f"output.{fmt}"
            try:
                assemble_video(frames_dir, output_path, fps=frame_rate, fmt=fmt, crf=self.crf)
            except subprocess.CalledProcessError as e:
                stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
                raise RuntimeError(f"ffmpeg exited with {e.returncode}: {stderr[-500:]}") from e

            data = output_path.read_bytes()

        if on_progress is not None:
            on_progress(1.0)
        return data


class GifEncoder(MediaEncoder):
    @property
    def formats(self) -> tuple[str, ...]:
        return ("gif",)

    def encode(
        self,
        frames: Sequence[PILImage],
        frame_rate: int,
        dimensions: tuple[int, int],
        fmt: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        if not self.supports(fmt):
            raise UnsupportedFormatError(fmt, self.formats)
        if not frames:
            raise NoFramesError("frame sequence")

        total = len(frames)
        palette_frames = []
        for i, image in enumerate(frames):
            if image.size != dimensions:
                image = image.resize(dimensions)
            palette_frames.append(image.convert("RGB").quantize(colors=256))
            if on_progress is not None:
                on_progress(FRAME_WRITE_SHARE * (i + 1) / total)

        buf = io.BytesIO()
        palette_frames[0].save(
            buf,
            format="GIF",
            save_all=True,
            append_images=palette_frames[1:],
            duration=round(1000 / frame_rate),
            loop=0,
        )

        if on_progress is not None:
            on_progress(1.0)
        return buf.getvalue()


class EncoderRegistry:
    """Maps output formats to the encoder that produces them."""

    def __init__(self, encoders: Optional[Sequence[MediaEncoder]] = None):
        if encoders is None:
            encoders = [FFmpegVideoEncoder(), GifEncoder()]
        self._encoders = list(encoders)

    @property
    def formats(self) -> list[str]:
        return sorted({fmt for enc in self._encoders for fmt in enc.formats})

    def supports(self, fmt: str) -> bool:
        return any(enc.supports(fmt) for enc in self._encoders)

    def get_encoder(self, fmt: str) -> MediaEncoder:
        for enc in self._encoders:
            if enc.supports(fmt):
                return enc
        raise UnsupportedFormatError(fmt, self.formats)


def mime_type_for(fmt: str) -> str:
    return MIME_TYPES.get(fmt, "application/octet-stream")
