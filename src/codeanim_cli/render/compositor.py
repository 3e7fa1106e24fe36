from __future__ import annotations

import logging
from typing import Optional, Union

from PIL import Image, ImageDraw, ImageFont
from PIL.Image import Image as PILImage

from ..config import ThemeConfig, ViewportConfig
from ..highlight import PygmentsTokenizer, SyntaxTokenizer
from ..schema import RESOLUTIONS
from .ir import RenderedLine, RenderFrame
from .renderer import RenderingSurface

logger = logging.getLogger(__name__)

DEFAULT_FONT = "DejaVuSansMono.ttf"
SLIDE_OFFSET_PX = 24
HIGHLIGHT_ALPHA = 0.35

RGB = tuple[int, int, int]
Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]


class CompositorError(Exception):
    pass


def hex_to_rgb(color: str) -> RGB:
    value = color.lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    if len(value) != 6:
        raise CompositorError(f"Invalid color: {color!r}")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def blend(fg: RGB, bg: RGB, alpha: float) -> RGB:
    alpha = max(0.0, min(1.0, alpha))
    return tuple(round(b + (f - b) * alpha) for f, b in zip(fg, bg))  # type: ignore[return-value]


def resolve_output_size(resolution: Optional[str], viewport: ViewportConfig) -> tuple[int, int]:
    if resolution is None:
        return viewport.dimensions
    if resolution not in RESOLUTIONS:
        raise CompositorError(
            f"Unknown resolution {resolution!r}. Available: {sorted(RESOLUTIONS)}"
        )
    return RESOLUTIONS[resolution]


def load_font(font_path: Optional[str], size: int) -> Font:
    try:
        return ImageFont.truetype(font_path or DEFAULT_FONT, size)
    except OSError:
        if font_path:
            logger.warning("Could not load font %s, falling back to default", font_path)
        return ImageFont.load_default(size)


class PillowSurface(RenderingSurface):
    """Draws render instructions onto a fixed-size code viewport.

    The viewport is composed at its configured size and, when an output
    resolution is requested, scaled to fit and centered on a background fill.
    """

    def __init__(
        self,
        viewport: Optional[ViewportConfig] = None,
        theme: Optional[ThemeConfig] = None,
        tokenizer: Optional[SyntaxTokenizer] = None,
        resolution: Optional[str] = None,
    ):
        self.viewport = viewport or ViewportConfig()
        self.theme = theme or ThemeConfig()
        self.tokenizer = tokenizer or PygmentsTokenizer()
        self.output_size = resolve_output_size(resolution, self.viewport)
        self.font = load_font(self.viewport.font_path, self.viewport.font_size)
        self._bg = hex_to_rgb(self.theme.background)
        self._text = hex_to_rgb(self.theme.text)
        self._number = hex_to_rgb(self.theme.line_number)
        self._highlight = hex_to_rgb(self.theme.highlight)
        self._token_colors = {
            name: hex_to_rgb(color) for name, color in self.theme.tokens.items()
        }

    @property
    def dimensions(self) -> tuple[int, int]:
        return self.output_size

    def draw_frame(self, frame: Optional[RenderFrame]) -> PILImage:
        canvas = Image.new("RGB", self.viewport.dimensions, self._bg)
        if frame is not None:
            self._draw_lines(canvas, frame)
        return self._fit(canvas)

    def _scroll_offset(self, frame: RenderFrame) -> float:
        if frame.scroll.type == "none":
            return 0.0
        shift = frame.scroll.to_window.start_line - frame.scroll.from_window.start_line
        limit = self.viewport.max_visible_lines
        shift = max(-limit, min(limit, shift))
        return (1.0 - frame.scroll_progress) * shift * self.viewport.line_height

    def _draw_lines(self, canvas: PILImage, frame: RenderFrame) -> None:
        vp = self.viewport
        draw = ImageDraw.Draw(canvas)
        y_offset = self._scroll_offset(frame)
        code_x = vp.padding + vp.line_number_width

        for row, line in enumerate(frame.lines):
            y = vp.padding + row * vp.line_height + y_offset
            if y + vp.line_height <= 0 or y >= vp.height:
                continue

            if line.highlight > 0:
                color = blend(self._highlight, self._bg, HIGHLIGHT_ALPHA * line.highlight)
                draw.rectangle(
                    [code_x - 4, y, vp.width - vp.padding, y + vp.line_height - 1],
                    fill=color,
                )

            if vp.line_number_width > 0 and line.line_number_opacity > 0:
                label = str(line.display_line_number)
                width = draw.textlength(label, font=self.font)
                draw.text(
                    (code_x - 8 - width, y),
                    label,
                    font=self.font,
                    fill=blend(self._number, self._bg, line.line_number_opacity),
                )

            if line.opacity > 0:
                x = code_x + self._slide_offset(frame.animation_style, line)
                self._draw_code(draw, line, frame.language, x, y)

    def _slide_offset(self, style: str, line: RenderedLine) -> float:
        if style != "slide" or line.animation_state == "stable":
            return 0.0
        travel = (1.0 - line.opacity) * SLIDE_OFFSET_PX
        return travel if line.animation_state == "entering" else -travel

    def _draw_code(
        self, draw: ImageDraw.ImageDraw, line: RenderedLine, language: str, x: float, y: float
    ) -> None:
        text = line.content
        if line.visible_chars is not None:
            text = text[: line.visible_chars]
        if not text:
            return

        for token in self.tokenizer.tokenize(text, language):
            color = self._token_colors.get(token.token_type, self._text)
            draw.text(
                (x, y), token.text, font=self.font, fill=blend(color, self._bg, line.opacity)
            )
            x += draw.textlength(token.text, font=self.font)

    def _fit(self, canvas: PILImage) -> PILImage:
        if canvas.size == self.output_size:
            return canvas

        out_w, out_h = self.output_size
        scale = min(out_w / canvas.width, out_h / canvas.height)
        size = (max(1, round(canvas.width * scale)), max(1, round(canvas.height * scale)))
        scaled = canvas.resize(size, Image.Resampling.LANCZOS)

        result = Image.new("RGB", self.output_size, self._bg)
        result.paste(scaled, ((out_w - size[0]) // 2, (out_h - size[1]) // 2))
        return result
