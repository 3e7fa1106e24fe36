from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, AsyncIterator, Optional, Sequence

from .config import CodeAnimConfig
from .render.compositor import PillowSurface
from .render.frames import FrameSampler
from .render.ir import Location, RenderFrame
from .render.renderer import RenderingSurface
from .render.timeline import compute_timeline_steps
from .render.lines import split_code_lines
from .render.window import ScrollingWindow
from .schema import Slide

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage

logger = logging.getLogger(__name__)


class PreviewSession:
    """Interactive playback over a slide sequence.

    Owns its own window and surface, so it can run while an export is active.
    Playback follows the wall clock; seeking samples the same timeline.
    """

    def __init__(
        self,
        code: str,
        language: str,
        slides: Sequence[Slide],
        global_speed: float = 1.0,
        config: Optional[CodeAnimConfig] = None,
        surface: Optional[RenderingSurface] = None,
    ):
        config = config or CodeAnimConfig()
        steps = compute_timeline_steps(slides, global_speed, len(split_code_lines(code)))
        self.sampler = FrameSampler(
            code, language, steps, ScrollingWindow(config.viewport.max_visible_lines)
        )
        self.surface = surface or PillowSurface(config.viewport, config.theme)
        self.position_ms = 0.0
        self.playing = False

    @property
    def total_duration_ms(self) -> float:
        return self.sampler.total_duration_ms

    def seek(self, t_ms: float) -> Optional[Location]:
        self.position_ms = max(0.0, min(t_ms, self.total_duration_ms))
        return self.sampler.scheduler.seek(self.position_ms)

    def frame_at(self, t_ms: Optional[float] = None) -> Optional[RenderFrame]:
        if t_ms is not None:
            self.seek(t_ms)
        return self.sampler.sample(self.position_ms)

    def render(self, t_ms: Optional[float] = None) -> PILImage:
        return self.surface.draw_frame(self.frame_at(t_ms))

    def stop(self) -> None:
        self.playing = False

    async def play(self, frame_rate: int = 30) -> AsyncIterator[tuple[float, Optional[RenderFrame]]]:
        """Yield ``(t_ms, frame)`` pairs paced by the wall clock until the end or ``stop()``."""
        self.playing = True
        origin = time.monotonic() - self.position_ms / 1000.0
        interval = 1.0 / frame_rate
        logger.debug("Playing from %.0fms of %.0fms", self.position_ms, self.total_duration_ms)

        while self.playing:
            elapsed_ms = (time.monotonic() - origin) * 1000.0
            if elapsed_ms >= self.total_duration_ms:
                self.position_ms = self.total_duration_ms
                break
            self.position_ms = elapsed_ms
            yield elapsed_ms, self.sampler.sample(elapsed_ms)
            await asyncio.sleep(interval)

        self.playing = False

    async def frames(self, frame_rate: int = 30) -> AsyncIterator[PILImage]:
        async for _, frame in self.play(frame_rate):
            yield self.surface.draw_frame(frame)
