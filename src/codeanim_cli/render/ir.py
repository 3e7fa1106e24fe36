from __future__ import annotations

from typing import Literal, Optional
from pydantic import BaseModel, Field

from ..schema import AnimationStyle

AnimationState = Literal["entering", "leaving", "stable"]
ScrollType = Literal["none", "scroll-up", "scroll-down"]


class TimelineStep(BaseModel):
    slide_index: int = Field(ge=0)
    start_time_ms: float = Field(ge=0.0)
    duration_ms: float = Field(gt=0.0)
    animation_style: AnimationStyle
    lines_to_add: list[int] = Field(default_factory=list)
    lines_to_remove: list[int] = Field(default_factory=list)
    visible_lines: list[int] = Field(default_factory=list)

    @property
    def end_time_ms(self) -> float:
        return self.start_time_ms + self.duration_ms


class Location(BaseModel):
    slide_index: int
    local_progress: float = Field(ge=0.0, le=1.0)


class WindowState(BaseModel):
    start_line: int
    end_line: int
    max_lines: int = Field(ge=1)

    def contains(self, line_number: int) -> bool:
        return self.start_line <= line_number <= self.end_line


class ScrollAnimation(BaseModel):
    type: ScrollType = "none"
    duration_ms: float = 0.0
    from_window: WindowState
    to_window: WindowState


class RenderedLine(BaseModel):
    display_line_number: int
    actual_line_number: int
    content: str
    opacity: float = Field(ge=0.0, le=1.0)
    animation_state: AnimationState = "stable"
    line_number_opacity: float = Field(default=1.0, ge=0.0, le=1.0)
    typewriter_progress: Optional[float] = None
    visible_chars: Optional[int] = None
    highlight: float = Field(default=0.0, ge=0.0, le=1.0)


class RenderFrame(BaseModel):
    language: str = "text"
    animation_style: AnimationStyle = "fade"
    progress: float = Field(default=1.0, ge=0.0, le=1.0)
    lines: list[RenderedLine] = Field(default_factory=list)
    window: WindowState
    scroll: ScrollAnimation
    scroll_progress: float = Field(default=1.0, ge=0.0, le=1.0)
    slide_index: Optional[int] = None


class TimelineIR(BaseModel):
    schema_version: int = 1
    project: str
    global_speed: float = Field(gt=0.0)
    total_duration_ms: float = Field(ge=0.0)
    steps: list[TimelineStep] = Field(default_factory=list)
