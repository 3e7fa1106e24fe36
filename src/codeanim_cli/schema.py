from __future__ import annotations

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


AnimationStyle = Literal["fade", "slide", "typewriter", "highlight"]
ANIMATION_STYLES: tuple[str, ...] = ("fade", "slide", "typewriter", "highlight")

Resolution = Literal["720p", "1080p", "4K"]
RESOLUTIONS: dict[str, tuple[int, int]] = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "4K": (3840, 2160),
}


class LineRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=1)
    end: int = Field(ge=1)

    @model_validator(mode="after")
    def _start_before_end(self):
        if self.start > self.end:
            raise ValueError(
                f"Invalid range: start ({self.start}) cannot be greater than end ({self.end})"
            )
        return self

    def overlaps(self, other: "LineRange") -> bool:
        return self.start <= other.end and other.start <= self.end

    def __str__(self) -> str:
        if self.start == self.end:
            return str(self.start)
        return f"{self.start}-{self.end}"


class Slide(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    line_ranges: list[LineRange] = Field(default_factory=list)
    duration_ms: float = Field(gt=0.0)
    animation_style: AnimationStyle = "fade"
    order: int = 0

    @model_validator(mode="after")
    def _no_overlapping_ranges(self):
        ranges = self.line_ranges
        for i, a in enumerate(ranges):
            for b in ranges[i + 1:]:
                if a.overlaps(b):
                    raise ValueError(
                        f"Slide {self.id}: overlapping line ranges {a} and {b}"
                    )
        return self


class VideoSettings(BaseModel):
    resolution: Resolution = "1080p"
    frame_rate: int = Field(default=30, ge=1, le=120)
    # Checked against the available encoders at export time, not here.
    format: str = "mp4"

    @property
    def dimensions(self) -> tuple[int, int]:
        return RESOLUTIONS[self.resolution]


class ProjectSettings(BaseModel):
    global_speed: float = Field(default=1.0, gt=0.0)
    video: VideoSettings = VideoSettings()


class Project(BaseModel):
    name: str
    language: str = "text"
    code: str = ""
    code_file: Optional[str] = None
    slides: list[Slide] = Field(default_factory=list)
    settings: ProjectSettings = ProjectSettings()

    @model_validator(mode="after")
    def _no_dupe_slide_ids(self):
        ids = [s.id for s in self.slides]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Project {self.name}: duplicate slide id")
        return self

    def ordered_slides(self) -> list[Slide]:
        return sorted(self.slides, key=lambda s: s.order)
