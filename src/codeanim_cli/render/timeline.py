from __future__ import annotations

import json
from bisect import bisect_right
from pathlib import Path
from typing import Any, Optional, Sequence

from ..schema import Project, Slide
from .ir import Location, TimelineIR, TimelineStep
from .lines import split_code_lines, visible_line_numbers


def effective_duration(slide: Slide, global_speed: float) -> float:
    if global_speed <= 0:
        raise ValueError(f"global_speed must be greater than 0, got {global_speed}")
    return slide.duration_ms / global_speed


def compute_timeline_steps(
    slides: Sequence[Slide],
    global_speed: float = 1.0,
    code_line_count: Optional[int] = None,
) -> list[TimelineStep]:
    """Schedule ``slides`` back to back and record each one's line deltas."""
    steps: list[TimelineStep] = []
    current: set[int] = set()
    elapsed = 0.0

    for index, slide in enumerate(slides):
        visible = visible_line_numbers(slide, code_line_count)
        nxt = set(visible)
        duration = effective_duration(slide, global_speed)
        steps.append(
            TimelineStep(
                slide_index=index,
                start_time_ms=elapsed,
                duration_ms=duration,
                animation_style=slide.animation_style,
                lines_to_add=sorted(nxt - current),
                lines_to_remove=sorted(current - nxt),
                visible_lines=visible,
            )
        )
        current = nxt
        elapsed += duration

    return steps


class TimelineScheduler:
    """Answers "which step is active at time t" for a fixed list of steps."""

    def __init__(self, steps: Sequence[TimelineStep]):
        self.steps = list(steps)
        self._starts = [s.start_time_ms for s in self.steps]

    @classmethod
    def from_slides(
        cls,
        slides: Sequence[Slide],
        global_speed: float = 1.0,
        code_line_count: Optional[int] = None,
    ) -> "TimelineScheduler":
        return cls(compute_timeline_steps(slides, global_speed, code_line_count))

    @property
    def total_duration_ms(self) -> float:
        if not self.steps:
            return 0.0
        return self.steps[-1].end_time_ms

    def locate(self, t_ms: float) -> Optional[Location]:
        if t_ms < 0 or not self.steps:
            return None
        i = bisect_right(self._starts, t_ms) - 1
        if i < 0:
            return None
        step = self.steps[i]
        if t_ms >= step.end_time_ms:
            return None
        progress = (t_ms - step.start_time_ms) / step.duration_ms
        return Location(slide_index=step.slide_index, local_progress=progress)

    # Scrubbing samples the timeline exactly like playback does.
    seek = locate

    def step(self, index: int) -> TimelineStep:
        return self.steps[index]

    def previous_visible_lines(self, index: int) -> list[int]:
        if index <= 0:
            return []
        return self.steps[index - 1].visible_lines


def build_timeline_ir(project: Project, global_speed: Optional[float] = None) -> TimelineIR:
    speed = project.settings.global_speed if global_speed is None else global_speed
    line_count = len(split_code_lines(project.code))
    scheduler = TimelineScheduler.from_slides(project.ordered_slides(), speed, line_count)
    return TimelineIR(
        project=project.name,
        global_speed=speed,
        total_duration_ms=scheduler.total_duration_ms,
        steps=scheduler.steps,
    )


def describe_timeline(steps: Sequence[TimelineStep]) -> list[dict[str, Any]]:
    """Flat per-step rows in seconds, for tables and timing checks."""
    return [
        {
            "slide_index": s.slide_index,
            "style": s.animation_style,
            "start_sec": round(s.start_time_ms / 1000.0, 3),
            "end_sec": round(s.end_time_ms / 1000.0, 3),
            "duration_sec": round(s.duration_ms / 1000.0, 3),
            "added": len(s.lines_to_add),
            "removed": len(s.lines_to_remove),
            "visible": len(s.visible_lines),
        }
        for s in steps
    ]


def write_timeline(ir: TimelineIR, out_path: Path) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(ir.model_dump(mode="json"), indent=2), encoding="utf-8")
    return out_path


def export_timeline_jsonschema(out_path: Path) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    schema = TimelineIR.model_json_schema()
    out_path.write_text(json.dumps(schema, indent=2), encoding="utf-8")
    return out_path
