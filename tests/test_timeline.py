from __future__ import annotations

import json
from pathlib import Path

import pytest

from codeanim_cli.render.timeline import (
    TimelineScheduler,
    build_timeline_ir,
    compute_timeline_steps,
    describe_timeline,
    effective_duration,
    export_timeline_jsonschema,
    write_timeline,
)
from codeanim_cli.schema import LineRange, Project, ProjectSettings, Slide


def _slide(slide_id: str, start: int, end: int, duration_ms: float = 1000, order: int = 0) -> Slide:
    return Slide(
        id=slide_id,
        name=slide_id,
        line_ranges=[LineRange(start=start, end=end)],
        duration_ms=duration_ms,
        order=order,
    )


class TestComputeTimelineSteps:
    def test_durations_scaled_by_speed(self):
        slides = [_slide("a", 1, 3, 1000), _slide("b", 2, 5, 3000)]
        steps = compute_timeline_steps(slides, global_speed=2.0)
        assert sum(s.duration_ms for s in steps) == pytest.approx(4000 / 2.0)
        assert steps[1].start_time_ms == pytest.approx(500)

    def test_steps_contiguous(self):
        slides = [_slide(str(i), 1, 2, 700 + i * 100) for i in range(4)]
        steps = compute_timeline_steps(slides)
        for prev, nxt in zip(steps, steps[1:]):
            assert nxt.start_time_ms == pytest.approx(prev.end_time_ms)

    def test_line_deltas(self):
        steps = compute_timeline_steps([_slide("a", 1, 3), _slide("b", 2, 5)])
        assert steps[0].lines_to_add == [1, 2, 3]
        assert steps[0].lines_to_remove == []
        assert steps[1].lines_to_add == [4, 5]
        assert steps[1].lines_to_remove == [1]
        assert steps[1].visible_lines == [2, 3, 4, 5]

    def test_visible_lines_clipped_to_code(self):
        steps = compute_timeline_steps([_slide("a", 1, 50)], code_line_count=10)
        assert steps[0].visible_lines == list(range(1, 11))

    def test_non_positive_speed_rejected(self):
        with pytest.raises(ValueError):
            compute_timeline_steps([_slide("a", 1, 2)], global_speed=0)
        with pytest.raises(ValueError):
            effective_duration(_slide("a", 1, 2), -1.0)

    def test_empty(self):
        assert compute_timeline_steps([]) == []


class TestTimelineScheduler:
    def _scheduler(self) -> TimelineScheduler:
        return TimelineScheduler.from_slides([_slide("a", 1, 3), _slide("b", 2, 5)])

    def test_total_duration(self):
        assert self._scheduler().total_duration_ms == 2000

    def test_locate_within_step(self):
        loc = self._scheduler().locate(1500)
        assert loc.slide_index == 1
        assert loc.local_progress == pytest.approx(0.5)

    def test_locate_step_boundary_belongs_to_next_step(self):
        loc = self._scheduler().locate(1000)
        assert loc.slide_index == 1
        assert loc.local_progress == 0.0

    def test_locate_outside_timeline(self):
        sched = self._scheduler()
        assert sched.locate(-1) is None
        assert sched.locate(2000) is None
        assert sched.locate(5000) is None

    def test_seek_matches_locate(self):
        sched = self._scheduler()
        assert sched.seek(250) == sched.locate(250)

    def test_previous_visible_lines(self):
        sched = self._scheduler()
        assert sched.previous_visible_lines(0) == []
        assert sched.previous_visible_lines(1) == [1, 2, 3]

    def test_empty_scheduler(self):
        sched = TimelineScheduler([])
        assert sched.total_duration_ms == 0
        assert sched.locate(0) is None


class TestTimelineIR:
    def _project(self) -> Project:
        return Project(
            name="demo",
            language="python",
            code="\n".join(f"x{i} = {i}" for i in range(1, 8)),
            slides=[_slide("b", 3, 4, order=1), _slide("a", 1, 2, order=0)],
            settings=ProjectSettings(global_speed=2.0),
        )

    def test_build_uses_slide_order(self):
        ir = build_timeline_ir(self._project())
        assert ir.total_duration_ms == pytest.approx(1000)
        assert ir.steps[0].visible_lines == [1, 2]
        assert ir.global_speed == 2.0

    def test_speed_override(self):
        ir = build_timeline_ir(self._project(), global_speed=1.0)
        assert ir.total_duration_ms == pytest.approx(2000)

    def test_describe_in_seconds(self):
        rows = describe_timeline(build_timeline_ir(self._project()).steps)
        assert rows[1]["start_sec"] == 0.5
        assert rows[1]["end_sec"] == 1.0
        assert rows[1]["added"] == 2
        assert rows[1]["removed"] == 2

    def test_write_timeline(self, tmp_path: Path):
        out = write_timeline(build_timeline_ir(self._project()), tmp_path / "out" / "timeline.json")
        data = json.loads(out.read_text())
        assert data["project"] == "demo"
        assert len(data["steps"]) == 2

    def test_export_jsonschema(self, tmp_path: Path):
        out = export_timeline_jsonschema(tmp_path / "timeline.schema.json")
        schema = json.loads(out.read_text())
        assert "steps" in schema["properties"]
