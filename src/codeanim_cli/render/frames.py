from __future__ import annotations

from typing import Optional, Sequence

from ..schema import LineRange, Slide
from .curves import (
    highlight_intensity,
    line_number_opacity,
    line_opacity,
    typewriter_reveal,
)
from .ir import AnimationState, RenderedLine, RenderFrame, ScrollAnimation, TimelineStep
from .lines import (
    compact_line_numbers,
    diff_lines,
    lines_for_numbers,
    split_code_lines,
    visible_line_numbers,
)
from .timeline import TimelineScheduler, effective_duration
from .window import ScrollingWindow, number_lines_within


def _scroll_progress(scroll: ScrollAnimation, elapsed_ms: float) -> float:
    if scroll.type == "none" or scroll.duration_ms <= 0:
        return 1.0
    return max(0.0, min(1.0, elapsed_ms / scroll.duration_ms))


def compose_frame(
    code_lines: Sequence[str],
    language: str,
    prev_numbers: Sequence[int],
    next_numbers: Sequence[int],
    style: str,
    progress: float,
    duration_ms: float,
    window: ScrollingWindow,
    sequential_typewriter: bool = True,
    slide_index: Optional[int] = None,
    scroll: Optional[ScrollAnimation] = None,
) -> RenderFrame:
    """Build the render instructions for one point inside a transition.

    ``window`` is advanced to fit ``next_numbers``; callers own it per session.
    Incoming and kept lines are numbered inside the new window. Outgoing lines
    keep the numbers they had under ``prev_numbers`` and its window, so they
    fade out in place even when the new window no longer covers them.
    Pass the transition's ``scroll`` back in on later frames of the same step so
    the scroll keeps animating after the window has already moved.
    """
    progress = max(0.0, min(1.0, progress))
    diff = diff_lines(
        lines_for_numbers(prev_numbers, code_lines),
        lines_for_numbers(next_numbers, code_lines),
    )

    prev_window = window.window_for(prev_numbers, len(code_lines))
    moved = window.set_window_for_lines(
        [line.line_number for line in diff.added + diff.kept],
        len(code_lines),
    )
    if scroll is None:
        scroll = moved

    states: dict[int, AnimationState] = {}
    for line in diff.kept:
        states[line.line_number] = "stable"
    for line in diff.added:
        states[line.line_number] = "entering"
    for line in diff.removed:
        states[line.line_number] = "leaving"

    reveal_by_line: dict[int, int] = {}
    if style == "typewriter" and diff.added:
        reveals = typewriter_reveal(
            [line.content for line in diff.added], progress, sequential_typewriter
        )
        for line, reveal in zip(diff.added, reveals):
            reveal_by_line[line.line_number] = reveal.visible_length

    numbered = window.number_lines(diff.kept + diff.added)
    removed = {line.line_number for line in diff.removed}
    numbered += [
        (number, line)
        for number, line in number_lines_within(diff.kept + diff.removed, prev_window)
        if line.line_number in removed
    ]

    rendered: list[RenderedLine] = []
    for display_number, line in numbered:
        state = states[line.line_number]
        if state == "stable":
            rendered.append(
                RenderedLine(
                    display_line_number=display_number,
                    actual_line_number=line.line_number,
                    content=line.content,
                    opacity=1.0,
                    animation_state=state,
                    line_number_opacity=1.0,
                )
            )
            continue

        opacity = line_opacity(style, progress, state)
        number_opacity = line_number_opacity(progress, state)
        if opacity <= 0 and number_opacity <= 0:
            continue

        typewriter_progress = None
        visible_chars = None
        if line.line_number in reveal_by_line:
            visible_chars = reveal_by_line[line.line_number]
            typewriter_progress = visible_chars / max(1, len(line.content))

        rendered.append(
            RenderedLine(
                display_line_number=display_number,
                actual_line_number=line.line_number,
                content=line.content,
                opacity=opacity,
                animation_state=state,
                line_number_opacity=number_opacity,
                typewriter_progress=typewriter_progress,
                visible_chars=visible_chars,
                highlight=highlight_intensity(style, progress, state),
            )
        )

    rendered.sort(key=lambda r: (r.display_line_number, r.actual_line_number))
    return RenderFrame(
        language=language,
        animation_style=style,
        progress=progress,
        lines=rendered,
        window=window.state,
        scroll=scroll,
        scroll_progress=_scroll_progress(scroll, progress * duration_ms),
        slide_index=slide_index,
    )


class FrameSampler:
    """Samples the continuous timeline into render instructions.

    Each sampler owns its ScrollingWindow, so a preview and an export never
    share window state. Times past the last step sample to ``None``.
    """

    def __init__(
        self,
        code: str,
        language: str,
        steps: Sequence[TimelineStep],
        window: Optional[ScrollingWindow] = None,
        sequential_typewriter: bool = True,
    ):
        self.code_lines = split_code_lines(code)
        self.language = language
        self.scheduler = TimelineScheduler(steps)
        self.window = window or ScrollingWindow()
        self.sequential_typewriter = sequential_typewriter
        self.window.reset()
        self._active_index: Optional[int] = None
        self._active_scroll: Optional[ScrollAnimation] = None

    @property
    def total_duration_ms(self) -> float:
        return self.scheduler.total_duration_ms

    def sample(self, t_ms: float) -> Optional[RenderFrame]:
        location = self.scheduler.locate(t_ms)
        if location is None:
            return None
        return self.frame_for_step(location.slide_index, location.local_progress)

    def frame_for_step(self, index: int, progress: float) -> RenderFrame:
        step = self.scheduler.step(index)
        if index != self._active_index:
            self._active_index = index
            self._active_scroll = None
        frame = compose_frame(
            self.code_lines,
            self.language,
            self.scheduler.previous_visible_lines(index),
            step.visible_lines,
            step.animation_style,
            progress,
            step.duration_ms,
            self.window,
            self.sequential_typewriter,
            slide_index=step.slide_index,
            scroll=self._active_scroll,
        )
        self._active_scroll = frame.scroll
        return frame


def render_preview_frame(
    code: str,
    language: str,
    from_slide: Optional[Slide],
    to_slide: Slide,
    progress: float,
    global_speed: float = 1.0,
    window: Optional[ScrollingWindow] = None,
    sequential_typewriter: bool = True,
) -> list[RenderedLine]:
    """Rendered lines for the transition ``from_slide`` -> ``to_slide`` at ``progress``.

    ``progress`` is the transition's local progress as returned by
    ``TimelineScheduler.locate``; ``global_speed`` only stretches the
    transition's wall-clock length, which paces the scroll animation.
    """
    code_lines = split_code_lines(code)
    prev = visible_line_numbers(from_slide, len(code_lines)) if from_slide else []
    frame = compose_frame(
        code_lines,
        language,
        prev,
        visible_line_numbers(to_slide, len(code_lines)),
        to_slide.animation_style,
        progress,
        effective_duration(to_slide, global_speed),
        window or ScrollingWindow(),
        sequential_typewriter,
    )
    return frame.lines


def render_static_frame(
    code: str,
    language: str,
    slide: Slide,
    window: Optional[ScrollingWindow] = None,
) -> RenderFrame:
    """Settled state of ``slide``: every line stable and fully shown."""
    code_lines = split_code_lines(code)
    numbers = visible_line_numbers(slide, len(code_lines))
    return compose_frame(
        code_lines,
        language,
        numbers,
        numbers,
        slide.animation_style,
        1.0,
        slide.duration_ms,
        window or ScrollingWindow(),
    )


def windowed_line_ranges(
    code: str,
    slide: Slide,
    window: Optional[ScrollingWindow] = None,
) -> list[LineRange]:
    frame = render_static_frame(code, "text", slide, window)
    return compact_line_numbers(sorted(line.actual_line_number for line in frame.lines))
