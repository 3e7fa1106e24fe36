from __future__ import annotations

import logging
from typing import Optional, Sequence

from .ir import ScrollAnimation, ScrollType, WindowState
from .lines import CodeLine, density

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINES = 15
SCROLL_ANIMATION_MS = 300.0
ACTUAL_NUMBERING_DENSITY = 0.8


class ScrollingWindow:
    """Fixed-capacity viewport over a code listing.

    One instance belongs to exactly one playback or export session; the
    window it holds is the only mutable state in the rendering path.
    """

    def __init__(self, max_lines: int = DEFAULT_MAX_LINES):
        if max_lines < 1:
            raise ValueError(f"max_lines must be at least 1, got {max_lines}")
        self.max_lines = max_lines
        self._start = 1
        self._end = max_lines

    @property
    def state(self) -> WindowState:
        return WindowState(start_line=self._start, end_line=self._end, max_lines=self.max_lines)

    def reset(self) -> None:
        self._start = 1
        self._end = self.max_lines

    def should_scroll(self, total_lines: int) -> bool:
        return total_lines > self.max_lines

    def set_window_for_lines(self, target: Sequence[int], total_lines: int) -> ScrollAnimation:
        before = self.state
        start, end = self._compute_window(target, total_lines)
        self._start, self._end = start, end
        after = self.state

        scroll_type: ScrollType = "none"
        if after.start_line > before.start_line:
            scroll_type = "scroll-up"
        elif after.start_line < before.start_line:
            scroll_type = "scroll-down"

        if scroll_type != "none":
            logger.debug(
                "window %d-%d -> %d-%d (%s)",
                before.start_line, before.end_line, start, end, scroll_type,
            )

        return ScrollAnimation(
            type=scroll_type,
            duration_ms=SCROLL_ANIMATION_MS if scroll_type != "none" else 0.0,
            from_window=before,
            to_window=after,
        )

    def window_for(self, target: Sequence[int], total_lines: int) -> WindowState:
        """Window that ``target`` would produce, without moving this one."""
        start, end = self._compute_window(target, total_lines)
        return WindowState(start_line=start, end_line=end, max_lines=self.max_lines)

    def _compute_window(self, target: Sequence[int], total_lines: int) -> tuple[int, int]:
        """Place the window over ``target`` (actual line numbers).

        Short listings show everything, an empty target pins the bottom, a
        target that fits spans exactly ``min..max``, and a wider one is
        bottom-aligned on its last line. The final centering branch only
        runs for a target with repeated numbers, which callers that
        deduplicate never pass.
        """
        max_lines = self.max_lines

        if not self.should_scroll(total_lines):
            return 1, total_lines

        if not target:
            return max(1, total_lines - max_lines + 1), total_lines

        lo, hi = min(target), max(target)

        if len(target) <= max_lines:
            return lo, hi

        if hi - lo + 1 > max_lines:
            return max(1, hi - max_lines + 1), hi

        center = (lo + hi) // 2
        start = max(1, center - max_lines // 2)
        end = min(total_lines, start + max_lines - 1)
        return max(1, end - max_lines + 1), end

    def is_visible(self, line_number: int) -> bool:
        return self._start <= line_number <= self._end

    def display_line_number(self, actual_line_number: int) -> Optional[int]:
        if not self.is_visible(actual_line_number):
            return None
        return actual_line_number - self._start + 1

    def number_lines(self, lines: Sequence[CodeLine]) -> list[tuple[int, CodeLine]]:
        """Pair each in-window line with the number it is displayed under.

        Dense selections keep their real line numbers; scattered ones are
        renumbered 1..N so the gutter does not jump around.
        """
        return number_lines_within(lines, self.state)


def number_lines_within(lines: Sequence[CodeLine], window: WindowState) -> list[tuple[int, CodeLine]]:
    inside = sorted(
        (line for line in lines if window.contains(line.line_number)),
        key=lambda line: line.line_number,
    )
    if use_actual_numbers([line.line_number for line in inside]):
        return [(line.line_number, line) for line in inside]
    return [(i + 1, line) for i, line in enumerate(inside)]


def use_actual_numbers(line_numbers: Sequence[int]) -> bool:
    return len(line_numbers) <= 1 or density(line_numbers) >= ACTUAL_NUMBERING_DENSITY
