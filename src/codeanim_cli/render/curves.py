"""Opacity and reveal curves for line transitions.

Every curve is a pure function of transition progress. The first
``LINE_NUMBER_PHASE`` of a transition belongs to the line-number gutter; code
content animates over the remaining share, rescaled to [0, 1].
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Literal, NamedTuple, Sequence

Direction = Literal["entering", "leaving"]
Curve = Callable[[float], float]

LINE_NUMBER_PHASE = 0.15
SLIDE_OPACITY_RATE = 1.5
HIGHLIGHT_EDGE = 0.2
HIGHLIGHT_RATE = 5.0


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def code_progress(progress: float) -> float:
    progress = _clamp(progress)
    return max(0.0, (progress - LINE_NUMBER_PHASE) / (1.0 - LINE_NUMBER_PHASE))


def _fade_in(cp: float) -> float:
    return cp


def _fade_out(cp: float) -> float:
    return 1.0 - cp


def _slide_in(cp: float) -> float:
    return min(1.0, cp * SLIDE_OPACITY_RATE)


def _slide_out(cp: float) -> float:
    return max(0.0, 1.0 - cp * SLIDE_OPACITY_RATE)


def _highlight_in(cp: float) -> float:
    return 1.0 if cp > HIGHLIGHT_EDGE else cp * HIGHLIGHT_RATE


def _highlight_out(cp: float) -> float:
    return 1.0 if cp < 1.0 - HIGHLIGHT_EDGE else (1.0 - cp) * HIGHLIGHT_RATE


class StyleCurves(NamedTuple):
    entering: Curve
    leaving: Curve
    highlight_overlay: bool = False


CURVES: dict[str, StyleCurves] = {
    "fade": StyleCurves(_fade_in, _fade_out),
    "slide": StyleCurves(_slide_in, _slide_out),
    "typewriter": StyleCurves(_fade_in, _fade_out),
    "highlight": StyleCurves(_highlight_in, _highlight_out, highlight_overlay=True),
}


def line_opacity(style: str, progress: float, direction: Direction) -> float:
    curves = CURVES.get(style, CURVES["fade"])
    curve = curves.entering if direction == "entering" else curves.leaving
    return _clamp(curve(code_progress(progress)))


def line_number_opacity(progress: float, direction: Direction) -> float:
    progress = _clamp(progress)
    if direction == "entering":
        return min(1.0, progress / LINE_NUMBER_PHASE)
    return _clamp(1.0 - (progress - (1.0 - LINE_NUMBER_PHASE)) / LINE_NUMBER_PHASE)


def highlight_intensity(style: str, progress: float, direction: Direction) -> float:
    """Strength of the transient background highlight behind entering lines."""
    curves = CURVES.get(style, CURVES["fade"])
    if not curves.highlight_overlay or direction != "entering":
        return 0.0
    return _clamp(1.0 - code_progress(progress))


@dataclass(frozen=True)
class CharacterReveal:
    line_index: int
    visible_length: int
    is_complete: bool


def typewriter_line_progress(
    line_index: int,
    line_count: int,
    progress: float,
    sequential: bool = True,
) -> float:
    """Progress of one line inside its equal slice of the transition."""
    progress = _clamp(progress)
    if not sequential or line_count <= 0:
        return progress

    slice_len = 1.0 / line_count
    slice_start = line_index * slice_len
    slice_end = (line_index + 1) * slice_len
    if progress <= slice_start:
        return 0.0
    if progress >= slice_end:
        return 1.0
    return (progress - slice_start) / slice_len


def typewriter_reveal(
    lines: Sequence[str],
    progress: float,
    sequential: bool = True,
) -> list[CharacterReveal]:
    reveals = []
    for i, text in enumerate(lines):
        line_progress = typewriter_line_progress(i, len(lines), progress, sequential)
        if line_progress >= 1.0:
            visible = len(text)
        else:
            visible = max(0, math.floor(len(text) * line_progress))
        reveals.append(CharacterReveal(i, visible, line_progress >= 1.0))
    return reveals
