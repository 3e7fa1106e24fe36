from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal, Optional, Sequence

from ..schema import LineRange, Slide
from .renderer import CodeSource


class LineRangeParseError(ValueError):
    """Raised when a textual line range such as "1-5, 12" cannot be parsed."""


@dataclass(frozen=True)
class CodeLine:
    line_number: int
    content: str


@dataclass
class LineDiff:
    added: list[CodeLine] = field(default_factory=list)
    removed: list[CodeLine] = field(default_factory=list)
    kept: list[CodeLine] = field(default_factory=list)


class TextCodeSource(CodeSource):
    """Code held in memory as a single string."""

    def __init__(self, code: str):
        self._lines = split_code_lines(code)

    def get_lines(self) -> list[str]:
        return list(self._lines)

    @property
    def line_count(self) -> int:
        return len(self._lines)


def split_code_lines(code: str) -> list[str]:
    return code.split("\n")


def expand_line_ranges(ranges: Iterable[LineRange]) -> list[int]:
    numbers: set[int] = set()
    for r in ranges:
        numbers.update(range(r.start, r.end + 1))
    return sorted(numbers)


def compact_line_numbers(numbers: Sequence[int]) -> list[LineRange]:
    """Collapse sorted line numbers into the fewest contiguous ranges."""
    if not numbers:
        return []

    ranges: list[LineRange] = []
    start = end = numbers[0]
    for n in numbers[1:]:
        if n == end + 1:
            end = n
        else:
            ranges.append(LineRange(start=start, end=end))
            start = end = n
    ranges.append(LineRange(start=start, end=end))
    return ranges


def update_line_ranges(
    ranges: Sequence[LineRange],
    line_number: int,
    action: Literal["add", "remove"],
) -> list[LineRange]:
    numbers = set(expand_line_ranges(ranges))
    if action == "add":
        numbers.add(line_number)
    else:
        numbers.discard(line_number)
    return compact_line_numbers(sorted(numbers))


def parse_line_ranges(text: str) -> list[LineRange]:
    """Parse "1-5, 12-15, 20" into line ranges."""
    if not text.strip():
        return []

    ranges: list[LineRange] = []
    for part in (p.strip() for p in text.split(",")):
        if "-" in part:
            start_str, _, end_str = part.partition("-")
            try:
                start, end = int(start_str.strip()), int(end_str.strip())
            except ValueError as e:
                raise LineRangeParseError(f"Invalid range format: {part}") from e
            if start > end:
                raise LineRangeParseError(
                    f"Invalid range: start ({start}) cannot be greater than end ({end})"
                )
        else:
            try:
                start = end = int(part)
            except ValueError as e:
                raise LineRangeParseError(f"Invalid line number: {part}") from e
        if start < 1:
            raise LineRangeParseError(f"Line numbers start at 1: {part}")
        ranges.append(LineRange(start=start, end=end))
    return ranges


def format_line_ranges(ranges: Iterable[LineRange]) -> str:
    return ", ".join(str(r) for r in ranges)


def find_overlapping_ranges(ranges: Sequence[LineRange]) -> list[tuple[LineRange, LineRange]]:
    overlaps = []
    for i, a in enumerate(ranges):
        for b in ranges[i + 1:]:
            if a.overlaps(b):
                overlaps.append((a, b))
    return overlaps


def visible_line_numbers(slide: Slide, code_line_count: Optional[int] = None) -> list[int]:
    numbers = expand_line_ranges(slide.line_ranges)
    if code_line_count is None:
        return numbers
    return [n for n in numbers if 1 <= n <= code_line_count]


def lines_for_numbers(numbers: Iterable[int], code_lines: Sequence[str]) -> list[CodeLine]:
    return [
        CodeLine(n, code_lines[n - 1])
        for n in numbers
        if 1 <= n <= len(code_lines)
    ]


def slide_lines(slide: Slide, code_lines: Sequence[str]) -> list[CodeLine]:
    return lines_for_numbers(visible_line_numbers(slide, len(code_lines)), code_lines)


def cumulative_lines(
    slides: Sequence[Slide],
    up_to_index: int,
    code_lines: Sequence[str],
) -> list[CodeLine]:
    """Union of every slide's lines from the first slide through ``up_to_index``."""
    numbers: set[int] = set()
    for slide in slides[: up_to_index + 1]:
        numbers.update(expand_line_ranges(slide.line_ranges))
    return lines_for_numbers(sorted(numbers), code_lines)


def diff_lines(prev: Sequence[CodeLine], next_: Sequence[CodeLine]) -> LineDiff:
    prev_numbers = {line.line_number for line in prev}
    next_numbers = {line.line_number for line in next_}

    def _sorted(lines: Iterable[CodeLine]) -> list[CodeLine]:
        return sorted(lines, key=lambda line: line.line_number)

    return LineDiff(
        added=_sorted(line for line in next_ if line.line_number not in prev_numbers),
        removed=_sorted(line for line in prev if line.line_number not in next_numbers),
        kept=_sorted(line for line in next_ if line.line_number in prev_numbers),
    )


def density(line_numbers: Sequence[int]) -> float:
    """Share of the numeric span ``min..max`` actually covered by ``line_numbers``."""
    if len(line_numbers) <= 1:
        return 1.0
    span = max(line_numbers) - min(line_numbers) + 1
    return len(line_numbers) / span
