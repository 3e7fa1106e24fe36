from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from .io import load_project
from .render.lines import find_overlapping_ranges, split_code_lines
from .schema import ANIMATION_STYLES, Project


@dataclass
class ValidationResult:
    ok: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_project_model(project: Project) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if not project.code.strip():
        errors.append("Project has no code")
    if not project.slides:
        errors.append("Project has no slides")
    if project.settings.global_speed <= 0:
        errors.append(f"global_speed must be greater than 0, got {project.settings.global_speed}")

    line_count = len(split_code_lines(project.code)) if project.code else 0

    for slide in project.slides:
        label = f"slide '{slide.id}'"
        if not slide.name.strip():
            errors.append(f"{label}: name is required")
        if slide.duration_ms <= 0:
            errors.append(f"{label}: duration must be greater than 0")
        if slide.animation_style not in ANIMATION_STYLES:
            errors.append(f"{label}: unknown animation style '{slide.animation_style}'")
        if not slide.line_ranges:
            warnings.append(f"{label}: no line ranges, slide shows no code")
        for r in slide.line_ranges:
            if line_count and r.end > line_count:
                errors.append(
                    f"{label}: line range {r} exceeds code length ({line_count} lines)"
                )
        for a, b in find_overlapping_ranges(slide.line_ranges):
            errors.append(f"{label}: overlapping line ranges {a} and {b}")

    ids = Counter(s.id for s in project.slides)
    for slide_id, n in ids.items():
        if n > 1:
            errors.append(f"Duplicate slide id: {slide_id}")

    names = Counter(s.name for s in project.slides)
    for name, n in names.items():
        if n > 1:
            warnings.append(f"Duplicate slide name: {name}")

    orders = Counter(s.order for s in project.slides)
    for order, n in orders.items():
        if n > 1:
            warnings.append(f"{n} slides share order {order}; they keep file order")

    return ValidationResult(len(errors) == 0, errors, warnings)


def validate_project(project_path: Path) -> ValidationResult:
    try:
        project = load_project(project_path)
    except ValidationError as e:
        return ValidationResult(False, [str(e)])
    except Exception as e:
        return ValidationResult(False, [f"Failed reading {project_path.name}: {e}"])

    return validate_project_model(project)
