from __future__ import annotations

from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel

from .highlight import detect_language
from .schema import Project

T = TypeVar("T", bound=BaseModel)


def read_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML root must be a mapping: {p}")
    return data


def load_model(model_cls: type[T], path: str | Path) -> T:
    return model_cls.model_validate(read_yaml(path))


def load_project(path: str | Path) -> Project:
    """Load a project file, reading ``code_file`` relative to it when set.

    ``language: auto`` is resolved by guessing from the code itself.
    """
    p = Path(path)
    project = load_model(Project, p)
    if project.code_file and not project.code:
        code_path = p.parent / project.code_file
        if not code_path.exists():
            raise FileNotFoundError(f"code_file not found: {code_path}")
        project = project.model_copy(update={"code": code_path.read_text(encoding="utf-8")})
    if project.language == "auto":
        project = project.model_copy(update={"language": detect_language(project.code) or "text"})
    return project
