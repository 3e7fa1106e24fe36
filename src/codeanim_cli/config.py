from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .schema import Resolution

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "codeanim.toml"


class ViewportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    width: int = Field(default=800, ge=16)
    height: int = Field(default=450, ge=16)
    font_size: int = Field(default=14, ge=4)
    line_height: int = Field(default=20, ge=4)
    padding: int = Field(default=20, ge=0)
    line_number_width: int = Field(default=40, ge=0)
    max_visible_lines: int = Field(default=15, ge=1)
    font_path: Optional[str] = None

    @model_validator(mode="after")
    def check_layout(self) -> "ViewportConfig":
        if self.content_width <= 0 or self.content_height <= 0:
            raise ValueError(
                f"padding {self.padding} leaves no room for content in "
                f"{self.width}x{self.height}"
            )
        return self

    @property
    def dimensions(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def content_width(self) -> int:
        return self.width - 2 * self.padding - self.line_number_width

    @property
    def content_height(self) -> int:
        return self.height - 2 * self.padding

    def should_scroll(self, total_lines: int) -> bool:
        return total_lines > self.max_visible_lines


class ExportDefaults(BaseModel):
    model_config = ConfigDict(extra="forbid")
    frame_rate: int = Field(default=30, ge=1, le=120)
    resolution: Resolution = "1080p"
    format: str = "mp4"


def _hex_color(v: str) -> str:
    value = v.lstrip("#")
    if len(value) not in (3, 6):
        raise ValueError(f"expected a hex color like '#1f2937', got {v!r}")
    try:
        int(value, 16)
    except ValueError as e:
        raise ValueError(f"expected a hex color like '#1f2937', got {v!r}") from e
    return "#" + value.lower()


class ThemeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    background: str = "#111827"
    text: str = "#d1d5db"
    line_number: str = "#6b7280"
    highlight: str = "#fbbf24"
    tokens: dict[str, str] = Field(
        default_factory=lambda: {
            "comment": "#6b7280",
            "keyword": "#c084fc",
            "string": "#86efac",
            "number": "#fdba74",
            "operator": "#67e8f9",
            "punctuation": "#9ca3af",
            "function": "#93c5fd",
            "class-name": "#fde047",
            "variable": "#f9a8d4",
            "tag": "#f87171",
            "attr-name": "#fdba74",
            "regex": "#5eead4",
        }
    )

    @field_validator("background", "text", "line_number", "highlight")
    @classmethod
    def validate_color(cls, v: str) -> str:
        return _hex_color(v)

    @field_validator("tokens")
    @classmethod
    def validate_token_colors(cls, v: dict[str, str]) -> dict[str, str]:
        return {name: _hex_color(color) for name, color in v.items()}

    def color_for(self, token_type: str) -> str:
        return self.tokens.get(token_type, self.text)


class CodeAnimConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    viewport: ViewportConfig = ViewportConfig()
    export: ExportDefaults = ExportDefaults()
    theme: ThemeConfig = ThemeConfig()


class ConfigError(Exception):
    def __init__(self, message: str, path: Optional[Path] = None, line: Optional[int] = None):
        self.path = path
        self.line = line
        if path:
            loc = f"{path}"
            if line:
                loc += f":{line}"
            message = f"{loc}: {message}"
        super().__init__(message)


def load_config(config_path: Optional[Path] = None) -> CodeAnimConfig:
    """Load ``codeanim.toml``; an absent file means built-in defaults."""
    if config_path is None or not config_path.exists():
        if config_path is not None:
            logger.debug("No config at %s, using defaults", config_path)
        return CodeAnimConfig()

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore

    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except Exception as e:
        line = getattr(e, "lineno", None)
        raise ConfigError(f"Failed to parse TOML: {e}", path=config_path, line=line) from e

    try:
        return CodeAnimConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}", path=config_path) from e


def find_config(start_dir: Optional[Path] = None) -> Path:
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()
    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        current = current.parent

    return start_dir / CONFIG_FILENAME
