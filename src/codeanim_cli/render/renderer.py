from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional, Sequence

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage

    from .ir import RenderFrame


ProgressCallback = Callable[[float], None]


class CodeSource(ABC):
    """Source listing the engine animates."""

    @abstractmethod
    def get_lines(self) -> list[str]: ...

    @property
    @abstractmethod
    def line_count(self) -> int: ...


class RenderingSurface(ABC):
    """Draw render instructions at a fixed size and font metrics."""

    @property
    @abstractmethod
    def dimensions(self) -> tuple[int, int]: ...

    @abstractmethod
    def draw_frame(self, frame: Optional[RenderFrame]) -> PILImage:
        """Draw one frame; ``None`` means no slide is active and yields a blank frame."""
        raise NotImplementedError


class MediaEncoder(ABC):
    """Turn an ordered frame sequence into a finished media file."""

    @property
    @abstractmethod
    def formats(self) -> tuple[str, ...]: ...

    def supports(self, fmt: str) -> bool:
        return fmt in self.formats

    @abstractmethod
    def encode(
        self,
        frames: Sequence[PILImage],
        frame_rate: int,
        dimensions: tuple[int, int],
        fmt: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """Encode ``frames`` and return the artifact bytes.

        ``on_progress`` receives fractions in [0, 1] and may raise to abort.
        """
        raise NotImplementedError
