from .compositor import CompositorError, PillowSurface
from .frames import FrameSampler, render_preview_frame, render_static_frame
from .timeline import TimelineScheduler, compute_timeline_steps
from .window import ScrollingWindow

__all__ = [
    "CompositorError",
    "FrameSampler",
    "PillowSurface",
    "ScrollingWindow",
    "TimelineScheduler",
    "compute_timeline_steps",
    "render_preview_frame",
    "render_static_frame",
]
