"""In-memory pattern display.

Keeps the image currently "on screen" so a synthetic camera can observe
it, and records every request for inspection.
"""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


class RecordingDisplay:
    """A ``PatternDisplay`` that stores what it is asked to show.

    Attributes:
        width: Output width in pixels.
        height: Output height in pixels.
        current: The image on screen, or ``None`` when blank.
        history: Every image displayed, in order.
    """

    def __init__(self, width: int, height: int, keep_history: bool = True) -> None:
        self.width = width
        self.height = height
        self.current: np.ndarray | None = None
        self.keep_history = keep_history
        self.history: list[np.ndarray] = []

    def display_pattern(self, image: np.ndarray) -> None:
        if image.shape[:2] != (self.height, self.width):
            raise ValueError(
                f"Pattern shape {image.shape[:2]} does not match display "
                f"{(self.height, self.width)}"
            )
        self.current = image
        if self.keep_history:
            self.history.append(image)

    def clear(self) -> None:
        """Blank the output."""
        self.current = None
