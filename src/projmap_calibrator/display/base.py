"""Abstract projector output interface."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class PatternDisplay(Protocol):
    """Protocol for a full-screen pattern output on one projector."""

    def display_pattern(self, image: np.ndarray) -> None:
        """Show *image* full-screen; returns once it is on screen.

        Args:
            image: ``(H, W)`` uint8 grayscale pattern at projector
                resolution.
        """
        ...
