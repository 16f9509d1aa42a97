"""Camera seam used by the calibration session.

The session only ever asks for one frame per displayed pattern, so a
camera is anything that can be started, asked for a frame with a
deadline, and stopped.  Hardware drivers are supplied by the caller;
:class:`~projmap_calibrator.cameras.synthetic.SyntheticCamera` covers
tests and dry runs.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class Camera(Protocol):
    """A frame source observing the projection surface.

    Cameras are used as context managers by callers that own them;
    :func:`~projmap_calibrator.pipeline.calibration_pipeline.run_calibration`
    calls ``start`` and ``stop`` itself.
    """

    def start(self) -> None:
        ...

    def grab(self, timeout_s: float = 1.0) -> np.ndarray:
        """Return the next frame seen after the call.

        Args:
            timeout_s: Deadline in seconds.

        Returns:
            ``(H, W)`` luminance or ``(H, W, 3)`` RGB frame.  Every
            frame of a capture set must have the same shape.

        Raises:
            TimeoutError: If no frame arrives before the deadline.
        """
        ...

    def stop(self) -> None:
        ...

    def __enter__(self) -> Camera:
        ...

    def __exit__(self, *args: object) -> None:
        ...
