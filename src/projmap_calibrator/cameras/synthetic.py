"""Synthetic camera observing in-memory projector outputs.

Each camera pixel is mapped through a camera-to-projector homography and
samples the nearest projector pixel of whatever the paired display is
showing.  Contributions of several projectors add up, which makes the
camera usable for multi-projector overlap scenarios without hardware.
"""

from __future__ import annotations

import logging

import numpy as np

from projmap_calibrator.display.recording import RecordingDisplay
from projmap_calibrator.math_utils.transforms import apply_homography

logger = logging.getLogger(__name__)


class SyntheticCamera:
    """A ``Camera`` rendering displays through known homographies.

    Attributes:
        width: Camera frame width.
        height: Camera frame height.
        ambient: Constant light added to every pixel.
        noise_std: Standard deviation of additive Gaussian noise.
        occlusion: Optional ``(x0, y0, x1, y1)`` camera rectangle that
            never receives projector light.
        fail_after: Raise ``TimeoutError`` once this many frames have
            been grabbed.
    """

    def __init__(
        self,
        width: int,
        height: int,
        views: list[tuple[RecordingDisplay, np.ndarray]],
        ambient: float = 0.0,
        noise_std: float = 0.0,
        occlusion: tuple[int, int, int, int] | None = None,
        fail_after: int | None = None,
        seed: int = 0,
    ) -> None:
        self.width = width
        self.height = height
        self.ambient = ambient
        self.noise_std = noise_std
        self.occlusion = occlusion
        self.fail_after = fail_after
        self.frames_grabbed = 0
        self._rng = np.random.default_rng(seed)
        self._views = [
            (display, *self._sample_grid(display, H)) for display, H in views
        ]

    def _sample_grid(
        self,
        display: RecordingDisplay,
        H: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        ys, xs = np.mgrid[0:self.height, 0:self.width]
        cam = np.column_stack([xs.ravel(), ys.ravel()])
        proj = apply_homography(H, cam)
        finite = np.all(np.isfinite(proj), axis=1)
        px = np.full(len(cam), -1, np.int64)
        py = np.full(len(cam), -1, np.int64)
        px[finite] = np.rint(proj[finite, 0]).astype(np.int64)
        py[finite] = np.rint(proj[finite, 1]).astype(np.int64)
        inside = (
            finite
            & (px >= 0) & (px < display.width)
            & (py >= 0) & (py < display.height)
        )
        shape = (self.height, self.width)
        return px.reshape(shape), py.reshape(shape), inside.reshape(shape)

    def start(self) -> None:
        logger.debug("Synthetic camera %dx%d started", self.width, self.height)

    def grab(self, timeout_s: float = 1.0) -> np.ndarray:
        if self.fail_after is not None and self.frames_grabbed >= self.fail_after:
            raise TimeoutError(f"No frame within {timeout_s:.2f}s")
        self.frames_grabbed += 1

        frame = np.full((self.height, self.width), self.ambient, np.float32)
        for display, px, py, inside in self._views:
            image = display.current
            if image is None:
                continue
            frame[inside] += image[py[inside], px[inside]]

        if self.occlusion is not None:
            x0, y0, x1, y1 = self.occlusion
            frame[y0:y1, x0:x1] = self.ambient
        if self.noise_std > 0:
            frame += self._rng.normal(0.0, self.noise_std, frame.shape)
        return np.clip(np.rint(frame), 0, 255).astype(np.uint8)

    def stop(self) -> None:
        logger.debug("Synthetic camera stopped")

    def __enter__(self) -> SyntheticCamera:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
