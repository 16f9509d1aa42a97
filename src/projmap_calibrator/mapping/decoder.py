"""Gray code decoding into camera-to-projector correspondences.

Turns one projector's complete capture set (white and black references
plus every normal/inverted bit-plane pair) into per-camera-pixel
projector coordinates with a confidence value and a validity flag.

The per-pixel pass is split into bands of camera rows handled by a
thread pool.  Each band writes a disjoint slice of the flat output
arrays, so workers share no mutable state.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import cv2
import numpy as np

from projmap_calibrator.config.schema import DecoderConfig
from projmap_calibrator.errors import InsufficientValidPixels
from projmap_calibrator.mapping.structured_light import (
    PatternConfig,
    PatternDirection,
    PatternSpec,
    gray_to_binary,
)

logger = logging.getLogger(__name__)


@dataclass
class CapturedPair:
    """A projected pattern and the camera frame observed while it was up.

    Attributes:
        pattern: The pattern that was displayed.
        camera_frame: Luminance ``(H, W)`` or colour ``(H, W, 3|4)``
            frame.
    """

    pattern: PatternSpec
    camera_frame: np.ndarray


@dataclass
class DecodedCorrespondences:
    """Per-camera-pixel projector coordinates.

    All arrays are flat and indexed ``y * camera_w + x``.  Invalid
    pixels hold ``-1`` in ``projector_x``/``projector_y``.

    Attributes:
        camera_w: Camera frame width.
        camera_h: Camera frame height.
        proj_w: Projector width.
        proj_h: Projector height.
        projector_x: int32 decoded projector X.
        projector_y: int32 decoded projector Y.
        confidence: float32 minimum normalized bit contrast.
        valid_mask: Boolean validity flags.
    """

    camera_w: int
    camera_h: int
    proj_w: int
    proj_h: int
    projector_x: np.ndarray
    projector_y: np.ndarray
    confidence: np.ndarray
    valid_mask: np.ndarray

    @classmethod
    def empty(
        cls,
        camera_w: int,
        camera_h: int,
        proj_w: int,
        proj_h: int,
    ) -> DecodedCorrespondences:
        """Allocate an all-invalid result."""
        size = camera_w * camera_h
        return cls(
            camera_w=camera_w,
            camera_h=camera_h,
            proj_w=proj_w,
            proj_h=proj_h,
            projector_x=np.full(size, -1, np.int32),
            projector_y=np.full(size, -1, np.int32),
            confidence=np.zeros(size, np.float32),
            valid_mask=np.zeros(size, bool),
        )

    def get(self, x: int, y: int) -> tuple[int, int] | None:
        """Projector coordinate at camera pixel ``(x, y)``, if valid."""
        idx = y * self.camera_w + x
        if not self.valid_mask[idx]:
            return None
        return int(self.projector_x[idx]), int(self.projector_y[idx])

    def valid_count(self) -> int:
        return int(np.count_nonzero(self.valid_mask))

    def valid_fraction(self) -> float:
        return self.valid_count() / max(self.valid_mask.size, 1)

    def camera_coords(self) -> tuple[np.ndarray, np.ndarray]:
        """Flat camera X/Y arrays matching the output indexing."""
        idx = np.arange(self.camera_w * self.camera_h)
        return idx % self.camera_w, idx // self.camera_w

    def as_grids(self) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """``(projector_x, projector_y, confidence, valid_mask)`` reshaped
        to ``(camera_h, camera_w)`` views."""
        shape = (self.camera_h, self.camera_w)
        return (
            self.projector_x.reshape(shape),
            self.projector_y.reshape(shape),
            self.confidence.reshape(shape),
            self.valid_mask.reshape(shape),
        )


def to_luma(frame: np.ndarray) -> np.ndarray:
    """Downmix a camera frame to a single luminance channel.

    Colour frames are assumed RGB (or RGBA) in camera order.

    Args:
        frame: ``(H, W)``, ``(H, W, 3)`` or ``(H, W, 4)`` array.

    Returns:
        A 2-D array; single-channel input is returned as-is.

    Raises:
        ValueError: If the frame shape is not recognized.
    """
    if frame.ndim == 2:
        return frame
    if frame.ndim == 3 and frame.shape[2] == 1:
        return frame[..., 0]
    if frame.ndim == 3 and frame.shape[2] == 3:
        return cv2.cvtColor(frame, cv2.COLOR_RGB2GRAY)
    if frame.ndim == 3 and frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_RGBA2GRAY)
    raise ValueError(f"Unsupported camera frame shape {frame.shape}")


class Decoder:
    """Decodes captured Gray code sets for one projector.

    Attributes:
        config: Decoding thresholds and worker settings.
    """

    def __init__(self, config: DecoderConfig | None = None) -> None:
        self.config = config or DecoderConfig()

    def decode(
        self,
        white: np.ndarray,
        black: np.ndarray,
        pairs: list[CapturedPair],
        pattern_config: PatternConfig,
    ) -> DecodedCorrespondences:
        """Decode a complete capture set.

        Args:
            white: Camera frame captured under the all-white pattern.
            black: Camera frame captured under the all-black pattern.
            pairs: One capture per entry of
                ``pattern_config.pattern_sequence()``, in order.
            pattern_config: Bit-plane layout of the projector.

        Returns:
            The decoded correspondences.

        Raises:
            ValueError: If the captures do not match the pattern
                sequence or frame shapes differ.
            InsufficientValidPixels: If too few pixels decode.
        """
        sequence = pattern_config.pattern_sequence()
        if len(pairs) != len(sequence):
            raise ValueError(
                f"Expected {len(sequence)} captured patterns, got {len(pairs)}"
            )
        for i, (pair, spec) in enumerate(zip(pairs, sequence)):
            if pair.pattern != spec:
                raise ValueError(
                    f"Capture {i} is {pair.pattern}, expected {spec}"
                )

        white_l = to_luma(white)
        black_l = to_luma(black)
        frames = [to_luma(p.camera_frame) for p in pairs]
        cam_h, cam_w = white_l.shape
        for frame in [black_l, *frames]:
            if frame.shape != (cam_h, cam_w):
                raise ValueError(
                    f"Camera frame shape {frame.shape} does not match "
                    f"reference shape {(cam_h, cam_w)}"
                )

        result = DecodedCorrespondences.empty(
            cam_w, cam_h, pattern_config.proj_width, pattern_config.proj_height,
        )

        step = max(1, self.config.rows_per_chunk)
        bands = [(r, min(r + step, cam_h)) for r in range(0, cam_h, step)]

        def work(band: tuple[int, int]) -> None:
            self._decode_rows(
                band, white_l, black_l, frames, sequence,
                pattern_config, result,
            )

        if self.config.num_workers > 1 and len(bands) > 1:
            with ThreadPoolExecutor(
                max_workers=self.config.num_workers,
            ) as pool:
                list(pool.map(work, bands))
        else:
            for band in bands:
                work(band)

        fraction = result.valid_fraction()
        logger.info(
            "Decoded %d / %d valid camera pixels (%.1f%%)",
            result.valid_count(), result.valid_mask.size, 100.0 * fraction,
        )
        if fraction < self.config.min_valid_fraction:
            raise InsufficientValidPixels(
                f"Only {100.0 * fraction:.2f}% of camera pixels decoded "
                f"(need {100.0 * self.config.min_valid_fraction:.2f}%)"
            )
        return result

    def _decode_rows(
        self,
        band: tuple[int, int],
        white: np.ndarray,
        black: np.ndarray,
        frames: list[np.ndarray],
        sequence: list[PatternSpec],
        pattern_config: PatternConfig,
        out: DecodedCorrespondences,
    ) -> None:
        """Decode camera rows ``[r0, r1)`` into the matching output slice."""
        r0, r1 = band
        cfg = self.config

        contrast = (
            white[r0:r1].astype(np.float32) - black[r0:r1].astype(np.float32)
        )
        lit = contrast >= cfg.occlusion_threshold
        norm = np.maximum(contrast, cfg.epsilon)

        gray_x = np.zeros(contrast.shape, np.int64)
        gray_y = np.zeros(contrast.shape, np.int64)
        conf = np.ones(contrast.shape, np.float32)

        for k in range(0, len(sequence), 2):
            spec = sequence[k]
            normal = frames[k][r0:r1].astype(np.float32)
            inverted = frames[k + 1][r0:r1].astype(np.float32)
            diff = normal - inverted

            bit = (diff > cfg.bit_margin).astype(np.int64)
            pos = pattern_config.bits_for(spec.direction) - 1 - spec.bit_index
            if spec.direction is PatternDirection.HORIZONTAL:
                gray_y |= bit << pos
            else:
                gray_x |= bit << pos
            np.minimum(conf, np.abs(diff) / norm, out=conf)

        np.clip(conf, 0.0, 1.0, out=conf)
        px = gray_to_binary(gray_x, bit_width=max(pattern_config.bits_x, 1))
        py = gray_to_binary(gray_y, bit_width=max(pattern_config.bits_y, 1))

        valid = (
            lit
            & (px < pattern_config.proj_width)
            & (py < pattern_config.proj_height)
            & (conf >= cfg.min_confidence)
        )
        conf[~lit] = 0.0
        px[~valid] = -1
        py[~valid] = -1

        cam_w = white.shape[1]
        sl = slice(r0 * cam_w, r1 * cam_w)
        out.projector_x[sl] = px.ravel()
        out.projector_y[sl] = py.ravel()
        out.confidence[sl] = conf.ravel()
        out.valid_mask[sl] = valid.ravel()
