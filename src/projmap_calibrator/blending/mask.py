"""Edge blend masks.

A ``BlendMask`` is a per-pixel multiplicative weight in ``[0, 1]`` for
one projector's output.  It starts at 1.0 everywhere and each edge
blend multiplies a falloff into it, so corners shared by two blend
zones receive the product of both.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from projmap_calibrator.config.schema import BlendConfig
from projmap_calibrator.errors import InvalidConfiguration


class BlendCurve(str, Enum):
    """Falloff curve shapes."""

    LINEAR = "linear"
    GAMMA = "gamma"
    COSINE = "cosine"
    SMOOTHSTEP = "smoothstep"

    @classmethod
    def parse(cls, value: str | BlendCurve) -> BlendCurve:
        """Look up a curve by (case-insensitive) name.

        Raises:
            InvalidConfiguration: If the name is unknown.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidConfiguration(
                f"Unknown blend curve {value!r}. "
                f"Supported: {', '.join(c.value for c in cls)}."
            ) from None


class OverlapEdge(str, Enum):
    """Edge of a projector's output."""

    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"

    @property
    def opposite(self) -> OverlapEdge:
        return _OPPOSITE[self]


_OPPOSITE = {
    OverlapEdge.LEFT: OverlapEdge.RIGHT,
    OverlapEdge.RIGHT: OverlapEdge.LEFT,
    OverlapEdge.TOP: OverlapEdge.BOTTOM,
    OverlapEdge.BOTTOM: OverlapEdge.TOP,
}


def apply_curve(t, curve: BlendCurve):
    """Evaluate a falloff curve for ``t`` in ``[0, 1]``.

    Every curve maps 0 to 0 and 1 to 1 and is non-decreasing.  Accepts
    a scalar or an array.
    """
    t = np.asarray(t, dtype=np.float64)
    if curve is BlendCurve.LINEAR:
        out = t
    elif curve is BlendCurve.GAMMA:
        out = np.power(t, 2.2)
    elif curve is BlendCurve.COSINE:
        out = 0.5 - 0.5 * np.cos(np.pi * t)
    elif curve is BlendCurve.SMOOTHSTEP:
        out = 3.0 * t * t - 2.0 * t * t * t
    else:
        raise ValueError(f"Unknown blend curve {curve!r}")
    return float(out) if out.ndim == 0 else out


@dataclass
class BlendMask:
    """Per-pixel blend weights for one projector.

    Attributes:
        width: Mask width in projector pixels.
        height: Mask height in projector pixels.
        data: float32 ``(height, width)`` weights in ``[0, 1]``.
        curve: Curve used by the last blend applied.
    """

    width: int
    height: int
    data: np.ndarray
    curve: BlendCurve = BlendCurve.GAMMA

    @classmethod
    def new(cls, width: int, height: int) -> BlendMask:
        """A mask with no attenuation."""
        return cls(width, height, np.ones((height, width), np.float32))

    def _ramp(self, blend_width: int, curve: BlendCurve, outward: bool) -> np.ndarray:
        """Multipliers for a zone of *blend_width* pixels.

        With ``outward`` the zone runs from the inner boundary (t=0) to
        the screen edge; otherwise from the screen edge (t=1) inwards.
        """
        pos = np.arange(blend_width, dtype=np.float64)
        t = pos / blend_width if outward else 1.0 - pos / blend_width
        return (1.0 - apply_curve(t, curve)).astype(np.float32)

    def apply_right_blend(self, blend_width: int, curve: BlendCurve) -> None:
        """Fade columns ``[width - blend_width, width)`` towards the right
        edge."""
        if blend_width <= 0:
            return
        self.curve = curve
        start = max(self.width - blend_width, 0)
        ramp = self._ramp(blend_width, curve, outward=True)[:self.width - start]
        self.data[:, start:] *= ramp[np.newaxis, :]

    def apply_left_blend(self, blend_width: int, curve: BlendCurve) -> None:
        """Fade columns ``[0, blend_width)`` towards the left edge."""
        if blend_width <= 0:
            return
        self.curve = curve
        n = min(blend_width, self.width)
        ramp = self._ramp(blend_width, curve, outward=False)[:n]
        self.data[:, :n] *= ramp[np.newaxis, :]

    def apply_bottom_blend(self, blend_height: int, curve: BlendCurve) -> None:
        """Fade rows ``[height - blend_height, height)`` towards the
        bottom edge."""
        if blend_height <= 0:
            return
        self.curve = curve
        start = max(self.height - blend_height, 0)
        ramp = self._ramp(blend_height, curve, outward=True)[:self.height - start]
        self.data[start:, :] *= ramp[:, np.newaxis]

    def apply_top_blend(self, blend_height: int, curve: BlendCurve) -> None:
        """Fade rows ``[0, blend_height)`` towards the top edge."""
        if blend_height <= 0:
            return
        self.curve = curve
        n = min(blend_height, self.height)
        ramp = self._ramp(blend_height, curve, outward=False)[:n]
        self.data[:n, :] *= ramp[:, np.newaxis]

    def apply_edge_blend(
        self,
        edge: OverlapEdge,
        blend_width: int,
        curve: BlendCurve,
    ) -> None:
        """Dispatch to the blend for *edge*."""
        {
            OverlapEdge.LEFT: self.apply_left_blend,
            OverlapEdge.RIGHT: self.apply_right_blend,
            OverlapEdge.TOP: self.apply_top_blend,
            OverlapEdge.BOTTOM: self.apply_bottom_blend,
        }[edge](blend_width, curve)

    def quantize(self, bit_depth: int = 8) -> np.ndarray:
        """Integer image with ``round(value * max_value)`` per pixel.

        Raises:
            ValueError: If *bit_depth* is not 8 or 16.
        """
        if bit_depth == 8:
            dtype, max_value = np.uint8, 255.0
        elif bit_depth == 16:
            dtype, max_value = np.uint16, 65535.0
        else:
            raise ValueError(f"Unsupported bit depth {bit_depth}; use 8 or 16")
        scaled = np.clip(self.data, 0.0, 1.0).astype(np.float64) * max_value
        return np.rint(scaled).astype(dtype)


def mask_from_blend_config(
    width: int,
    height: int,
    blend: BlendConfig,
) -> BlendMask:
    """Build a mask from a projector's configured blend widths."""
    mask = BlendMask.new(width, height)
    curve = BlendCurve.parse(blend.curve)
    mask.curve = curve
    mask.apply_left_blend(blend.left_width, curve)
    mask.apply_right_blend(blend.right_width, curve)
    mask.apply_top_blend(blend.top_width, curve)
    mask.apply_bottom_blend(blend.bottom_width, curve)
    return mask
