"""Overlap detection between projectors.

Overlaps can be found two ways:

* from canvas placements, by intersecting each pair of projector
  rectangles (placements come from configuration or from the
  homography-mapped projector extent), or
* from decoded correspondences, by looking for camera pixels that both
  projectors light.

Either way the result is a list of ``OverlapRegion``s from which
complementary blend masks are built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np

from projmap_calibrator.blending.mask import (
    BlendCurve,
    BlendMask,
    OverlapEdge,
)
from projmap_calibrator.config.schema import OverlapConfig, ProjectorConfig
from projmap_calibrator.math_utils.transforms import (
    invert_homography,
    projected_bounds,
)
from projmap_calibrator.pipeline.session import ProjectorCalibration

logger = logging.getLogger(__name__)


@dataclass
class CanvasPlacement:
    """A projector's rectangle in canvas space.

    Attributes:
        projector_id: Projector ID.
        x: Left edge in canvas pixels.
        y: Top edge in canvas pixels.
        width: Extent along X in canvas pixels.
        height: Extent along Y in canvas pixels.
        proj_width: Projector resolution width.
        proj_height: Projector resolution height.
    """

    projector_id: int
    x: float
    y: float
    width: float
    height: float
    proj_width: int
    proj_height: int

    @classmethod
    def from_config(cls, projector: ProjectorConfig) -> CanvasPlacement:
        """Placement at the configured canvas position, 1:1 scale."""
        return cls(
            projector_id=projector.id,
            x=float(projector.canvas_x),
            y=float(projector.canvas_y),
            width=float(projector.width),
            height=float(projector.height),
            proj_width=projector.width,
            proj_height=projector.height,
        )

    @property
    def center(self) -> tuple[float, float]:
        return self.x + 0.5 * self.width, self.y + 0.5 * self.height


def placement_from_homography(
    projector_id: int,
    homography: np.ndarray,
    proj_width: int,
    proj_height: int,
    camera_to_canvas: np.ndarray | None = None,
) -> CanvasPlacement:
    """Placement from the camera-space extent of a calibrated projector.

    Args:
        projector_id: Projector ID.
        homography: Camera-to-projector homography.
        proj_width: Projector width.
        proj_height: Projector height.
        camera_to_canvas: Optional 3x3 map from camera pixels to canvas
            pixels; identity when omitted.

    Returns:
        The bounding box of the projector's mapped corners.
    """
    proj_to_canvas = invert_homography(homography)
    if camera_to_canvas is not None:
        proj_to_canvas = np.asarray(camera_to_canvas) @ proj_to_canvas
    min_x, min_y, max_x, max_y = projected_bounds(
        proj_to_canvas, proj_width, proj_height,
    )
    return CanvasPlacement(
        projector_id=projector_id,
        x=min_x,
        y=min_y,
        width=max_x - min_x,
        height=max_y - min_y,
        proj_width=proj_width,
        proj_height=proj_height,
    )


@dataclass
class OverlapRegion:
    """Overlap between two projectors.

    Attributes:
        projector_a: ID of the first projector.
        projector_b: ID of the second projector.
        edge: Edge of projector A that overlaps projector B; B
            overlaps on the opposite edge.
        overlap_width_px: Overlap width in projector A pixels.
        overlap_width_b_px: Overlap width in projector B pixels.
    """

    projector_a: int
    projector_b: int
    edge: OverlapEdge
    overlap_width_px: int
    overlap_width_b_px: int | None = None

    @property
    def width_b(self) -> int:
        if self.overlap_width_b_px is None:
            return self.overlap_width_px
        return self.overlap_width_b_px


def _edge_from_offset(dx: float, dy: float) -> OverlapEdge:
    """Edge of A facing a region offset by aspect-normalized ``(dx, dy)``."""
    if abs(dx) >= abs(dy):
        return OverlapEdge.RIGHT if dx > 0 else OverlapEdge.LEFT
    return OverlapEdge.BOTTOM if dy > 0 else OverlapEdge.TOP


class OverlapDetector:
    """Finds pairwise projector overlaps and builds blend masks.

    Attributes:
        config: Minimum width, padding and blend curve.
    """

    def __init__(self, config: OverlapConfig | None = None) -> None:
        self.config = config or OverlapConfig()

    @property
    def curve(self) -> BlendCurve:
        return BlendCurve.parse(self.config.blend_curve)

    def _accept(
        self,
        a_id: int,
        b_id: int,
        edge: OverlapEdge,
        width_a: int,
        width_b: int,
    ) -> OverlapRegion | None:
        width_a += self.config.padding
        width_b += self.config.padding
        if width_a < self.config.min_overlap_width:
            logger.info(
                "Overlap width %d between projector %d and %d is below "
                "minimum %d, ignoring",
                width_a, a_id, b_id, self.config.min_overlap_width,
            )
            return None
        logger.info(
            "Detected %s overlap of %d px between projector %d and %d",
            edge.value, width_a, a_id, b_id,
        )
        return OverlapRegion(a_id, b_id, edge, width_a, width_b)

    def detect(self, placements: Sequence[CanvasPlacement]) -> list[OverlapRegion]:
        """Intersect every pair of canvas rectangles.

        Widths are converted from canvas pixels to each projector's
        own pixel scale.
        """
        overlaps: list[OverlapRegion] = []
        for i, a in enumerate(placements):
            for b in placements[i + 1:]:
                iw = min(a.x + a.width, b.x + b.width) - max(a.x, b.x)
                ih = min(a.y + a.height, b.y + b.height) - max(a.y, b.y)
                if iw <= 0 or ih <= 0:
                    continue

                (acx, acy), (bcx, bcy) = a.center, b.center
                edge = _edge_from_offset(
                    (bcx - acx) / a.width, (bcy - acy) / a.height,
                )
                if edge in (OverlapEdge.LEFT, OverlapEdge.RIGHT):
                    wa = round(iw * a.proj_width / a.width)
                    wb = round(iw * b.proj_width / b.width)
                else:
                    wa = round(ih * a.proj_height / a.height)
                    wb = round(ih * b.proj_height / b.height)

                region = self._accept(a.projector_id, b.projector_id, edge, wa, wb)
                if region is not None:
                    overlaps.append(region)
        return overlaps

    def detect_from_correspondences(
        self,
        calibrations: Sequence[ProjectorCalibration],
    ) -> list[OverlapRegion]:
        """Find overlaps from camera pixels valid for two projectors.

        The edge is chosen by comparing the centre of the shared region
        (in projector A space) with projector A's centre.
        """
        overlaps: list[OverlapRegion] = []
        for i, a in enumerate(calibrations):
            for b in calibrations[i + 1:]:
                region = self._detect_pair(a, b)
                if region is not None:
                    overlaps.append(region)
        return overlaps

    def _detect_pair(
        self,
        a: ProjectorCalibration,
        b: ProjectorCalibration,
    ) -> OverlapRegion | None:
        ca, cb = a.correspondences, b.correspondences
        if ca is None or cb is None:
            return None
        if (ca.camera_w, ca.camera_h) != (cb.camera_w, cb.camera_h):
            logger.warning(
                "Camera dimensions differ between projector %d and %d",
                a.id, b.id,
            )
            return None

        both = ca.valid_mask & cb.valid_mask
        if not np.any(both):
            logger.info("No overlap between projector %d and %d", a.id, b.id)
            return None
        logger.info(
            "Found %d overlapping camera pixels between projector %d and %d",
            int(both.sum()), a.id, b.id,
        )

        ax, ay = ca.projector_x[both], ca.projector_y[both]
        bx, by = cb.projector_x[both], cb.projector_y[both]
        cx = 0.5 * (int(ax.min()) + int(ax.max()))
        cy = 0.5 * (int(ay.min()) + int(ay.max()))
        edge = _edge_from_offset(
            (cx - a.width / 2) / a.width, (cy - a.height / 2) / a.height,
        )
        if edge in (OverlapEdge.LEFT, OverlapEdge.RIGHT):
            wa = int(ax.max() - ax.min())
            wb = int(bx.max() - bx.min())
        else:
            wa = int(ay.max() - ay.min())
            wb = int(by.max() - by.min())
        return self._accept(a.id, b.id, edge, wa, wb)

    def build_blend_masks(
        self,
        sizes: Mapping[int, tuple[int, int]],
        overlaps: Sequence[OverlapRegion],
    ) -> dict[int, BlendMask]:
        """Complementary blend masks for every projector.

        Args:
            sizes: Projector ID to ``(width, height)``.
            overlaps: Regions from :meth:`detect` or
                :meth:`detect_from_correspondences`.

        Returns:
            Projector ID to mask; projectors without overlaps get an
            all-ones mask.
        """
        curve = self.curve
        masks = {pid: BlendMask.new(w, h) for pid, (w, h) in sizes.items()}
        for region in overlaps:
            masks[region.projector_a].apply_edge_blend(
                region.edge, region.overlap_width_px, curve,
            )
            masks[region.projector_b].apply_edge_blend(
                region.edge.opposite, region.width_b, curve,
            )
        return masks
