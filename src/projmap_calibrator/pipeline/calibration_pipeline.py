"""High-level calibration pipeline orchestrator.

Chains the full calibration workflow:

1. Structured-light capture and decode for every projector.
2. Camera-to-projector homography fitting.
3. Canvas placement and overlap detection.
4. Blend mask synthesis and export.

The public entry points are :func:`run_calibration` and
:func:`export_result`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import numpy as np

from projmap_calibrator.blending.mask import BlendMask
from projmap_calibrator.blending.overlap import (
    CanvasPlacement,
    OverlapDetector,
    OverlapRegion,
    placement_from_homography,
)
from projmap_calibrator.cameras.base import Camera
from projmap_calibrator.config.schema import CalibratorConfig, ProjectConfig
from projmap_calibrator.display.base import PatternDisplay
from projmap_calibrator.mapping.decoder import Decoder
from projmap_calibrator.mapping.homography import HomographyComputer
from projmap_calibrator.pipeline.export import (
    apply_calibrations,
    export_all_blend_masks,
    save_project,
)
from projmap_calibrator.pipeline.session import (
    CalibrationSession,
    CalibrationState,
    Complete,
    ProjectorCalibration,
)

logger = logging.getLogger(__name__)


@dataclass
class CalibrationResult:
    """Result of the full calibration pipeline.

    Attributes:
        state: Final session state.
        calibrations: Per-projector calibration data.
        placements: Canvas placement per projector.
        overlaps: Detected overlaps.
        masks: Blend mask per projector ID.
    """

    state: CalibrationState
    calibrations: list[ProjectorCalibration]
    placements: list[CanvasPlacement] = field(default_factory=list)
    overlaps: list[OverlapRegion] = field(default_factory=list)
    masks: dict[int, BlendMask] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return isinstance(self.state, Complete)


def compute_placements(
    project: ProjectConfig,
    calibrations: Sequence[ProjectorCalibration],
    use_homography: bool = False,
    camera_to_canvas: np.ndarray | None = None,
) -> list[CanvasPlacement]:
    """Canvas rectangles for every projector.

    The configured canvas position is used unless *use_homography* is
    set, in which case each calibrated projector is placed at its
    homography-mapped extent.
    """
    by_id = {cal.id: cal for cal in calibrations}
    placements = []
    for proj in project.projectors:
        cal = by_id.get(proj.id)
        if use_homography and cal is not None and cal.homography is not None:
            placements.append(placement_from_homography(
                proj.id, cal.homography, proj.width, proj.height,
                camera_to_canvas,
            ))
        else:
            placements.append(CanvasPlacement.from_config(proj))
    return placements


def run_calibration(
    config: CalibratorConfig,
    camera: Camera,
    displays: Sequence[PatternDisplay],
    use_homography_placement: bool = False,
    camera_to_canvas: np.ndarray | None = None,
) -> CalibrationResult:
    """Calibrate every projector in ``config.project`` and build blends.

    Projectors not being captured are held on black.

    Args:
        config: Full calibrator configuration.
        camera: Camera observing the projection surface.
        displays: One display per projector, in project order.
        use_homography_placement: Place projectors by their calibrated
            extent instead of the configured canvas position.
        camera_to_canvas: Optional camera-to-canvas 3x3 map used with
            homography placement.

    Returns:
        The result; overlaps and masks are only filled on success.
    """
    project = config.project
    blacks = [np.zeros((p.height, p.width), np.uint8) for p in project.projectors]

    def blank_others(active: int) -> None:
        for j, display in enumerate(displays):
            if j != active:
                display.display_pattern(blacks[j])

    camera.start()
    try:
        with CalibrationSession(
            project.projectors,
            config.session,
            Decoder(config.decoder),
            HomographyComputer(config.homography),
        ) as session:
            state = session.run(displays, camera, on_projector_change=blank_others)
            calibrations = session.calibrations
    finally:
        camera.stop()

    result = CalibrationResult(state=state, calibrations=calibrations)
    if not result.succeeded:
        logger.warning("Calibration did not complete: %s", state)
        return result

    detector = OverlapDetector(config.overlap)
    result.placements = compute_placements(
        project, calibrations, use_homography_placement, camera_to_canvas,
    )
    result.overlaps = detector.detect(result.placements)
    result.masks = detector.build_blend_masks(
        {p.id: (p.width, p.height) for p in project.projectors},
        result.overlaps,
    )
    logger.info(
        "Calibration complete: %d projector(s), %d overlap(s)",
        len(calibrations), len(result.overlaps),
    )
    return result


def export_result(
    result: CalibrationResult,
    config: CalibratorConfig,
    output_dir: str | Path | None = None,
) -> Path:
    """Write the project document and blend masks.

    Args:
        result: A successful pipeline result.
        config: Configuration whose project document is updated.
        output_dir: Overrides ``config.export.output_dir``.

    Returns:
        Path of the written project document.
    """
    d = Path(output_dir if output_dir is not None else config.export.output_dir)
    apply_calibrations(
        config.project, result.calibrations, result.overlaps,
        config.overlap.blend_curve,
    )
    suffix = ".json" if config.export.project_format == "json" else ".yaml"
    project_path = d / f"project{suffix}"
    save_project(config.project, project_path)
    export_all_blend_masks(result.masks, d, config.export.mask_bit_depth)
    return project_path
