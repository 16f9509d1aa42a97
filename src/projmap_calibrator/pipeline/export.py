"""Calibration export and persistence.

Writes the project document (YAML or JSON, chosen by file suffix),
one grayscale image per projector blend mask, and the raw decoded
correspondences as ``.npz`` archives.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Mapping, Sequence

import cv2
import numpy as np
import yaml

from projmap_calibrator.blending.mask import BlendCurve, BlendMask, OverlapEdge
from projmap_calibrator.blending.overlap import OverlapRegion
from projmap_calibrator.config.loader import (
    apply_dict_to_dataclass,
    dataclass_to_dict,
    save_config,
)
from projmap_calibrator.config.schema import ProjectConfig
from projmap_calibrator.mapping.decoder import DecodedCorrespondences
from projmap_calibrator.pipeline.session import ProjectorCalibration

logger = logging.getLogger(__name__)

_EDGE_FIELDS = {
    OverlapEdge.LEFT: "left_width",
    OverlapEdge.RIGHT: "right_width",
    OverlapEdge.TOP: "top_width",
    OverlapEdge.BOTTOM: "bottom_width",
}


def save_project(project: ProjectConfig, path: str | Path) -> None:
    """Write the project document; ``.json`` selects JSON, else YAML."""
    path = Path(path)
    if path.suffix.lower() == ".json":
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(dataclass_to_dict(project), f, indent=2)
    else:
        save_config(project, path)
    logger.info("Saved project %r to %s", project.name, path)


def load_project(path: str | Path) -> ProjectConfig:
    """Read a project document written by :func:`save_project`.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Project file not found: {path}")
    with open(path, "r") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    project = ProjectConfig()
    if data and isinstance(data, dict):
        apply_dict_to_dataclass(project, data)
    return project


def apply_calibrations(
    project: ProjectConfig,
    calibrations: Sequence[ProjectorCalibration],
    overlaps: Sequence[OverlapRegion] = (),
    curve: BlendCurve | str | None = None,
) -> ProjectConfig:
    """Record homographies and blend widths in the project document.

    Projectors are matched by ID.  Blend widths are only overwritten on
    edges that have a detected overlap.

    Returns:
        The updated *project* (modified in place).
    """
    by_id = {p.id: p for p in project.projectors}
    for cal in calibrations:
        proj = by_id.get(cal.id)
        if proj is None or cal.homography is None:
            continue
        proj.homography = [float(v) for v in np.asarray(cal.homography).ravel()]

    for region in overlaps:
        for pid, edge, width in (
            (region.projector_a, region.edge, region.overlap_width_px),
            (region.projector_b, region.edge.opposite, region.width_b),
        ):
            proj = by_id.get(pid)
            if proj is None:
                continue
            setattr(proj.blend, _EDGE_FIELDS[edge], int(width))
            if curve is not None:
                proj.blend.curve = BlendCurve.parse(curve).value
    return project


def export_blend_mask(
    mask: BlendMask,
    path: str | Path,
    bit_depth: int = 8,
) -> Path:
    """Write a mask as a single-channel 8- or 16-bit PNG.

    Raises:
        OSError: If the image cannot be written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), mask.quantize(bit_depth)):
        raise OSError(f"Failed to write blend mask to {path}")
    return path


def load_blend_mask(path: str | Path) -> np.ndarray:
    """Read a mask image back as float32 weights in ``[0, 1]``.

    Raises:
        FileNotFoundError: If the image cannot be read.
    """
    img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if img is None:
        raise FileNotFoundError(f"Could not read blend mask: {path}")
    max_value = 65535.0 if img.dtype == np.uint16 else 255.0
    return img.astype(np.float32) / max_value


def export_all_blend_masks(
    masks: Mapping[int, BlendMask],
    output_dir: str | Path,
    bit_depth: int = 8,
) -> list[Path]:
    """Write ``blend_mask_projector_<id>.png`` for every mask."""
    d = Path(output_dir)
    d.mkdir(parents=True, exist_ok=True)
    paths = []
    for pid, mask in masks.items():
        path = export_blend_mask(
            mask, d / f"blend_mask_projector_{pid}.png", bit_depth,
        )
        logger.info("Exported blend mask: %s", path.name)
        paths.append(path)
    return paths


def save_correspondences(
    corr: DecodedCorrespondences,
    path: str | Path,
) -> None:
    """Save decoded correspondences to a compressed ``.npz`` archive."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        str(path),
        dims=np.array(
            [corr.camera_w, corr.camera_h, corr.proj_w, corr.proj_h], np.int64,
        ),
        projector_x=corr.projector_x,
        projector_y=corr.projector_y,
        confidence=corr.confidence,
        valid_mask=corr.valid_mask,
    )
    logger.info("Saved correspondences to %s", path)


def load_correspondences(path: str | Path) -> DecodedCorrespondences:
    """Load correspondences written by :func:`save_correspondences`."""
    with np.load(str(path)) as data:
        camera_w, camera_h, proj_w, proj_h = (int(v) for v in data["dims"])
        return DecodedCorrespondences(
            camera_w=camera_w,
            camera_h=camera_h,
            proj_w=proj_w,
            proj_h=proj_h,
            projector_x=data["projector_x"].astype(np.int32),
            projector_y=data["projector_y"].astype(np.int32),
            confidence=data["confidence"].astype(np.float32),
            valid_mask=data["valid_mask"].astype(bool),
        )
