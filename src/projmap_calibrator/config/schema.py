"""Dataclass configuration schemas for the projector calibrator.

Each subsystem has its own configuration dataclass. The top-level
``CalibratorConfig`` composes them all into a single tree that can be
serialized to / deserialized from YAML.  ``ProjectConfig`` doubles as
the exported project document.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class DecoderConfig:
    """Gray code decoding thresholds.

    Attributes:
        occlusion_threshold: Minimum white-minus-black luminance (0-255
            scale) for a camera pixel to be considered lit.
        bit_margin: Bias added to the normal/inverted decision
            threshold; ``0`` decides at the midpoint.
        min_confidence: Minimum normalized bit contrast for a pixel to
            be accepted.
        min_valid_fraction: Minimum fraction of camera pixels that
            must decode as valid for the decode to succeed.
        epsilon: Floor for the contrast normalizer.
        num_workers: Worker threads for the per-pixel pass.
        rows_per_chunk: Camera rows handled per work item.
    """

    occlusion_threshold: float = 10.0
    bit_margin: float = 0.0
    min_confidence: float = 0.1
    min_valid_fraction: float = 0.02
    epsilon: float = 1e-6
    num_workers: int = 4
    rows_per_chunk: int = 64


@dataclass
class HomographyConfig:
    """Camera-to-projector homography fitting.

    Attributes:
        sample_stride: Camera-grid stride used when extracting points.
        max_points: Upper bound on points fed to the solver.
        min_confidence: Minimum decode confidence for a point to be
            used.
        min_points: Minimum number of usable correspondences.
        outlier_factor: Residual threshold as a multiple of the median
            residual.
        min_outlier_threshold_px: Floor on the residual threshold.
        min_inlier_ratio: Minimum retained fraction after rejection.
        max_condition: Condition number above which the normalized
            system is treated as degenerate.
        confidence_weighted: Weight equations by decode confidence.
    """

    sample_stride: int = 4
    max_points: int = 20000
    min_confidence: float = 0.5
    min_points: int = 100
    outlier_factor: float = 3.0
    min_outlier_threshold_px: float = 1.0
    min_inlier_ratio: float = 0.5
    max_condition: float = 1e12
    confidence_weighted: bool = True


@dataclass
class SessionConfig:
    """Capture sequencing.

    Attributes:
        capture_timeout_s: Maximum wait for one camera frame.
        settle_time_s: Delay between showing a pattern and capturing.
        frames_to_average: Frames grabbed and averaged per pattern.
        background_homography: Fit homographies on a worker thread
            while the next projector is being captured.
    """

    capture_timeout_s: float = 2.0
    settle_time_s: float = 0.1
    frames_to_average: int = 1
    background_homography: bool = False


@dataclass
class OverlapConfig:
    """Overlap detection and blend generation.

    Attributes:
        min_overlap_width: Overlaps narrower than this are ignored.
        padding: Pixels added to every detected overlap width.
        blend_curve: Falloff curve: ``linear``, ``gamma``, ``cosine``
            or ``smoothstep``.
    """

    min_overlap_width: int = 10
    padding: int = 0
    blend_curve: str = "smoothstep"


@dataclass
class BlendConfig:
    """Edge blend settings for one projector.

    Attributes:
        left_width: Left edge blend width in projector pixels.
        right_width: Right edge blend width in projector pixels.
        top_width: Top edge blend width in projector pixels.
        bottom_width: Bottom edge blend width in projector pixels.
        gamma: Display gamma recorded for the compositor.
        curve: Falloff curve name.
    """

    left_width: int = 0
    right_width: int = 0
    top_width: int = 0
    bottom_width: int = 0
    gamma: float = 2.2
    curve: str = "gamma"


@dataclass
class ProjectorConfig:
    """Per-projector placement and calibration.

    Attributes:
        id: Unique projector ID.
        name: Display name.
        width: Native resolution width.
        height: Native resolution height.
        display_index: Display adapter index.
        canvas_x: Top-left X position in the canvas.
        canvas_y: Top-left Y position in the canvas.
        homography: Camera-to-projector homography, 9 floats row-major,
            or ``None`` when not calibrated.
        blend: Edge blend settings.
    """

    id: int = 1
    name: str = "Projector 1"
    width: int = 1920
    height: int = 1080
    display_index: int = 0
    canvas_x: int = 0
    canvas_y: int = 0
    homography: list[float] | None = None
    blend: BlendConfig = field(default_factory=BlendConfig)


@dataclass
class ProjectConfig:
    """Project document describing the whole projector rig.

    Attributes:
        name: Project name.
        canvas_width: Combined output canvas width.
        canvas_height: Combined output canvas height.
        camera_source: Name of the camera source, if any.
        projectors: Projectors in calibration order.
    """

    name: str = "New Project"
    canvas_width: int = 1920
    canvas_height: int = 1080
    camera_source: str | None = None
    projectors: list[ProjectorConfig] = field(
        default_factory=lambda: [ProjectorConfig()],
    )


@dataclass
class ExportConfig:
    """Output settings.

    Attributes:
        output_dir: Directory for project documents and mask images.
        mask_bit_depth: Blend mask image depth, 8 or 16.
        project_format: ``yaml`` or ``json``.
    """

    output_dir: str = "output"
    mask_bit_depth: int = 16
    project_format: str = "yaml"


@dataclass
class CalibratorConfig:
    """Top-level configuration composing all subsystem configs.

    Attributes:
        project: The projector rig.
        decoder: Gray code decoding thresholds.
        homography: Homography fitting.
        session: Capture sequencing.
        overlap: Overlap detection and blend generation.
        export: Output settings.
    """

    project: ProjectConfig = field(default_factory=ProjectConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    homography: HomographyConfig = field(default_factory=HomographyConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    overlap: OverlapConfig = field(default_factory=OverlapConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
