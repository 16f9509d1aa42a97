"""Camera-to-projector homography fitting.

Direct linear transform on Hartley-normalized point pairs with ``h33``
fixed to 1, solved as a (optionally confidence-weighted) least-squares
problem.  One pass of outlier rejection drops pairs whose reprojection
residual exceeds a multiple of the median residual, then the system is
refit on the retained inliers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from projmap_calibrator.config.schema import HomographyConfig
from projmap_calibrator.errors import (
    DegenerateCorrespondences,
    InsufficientInliers,
)
from projmap_calibrator.mapping.decoder import DecodedCorrespondences
from projmap_calibrator.math_utils.transforms import (
    apply_homography,
    normalize_points,
)

logger = logging.getLogger(__name__)


@dataclass
class HomographyResult:
    """Outcome of a homography fit.

    Attributes:
        matrix: 3x3 float64 camera-to-projector homography.
        residual_rms: RMS reprojection residual of the inliers, in
            projector pixels.
        inlier_ratio: Inliers over points considered.
        inlier_count: Number of inliers.
        num_points: Number of points considered.
        reprojection_error: Mean inlier reprojection error.
    """

    matrix: np.ndarray
    residual_rms: float
    inlier_ratio: float
    inlier_count: int = 0
    num_points: int = 0
    reprojection_error: float = 0.0


def fit_dlt(
    src: np.ndarray,
    dst: np.ndarray,
    weights: np.ndarray | None = None,
    max_condition: float = 1e12,
) -> np.ndarray:
    """Least-squares DLT fit of ``dst ~ H @ src``.

    Args:
        src: ``(N, 2)`` source points.
        dst: ``(N, 2)`` destination points.
        weights: Optional per-pair weights.
        max_condition: Largest acceptable condition number of the
            normalized system.

    Returns:
        3x3 float64 homography with ``H[2, 2] == 1``.

    Raises:
        DegenerateCorrespondences: For fewer than 4 pairs or a
            rank-deficient / ill-conditioned system.
    """
    n = len(src)
    if n < 4:
        raise DegenerateCorrespondences(
            f"Need at least 4 point pairs for a homography, got {n}"
        )

    s, Ts = normalize_points(src)
    d, Td = normalize_points(dst)
    x, y = s[:, 0], s[:, 1]
    u, v = d[:, 0], d[:, 1]
    zeros = np.zeros(n)
    ones = np.ones(n)

    A = np.empty((2 * n, 8))
    A[0::2] = np.column_stack([x, y, ones, zeros, zeros, zeros, -x * u, -y * u])
    A[1::2] = np.column_stack([zeros, zeros, zeros, x, y, ones, -x * v, -y * v])
    b = np.empty(2 * n)
    b[0::2] = u
    b[1::2] = v

    if weights is not None:
        sw = np.sqrt(np.repeat(np.asarray(weights, np.float64), 2))
        A *= sw[:, np.newaxis]
        b *= sw

    h, _, rank, sv = np.linalg.lstsq(A, b, rcond=None)
    if rank < 8 or sv[-1] <= 0 or sv[0] / sv[-1] > max_condition:
        raise DegenerateCorrespondences(
            f"Correspondences are degenerate (rank {rank})"
        )

    Hn = np.append(h, 1.0).reshape(3, 3)
    H = np.linalg.inv(Td) @ Hn @ Ts
    if abs(H[2, 2]) < 1e-12:
        raise DegenerateCorrespondences("Homography has h33 == 0")
    return H / H[2, 2]


def reprojection_residuals(
    H: np.ndarray,
    src: np.ndarray,
    dst: np.ndarray,
) -> np.ndarray:
    """Euclidean distance between ``H(src)`` and ``dst`` per pair."""
    mapped = apply_homography(H, src)
    r = np.sqrt(((mapped - dst) ** 2).sum(axis=1))
    r[~np.isfinite(r)] = np.inf
    return r


class HomographyComputer:
    """Fits homographies from decoded correspondences.

    Attributes:
        config: Sampling, rejection and acceptance thresholds.
    """

    def __init__(self, config: HomographyConfig | None = None) -> None:
        self.config = config or HomographyConfig()

    def extract_points(
        self,
        corr: DecodedCorrespondences,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Sample usable point pairs from a correspondence set.

        Returns:
            ``(camera_pts, projector_pts, weights)``.
        """
        px, py, conf, valid = corr.as_grids()
        stride = max(1, self.config.sample_stride)
        usable = valid & (conf >= self.config.min_confidence)

        ys, xs = np.nonzero(usable[::stride, ::stride])
        ys = ys * stride
        xs = xs * stride
        if len(xs) > self.config.max_points:
            keep = np.linspace(
                0, len(xs) - 1, self.config.max_points,
            ).astype(int)
            ys, xs = ys[keep], xs[keep]

        src = np.column_stack([xs, ys]).astype(np.float64)
        dst = np.column_stack([px[ys, xs], py[ys, xs]]).astype(np.float64)
        weights = conf[ys, xs].astype(np.float64)
        return src, dst, weights

    def compute(self, corr: DecodedCorrespondences) -> HomographyResult:
        """Fit the camera-to-projector homography.

        Raises:
            DegenerateCorrespondences: Too few points or a singular
                system.
            InsufficientInliers: Outlier rejection kept too few points.
        """
        src, dst, weights = self.extract_points(corr)
        return self.fit(src, dst, weights)

    def fit(
        self,
        src: np.ndarray,
        dst: np.ndarray,
        weights: np.ndarray | None = None,
    ) -> HomographyResult:
        """Fit with one pass of median-based outlier rejection."""
        cfg = self.config
        n = len(src)
        if n < max(cfg.min_points, 4):
            raise DegenerateCorrespondences(
                f"Not enough valid correspondences: {n} "
                f"(need at least {max(cfg.min_points, 4)})"
            )
        if not cfg.confidence_weighted:
            weights = None

        logger.info("Computing homography from %d point pairs", n)
        H = fit_dlt(src, dst, weights, cfg.max_condition)

        residuals = reprojection_residuals(H, src, dst)
        threshold = max(
            cfg.outlier_factor * float(np.median(residuals)),
            cfg.min_outlier_threshold_px,
        )
        inliers = residuals <= threshold
        inlier_count = int(inliers.sum())
        inlier_ratio = inlier_count / n
        logger.debug(
            "Outlier threshold %.3f px keeps %d / %d points",
            threshold, inlier_count, n,
        )
        if inlier_count < 4 or inlier_ratio < cfg.min_inlier_ratio:
            raise InsufficientInliers(
                f"Only {inlier_count} / {n} inliers "
                f"({100.0 * inlier_ratio:.1f}%, need "
                f"{100.0 * cfg.min_inlier_ratio:.1f}%)"
            )

        w_in = None if weights is None else weights[inliers]
        H = fit_dlt(src[inliers], dst[inliers], w_in, cfg.max_condition)
        r_in = reprojection_residuals(H, src[inliers], dst[inliers])
        rms = float(np.sqrt(np.mean(r_in ** 2)))
        mean_err = float(np.mean(r_in))

        logger.info(
            "Homography computed: %d inliers (%.1f%%), rms %.3f px",
            inlier_count, 100.0 * inlier_ratio, rms,
        )
        return HomographyResult(
            matrix=H,
            residual_rms=rms,
            inlier_ratio=inlier_ratio,
            inlier_count=inlier_count,
            num_points=n,
            reprojection_error=mean_err,
        )
