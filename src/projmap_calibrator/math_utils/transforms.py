"""3x3 homography helpers.

All functions work on ``numpy.float64`` 3x3 matrices and ``(N, 2)``
point arrays.
"""

from __future__ import annotations

import math

import numpy as np


def apply_homography(H: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Map points through a homography.

    Points whose homogeneous ``w`` is (numerically) zero map to
    ``NaN``.

    Args:
        H: 3x3 matrix.
        points: ``(N, 2)`` array of ``(x, y)``.

    Returns:
        ``(N, 2)`` float64 array of mapped points.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    homog = np.hstack([pts, np.ones((len(pts), 1))]) @ np.asarray(H).T
    w = homog[:, 2:3]
    with np.errstate(divide="ignore", invalid="ignore"):
        out = homog[:, :2] / w
    out[np.abs(w[:, 0]) < 1e-12] = np.nan
    return out


def invert_homography(H: np.ndarray) -> np.ndarray:
    """Invert a homography and renormalize so ``H[2, 2] == 1``.

    Raises:
        ValueError: If *H* is singular.
    """
    H = np.asarray(H, dtype=np.float64)
    if abs(np.linalg.det(H)) < 1e-12:
        raise ValueError("Matrix is singular, cannot invert")
    inv = np.linalg.inv(H)
    if abs(inv[2, 2]) > 1e-12:
        inv = inv / inv[2, 2]
    return inv


def normalize_points(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Hartley normalization: centroid to origin, mean distance sqrt(2).

    Args:
        points: ``(N, 2)`` array.

    Returns:
        ``(normalized, T)`` where ``T`` is the 3x3 similarity such that
        ``normalized = T @ points`` in homogeneous coordinates.
    """
    pts = np.asarray(points, dtype=np.float64)
    centroid = pts.mean(axis=0)
    mean_dist = np.sqrt(((pts - centroid) ** 2).sum(axis=1)).mean()
    scale = math.sqrt(2.0) / mean_dist if mean_dist > 1e-12 else 1.0
    T = np.array([
        [scale, 0.0, -scale * centroid[0]],
        [0.0, scale, -scale * centroid[1]],
        [0.0, 0.0, 1.0],
    ])
    return (pts - centroid) * scale, T


def projected_bounds(
    H: np.ndarray,
    width: int,
    height: int,
) -> tuple[float, float, float, float]:
    """Bounding box of a ``width`` x ``height`` rectangle mapped by *H*.

    Returns:
        ``(min_x, min_y, max_x, max_y)``.

    Raises:
        ValueError: If a corner maps to infinity.
    """
    corners = np.array([
        [0.0, 0.0],
        [width, 0.0],
        [width, height],
        [0.0, height],
    ])
    mapped = apply_homography(H, corners)
    if not np.all(np.isfinite(mapped)):
        raise ValueError("Rectangle corner maps to infinity")
    return (
        float(mapped[:, 0].min()),
        float(mapped[:, 1].min()),
        float(mapped[:, 0].max()),
        float(mapped[:, 1].max()),
    )
