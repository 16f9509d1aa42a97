"""Calibration error taxonomy.

Every failure that can halt a calibration session is a
``CalibrationError`` carrying a machine-readable ``reason``.  The
session converts these into a ``Failed`` state; per-pixel anomalies
never reach this level.
"""

from __future__ import annotations

from enum import Enum


class FailureReason(str, Enum):
    """Machine-readable failure categories."""

    CAPTURE_TIMEOUT = "capture_timeout"
    INSUFFICIENT_VALID_PIXELS = "insufficient_valid_pixels"
    DEGENERATE_CORRESPONDENCES = "degenerate_correspondences"
    INSUFFICIENT_INLIERS = "insufficient_inliers"
    INVALID_CONFIGURATION = "invalid_configuration"


class CalibrationError(Exception):
    """Base class for session-level calibration failures."""

    reason: FailureReason = FailureReason.INVALID_CONFIGURATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CaptureTimeout(CalibrationError):
    """The camera did not deliver a frame in time."""

    reason = FailureReason.CAPTURE_TIMEOUT


class InsufficientValidPixels(CalibrationError):
    """Too few camera pixels decoded to usable correspondences."""

    reason = FailureReason.INSUFFICIENT_VALID_PIXELS


class DegenerateCorrespondences(CalibrationError):
    """Too few points, or a near-singular linear system."""

    reason = FailureReason.DEGENERATE_CORRESPONDENCES


class InsufficientInliers(CalibrationError):
    """Outlier rejection left too few points to trust the fit."""

    reason = FailureReason.INSUFFICIENT_INLIERS


class InvalidConfiguration(CalibrationError, ValueError):
    """Resolution or parameter values that cannot be calibrated."""

    reason = FailureReason.INVALID_CONFIGURATION
