"""Projmap Calibrator: structured-light multi-projector calibration.

Generates Gray code patterns, decodes camera captures into
projector-space correspondences, fits per-projector homographies, and
builds edge-blend masks for seamless multi-projector output.
"""

__version__ = "0.1.0"
