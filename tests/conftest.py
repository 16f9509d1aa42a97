"""Shared test fixtures for the projmap_calibrator test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import numpy as np
import pytest

from projmap_calibrator.config.schema import HomographyConfig, SessionConfig
from projmap_calibrator.mapping.decoder import CapturedPair, DecodedCorrespondences
from projmap_calibrator.mapping.structured_light import PatternGenerator


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    """Auto-skip tests marked ``hardware`` by default."""
    skip_hw = pytest.mark.skip(reason="requires physical hardware")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hw)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture
def configs_dir(project_root: Path) -> Path:
    """Return the configs/ directory path."""
    return project_root / "configs"


@pytest.fixture
def fast_session_config() -> SessionConfig:
    """Session settings with no settle delay."""
    return SessionConfig(capture_timeout_s=0.5, settle_time_s=0.0)


@pytest.fixture
def small_homography_config() -> HomographyConfig:
    """Homography settings suited to tiny synthetic cameras."""
    return HomographyConfig(sample_stride=1, min_points=20)


@pytest.fixture
def identity_capture() -> Callable[
    [int, int], tuple[PatternGenerator, np.ndarray, np.ndarray, list[CapturedPair]]
]:
    """Factory for a noise-free capture set seen by a 1:1 camera.

    Each camera pixel sees exactly the projector pixel at the same
    coordinate, so the captures are the patterns themselves.
    """

    def make(width: int, height: int):
        gen = PatternGenerator(width, height)
        pairs = [
            CapturedPair(spec, gen.generate_pattern(spec))
            for spec in gen.pattern_sequence()
        ]
        return gen, gen.generate_white(), gen.generate_black(), pairs

    return make


@pytest.fixture
def identity_correspondences() -> Callable[[int, int], DecodedCorrespondences]:
    """Factory for correspondences where camera == projector coords."""

    def make(width: int, height: int) -> DecodedCorrespondences:
        corr = DecodedCorrespondences.empty(width, height, width, height)
        xs, ys = corr.camera_coords()
        corr.projector_x[:] = xs
        corr.projector_y[:] = ys
        corr.confidence[:] = 1.0
        corr.valid_mask[:] = True
        return corr

    return make
