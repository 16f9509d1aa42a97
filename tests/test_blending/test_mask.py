"""Tests for projmap_calibrator.blending.mask."""

from __future__ import annotations

import numpy as np
import pytest

from projmap_calibrator.config.schema import BlendConfig
from projmap_calibrator.errors import InvalidConfiguration
from projmap_calibrator.blending.mask import (
    BlendCurve,
    BlendMask,
    OverlapEdge,
    apply_curve,
    mask_from_blend_config,
)

ALL_CURVES = list(BlendCurve)
SYMMETRIC_CURVES = [BlendCurve.LINEAR, BlendCurve.COSINE, BlendCurve.SMOOTHSTEP]


class TestCurves:
    """Tests for the falloff curve shapes."""

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_endpoints(self, curve: BlendCurve) -> None:
        assert apply_curve(0.0, curve) == pytest.approx(0.0, abs=1e-12)
        assert apply_curve(1.0, curve) == pytest.approx(1.0)

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_monotonic(self, curve: BlendCurve) -> None:
        values = apply_curve(np.linspace(0.0, 1.0, 101), curve)
        assert np.all(np.diff(values) >= 0.0)

    @pytest.mark.parametrize("curve", SYMMETRIC_CURVES)
    def test_complementary(self, curve: BlendCurve) -> None:
        t = np.linspace(0.0, 1.0, 51)
        np.testing.assert_allclose(
            apply_curve(t, curve) + apply_curve(1.0 - t, curve), 1.0, atol=1e-12,
        )

    def test_known_values(self) -> None:
        assert apply_curve(0.5, BlendCurve.LINEAR) == pytest.approx(0.5)
        assert apply_curve(0.5, BlendCurve.GAMMA) == pytest.approx(0.5 ** 2.2)
        assert apply_curve(0.5, BlendCurve.COSINE) == pytest.approx(0.5)
        assert apply_curve(0.25, BlendCurve.SMOOTHSTEP) == pytest.approx(0.15625)

    def test_scalar_returns_float(self) -> None:
        assert isinstance(apply_curve(0.3, BlendCurve.COSINE), float)

    @pytest.mark.parametrize("name", ["Linear", " gamma ", "COSINE", "smoothstep"])
    def test_parse(self, name: str) -> None:
        assert BlendCurve.parse(name).value == name.strip().lower()

    def test_parse_unknown(self) -> None:
        with pytest.raises(InvalidConfiguration, match="Unknown blend curve"):
            BlendCurve.parse("sigmoid")

    def test_opposite_edges(self) -> None:
        assert OverlapEdge.LEFT.opposite is OverlapEdge.RIGHT
        assert OverlapEdge.TOP.opposite is OverlapEdge.BOTTOM


class TestBlendMask:
    """Tests for applying edge blends."""

    def test_new_is_ones(self) -> None:
        mask = BlendMask.new(8, 4)
        assert mask.data.shape == (4, 8)
        assert mask.data.dtype == np.float32
        assert np.all(mask.data == 1.0)

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_right_blend(self, curve: BlendCurve) -> None:
        mask = BlendMask.new(100, 4)
        mask.apply_right_blend(20, curve)
        row = mask.data[0]
        assert np.all(row[:81] == 1.0)
        assert np.all(np.diff(row) <= 0.0)
        assert row[-1] < 0.2
        assert mask.curve is curve

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_left_blend(self, curve: BlendCurve) -> None:
        mask = BlendMask.new(100, 4)
        mask.apply_left_blend(20, curve)
        row = mask.data[0]
        assert row[0] == 0.0
        assert np.all(np.diff(row) >= 0.0)
        assert np.all(row[20:] == 1.0)

    def test_top_and_bottom(self) -> None:
        mask = BlendMask.new(4, 50)
        mask.apply_top_blend(10, BlendCurve.LINEAR)
        mask.apply_bottom_blend(10, BlendCurve.LINEAR)
        col = mask.data[:, 0]
        assert col[0] == 0.0
        assert np.all(col[10:40] == 1.0)
        assert np.all(np.diff(col[:10]) > 0.0)
        assert np.all(np.diff(col[40:]) < 0.0)

    def test_disjoint_zones_leave_interior(self) -> None:
        mask = BlendMask.new(200, 10)
        mask.apply_left_blend(30, BlendCurve.COSINE)
        mask.apply_right_blend(40, BlendCurve.COSINE)
        assert np.all(mask.data[:, 30:160] == 1.0)

    def test_corner_is_product(self) -> None:
        mask = BlendMask.new(40, 40)
        mask.apply_right_blend(10, BlendCurve.LINEAR)
        right_only = mask.data.copy()
        mask.apply_bottom_blend(10, BlendCurve.LINEAR)
        bottom = BlendMask.new(40, 40)
        bottom.apply_bottom_blend(10, BlendCurve.LINEAR)
        np.testing.assert_allclose(mask.data, right_only * bottom.data, rtol=1e-6)

    def test_zero_width_is_noop(self) -> None:
        mask = BlendMask.new(16, 8)
        mask.apply_right_blend(0, BlendCurve.GAMMA)
        mask.apply_top_blend(-3, BlendCurve.GAMMA)
        assert np.all(mask.data == 1.0)

    def test_width_larger_than_mask(self) -> None:
        mask = BlendMask.new(10, 2)
        mask.apply_right_blend(40, BlendCurve.LINEAR)
        assert mask.data.shape == (2, 10)
        assert np.all(mask.data <= 1.0)
        assert np.all(np.diff(mask.data[0]) < 0.0)

    def test_edge_dispatch(self) -> None:
        a = BlendMask.new(30, 5)
        b = BlendMask.new(30, 5)
        a.apply_edge_blend(OverlapEdge.LEFT, 6, BlendCurve.SMOOTHSTEP)
        b.apply_left_blend(6, BlendCurve.SMOOTHSTEP)
        np.testing.assert_array_equal(a.data, b.data)


class TestQuantize:

    def test_8_bit(self) -> None:
        mask = BlendMask(3, 1, np.array([[0.0, 0.25, 1.0]], np.float32))
        out = mask.quantize(8)
        assert out.dtype == np.uint8
        np.testing.assert_array_equal(out, [[0, 64, 255]])

    def test_16_bit(self) -> None:
        mask = BlendMask(3, 1, np.array([[0.0, 0.25, 1.0]], np.float32))
        out = mask.quantize(16)
        assert out.dtype == np.uint16
        np.testing.assert_array_equal(out, [[0, 16384, 65535]])

    def test_bad_depth(self) -> None:
        with pytest.raises(ValueError, match="bit depth"):
            BlendMask.new(2, 2).quantize(12)


class TestMaskFromBlendConfig:

    def test_configured_widths(self) -> None:
        blend = BlendConfig(left_width=5, right_width=7, curve="linear")
        mask = mask_from_blend_config(40, 6, blend)
        assert mask.curve is BlendCurve.LINEAR
        assert mask.data[0, 0] == 0.0
        assert np.all(mask.data[:, 5:33] == 1.0)
        assert mask.data[0, 39] < 1.0

    def test_no_widths(self) -> None:
        mask = mask_from_blend_config(8, 8, BlendConfig())
        assert np.all(mask.data == 1.0)
