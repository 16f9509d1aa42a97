"""Tests for projmap_calibrator.mapping.structured_light."""

from __future__ import annotations

import numpy as np
import pytest

from projmap_calibrator.errors import FailureReason, InvalidConfiguration
from projmap_calibrator.mapping.structured_light import (
    PatternConfig,
    PatternDirection,
    PatternGenerator,
    PatternSpec,
    binary_to_gray,
    gray_to_binary,
    num_bits,
    total_patterns,
)


class TestGrayCode:
    """Tests for Gray encoding and decoding."""

    @pytest.mark.parametrize("n", [1, 4, 8, 11])
    def test_roundtrip_scalar(self, n: int) -> None:
        for x in range(2 ** n):
            assert gray_to_binary(binary_to_gray(x)) == x

    def test_roundtrip_array(self) -> None:
        vals = np.arange(2 ** 12, dtype=np.int64)
        recovered = gray_to_binary(binary_to_gray(vals), bit_width=12)
        np.testing.assert_array_equal(recovered, vals)

    @pytest.mark.parametrize("x", [2 ** 32, 2 ** 40 + 12345, 2 ** 63 - 1])
    def test_roundtrip_wide_scalar(self, x: int) -> None:
        assert gray_to_binary(binary_to_gray(x)) == x

    def test_roundtrip_array_default_width(self) -> None:
        vals = np.array([0, 5, 2 ** 33 + 7], dtype=np.int64)
        np.testing.assert_array_equal(gray_to_binary(binary_to_gray(vals)), vals)

    def test_array_input_not_mutated(self) -> None:
        gray = binary_to_gray(np.arange(8, dtype=np.int64))
        before = gray.copy()
        gray_to_binary(gray)
        np.testing.assert_array_equal(gray, before)

    def test_adjacent_codes_differ_by_one_bit(self) -> None:
        for x in range(255):
            diff = binary_to_gray(x) ^ binary_to_gray(x + 1)
            assert bin(diff).count("1") == 1


class TestPatternConfig:
    """Tests for PatternConfig."""

    def test_full_hd(self) -> None:
        cfg = PatternConfig.new(1920, 1080)
        assert cfg.bits_x == 11
        assert cfg.bits_y == 11
        assert cfg.total_patterns() == 46

    def test_power_of_two(self) -> None:
        cfg = PatternConfig.new(1024, 768)
        assert cfg.bits_x == 10
        assert cfg.bits_y == 10

    def test_pattern_count_formula(self) -> None:
        assert total_patterns(11, 11) == 46
        assert total_patterns(3, 2) == 12

    def test_num_bits(self) -> None:
        assert num_bits(2) == 1
        assert num_bits(3) == 2
        assert num_bits(1025) == 11

    @pytest.mark.parametrize("w,h", [(1, 100), (100, 1), (0, 10), (-5, 10)])
    def test_degenerate_resolution_raises(self, w: int, h: int) -> None:
        with pytest.raises(InvalidConfiguration) as exc:
            PatternConfig.new(w, h)
        assert exc.value.reason is FailureReason.INVALID_CONFIGURATION

    def test_sequence_order(self) -> None:
        cfg = PatternConfig.new(16, 4)
        seq = cfg.pattern_sequence()
        assert len(seq) == 2 * (cfg.bits_x + cfg.bits_y)
        assert seq[0] == PatternSpec(0, PatternDirection.HORIZONTAL, False)
        assert seq[1] == PatternSpec(0, PatternDirection.HORIZONTAL, True)
        assert seq[2 * cfg.bits_y] == PatternSpec(0, PatternDirection.VERTICAL, False)
        assert seq[-1] == PatternSpec(
            cfg.bits_x - 1, PatternDirection.VERTICAL, True,
        )

    def test_sequence_plus_references_equals_total(self) -> None:
        cfg = PatternConfig.new(1920, 1080)
        assert len(cfg.pattern_sequence()) + 2 == cfg.total_patterns()


class TestPatternGenerator:
    """Tests for pattern rasterization."""

    def test_shape_and_values(self) -> None:
        gen = PatternGenerator(20, 10)
        for spec in gen.pattern_sequence():
            img = gen.generate_pattern(spec)
            assert img.shape == (10, 20)
            assert img.dtype == np.uint8
            assert set(np.unique(img)) <= {0, 255}

    def test_references(self) -> None:
        gen = PatternGenerator(16, 8)
        assert np.all(gen.generate_white() == 255)
        assert np.all(gen.generate_black() == 0)
        assert gen.generate_white().shape == (8, 16)

    def test_inverted_is_complement(self) -> None:
        gen = PatternGenerator(32, 16)
        normal = gen.generate_pattern(PatternSpec(2, PatternDirection.VERTICAL))
        inverted = gen.generate_pattern(
            PatternSpec(2, PatternDirection.VERTICAL, inverted=True),
        )
        np.testing.assert_array_equal(inverted, 255 - normal)

    def test_msb_vertical_splits_halves(self) -> None:
        gen = PatternGenerator(16, 4)
        img = gen.generate_pattern(PatternSpec(0, PatternDirection.VERTICAL))
        assert np.all(img[:, :8] == 0)
        assert np.all(img[:, 8:] == 255)

    def test_horizontal_varies_along_y(self) -> None:
        gen = PatternGenerator(8, 16)
        img = gen.generate_pattern(PatternSpec(0, PatternDirection.HORIZONTAL))
        assert np.all(img == img[:, :1])
        assert np.all(img[:8] == 0)
        assert np.all(img[8:] == 255)

    def test_pixel_matches_formula(self) -> None:
        gen = PatternGenerator(40, 24)
        spec = PatternSpec(3, PatternDirection.VERTICAL)
        img = gen.generate_pattern(spec)
        bits_x = gen.config.bits_x
        for x in range(40):
            bit = (binary_to_gray(x) >> (bits_x - 1 - 3)) & 1
            assert img[5, x] == (255 if bit else 0)

    def test_bit_index_out_of_range(self) -> None:
        gen = PatternGenerator(16, 8)
        with pytest.raises(ValueError, match="out of range"):
            gen.generate_pattern(PatternSpec(3, PatternDirection.HORIZONTAL))
