"""Gray code structured-light pattern generation.

The pure-math pieces (Gray encoding, the bit-plane schedule and pattern
rasterization) are kept free of hardware I/O so they can be tested
without a projector or camera.  The ordering produced by
:meth:`PatternConfig.pattern_sequence` is what the decoder relies on to
re-associate captured frames with bit planes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from projmap_calibrator.errors import InvalidConfiguration

logger = logging.getLogger(__name__)


class PatternDirection(str, Enum):
    """Stripe direction of a pattern.

    ``HORIZONTAL`` stripes vary along the vertical axis and encode Y;
    ``VERTICAL`` stripes vary along the horizontal axis and encode X.
    """

    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(frozen=True)
class PatternSpec:
    """Descriptor of one pattern to project.

    Attributes:
        bit_index: Bit plane, counted from the most significant bit.
        direction: Stripe direction.
        inverted: Whether this is the inverted half of the pair.
    """

    bit_index: int
    direction: PatternDirection
    inverted: bool = False


def num_bits(resolution: int) -> int:
    """Bits needed to address *resolution* pixels (``ceil(log2(n))``)."""
    return (int(resolution) - 1).bit_length()


def binary_to_gray(binary: int | np.ndarray) -> int | np.ndarray:
    """Convert a binary integer (or integer array) to Gray code."""
    return binary ^ (binary >> 1)


def gray_to_binary(
    gray: int | np.ndarray, bit_width: int | None = None,
) -> int | np.ndarray:
    """Convert a Gray code integer (or integer array) back to binary.

    Args:
        gray: Gray-coded value(s).
        bit_width: Width of the values in bits.  Defaults to
            ``gray.bit_length()`` for ints and the dtype width for
            arrays.

    Returns:
        Binary value(s) of the same type.
    """
    if isinstance(gray, np.ndarray):
        binary = gray.copy()
        width = gray.dtype.itemsize * 8 if bit_width is None else bit_width
    else:
        binary = int(gray)
        width = binary.bit_length() if bit_width is None else bit_width
    shift = 1
    while shift < width:
        binary ^= binary >> shift
        shift *= 2
    return binary


@dataclass(frozen=True)
class PatternConfig:
    """Bit-plane layout for one projector resolution.

    Attributes:
        proj_width: Projector width in pixels.
        proj_height: Projector height in pixels.
        bits_x: Bit planes encoding X (vertical stripes).
        bits_y: Bit planes encoding Y (horizontal stripes).
    """

    proj_width: int
    proj_height: int
    bits_x: int
    bits_y: int

    @classmethod
    def new(cls, width: int, height: int) -> PatternConfig:
        """Build the layout for a ``width`` x ``height`` projector.

        Raises:
            InvalidConfiguration: If either axis is smaller than 2
                pixels, which leaves nothing to encode.
        """
        if width < 2 or height < 2:
            raise InvalidConfiguration(
                f"Projector resolution {width}x{height} is degenerate; "
                f"both axes must be at least 2 pixels"
            )
        return cls(
            proj_width=int(width),
            proj_height=int(height),
            bits_x=num_bits(width),
            bits_y=num_bits(height),
        )

    def total_patterns(self) -> int:
        """Patterns per projector, including white/black references."""
        return total_patterns(self.bits_x, self.bits_y)

    def bits_for(self, direction: PatternDirection) -> int:
        """Number of bit planes for *direction*."""
        if direction is PatternDirection.HORIZONTAL:
            return self.bits_y
        return self.bits_x

    def pattern_sequence(self) -> list[PatternSpec]:
        """Return the ordered bit-plane schedule.

        ``bits_y`` horizontal pairs (normal, inverted) come first,
        followed by ``bits_x`` vertical pairs, each MSB first.
        """
        seq: list[PatternSpec] = []
        for direction, bits in (
            (PatternDirection.HORIZONTAL, self.bits_y),
            (PatternDirection.VERTICAL, self.bits_x),
        ):
            for bit in range(bits):
                seq.append(PatternSpec(bit, direction, inverted=False))
                seq.append(PatternSpec(bit, direction, inverted=True))
        return seq


def total_patterns(bits_x: int, bits_y: int) -> int:
    """Total projected frames: a normal/inverted pair per bit plus two
    reference frames."""
    return (bits_x + bits_y) * 2 + 2


class PatternGenerator:
    """Rasterizes Gray code patterns for one projector.

    Attributes:
        config: The bit-plane layout.
    """

    def __init__(self, width: int, height: int) -> None:
        self.config = PatternConfig.new(width, height)
        logger.info(
            "Pattern generator %dx%d: %d x-bits, %d y-bits, %d patterns",
            width, height, self.config.bits_x, self.config.bits_y,
            self.config.total_patterns(),
        )

    @property
    def width(self) -> int:
        return self.config.proj_width

    @property
    def height(self) -> int:
        return self.config.proj_height

    def pattern_sequence(self) -> list[PatternSpec]:
        return self.config.pattern_sequence()

    def generate_pattern(self, spec: PatternSpec) -> np.ndarray:
        """Rasterize one pattern.

        Args:
            spec: The pattern to draw.

        Returns:
            A ``(height, width)`` uint8 image of 0/255 stripes.

        Raises:
            ValueError: If ``spec.bit_index`` is out of range.
        """
        total_bits = self.config.bits_for(spec.direction)
        if not 0 <= spec.bit_index < total_bits:
            raise ValueError(
                f"bit_index {spec.bit_index} out of range for "
                f"{total_bits} {spec.direction.value} bit planes"
            )
        bit_position = total_bits - 1 - spec.bit_index

        horizontal = spec.direction is PatternDirection.HORIZONTAL
        length = self.height if horizontal else self.width
        coords = np.arange(length, dtype=np.uint32)
        bits = (binary_to_gray(coords) >> bit_position) & 1
        if spec.inverted:
            bits ^= 1
        stripe = bits.astype(np.uint8) * 255

        if horizontal:
            return np.repeat(stripe[:, np.newaxis], self.width, axis=1)
        return np.repeat(stripe[np.newaxis, :], self.height, axis=0)

    def generate_white(self) -> np.ndarray:
        """All-255 reference frame."""
        return np.full((self.height, self.width), 255, np.uint8)

    def generate_black(self) -> np.ndarray:
        """All-0 reference frame."""
        return np.zeros((self.height, self.width), np.uint8)
