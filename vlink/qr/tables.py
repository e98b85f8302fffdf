"""
QR Code Model 2 constants: error-correction levels, block structure and
geometry helpers for versions 1-40.
"""

from enum import Enum
from typing import List

MIN_VERSION = 1
MAX_VERSION = 40


class ErrorCorrection(Enum):
    """Error-correction level: (ordinal, format bits)."""

    L = (0, 1)  # ~7% recovery
    M = (1, 0)  # ~15%
    Q = (2, 3)  # ~25%
    H = (3, 2)  # ~30%

    def __init__(self, ordinal: int, format_bits: int):
        self.ordinal = ordinal
        self.format_bits = format_bits

    @classmethod
    def parse(cls, value) -> "ErrorCorrection":
        """Accept an ErrorCorrection or one of "L", "M", "Q", "H" (any case)."""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown error correction level: {value!r}") from None


# Indexed by [level.ordinal][version]; index 0 is unused.
ECC_CODEWORDS_PER_BLOCK = (
    (-1, 7, 10, 15, 20, 26, 18, 20, 24, 30, 18, 20, 24, 26, 30, 22, 24, 28, 30, 28, 28,
     28, 28, 30, 30, 26, 28, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),  # L
    (-1, 10, 16, 26, 18, 24, 16, 18, 22, 22, 26, 30, 22, 22, 24, 24, 28, 28, 26, 26, 26,
     26, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28),  # M
    (-1, 13, 22, 18, 26, 18, 24, 18, 22, 20, 24, 28, 26, 24, 20, 30, 24, 28, 28, 26, 30,
     28, 30, 30, 30, 30, 28, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),  # Q
    (-1, 17, 28, 22, 16, 22, 28, 26, 26, 24, 28, 24, 28, 22, 24, 24, 30, 28, 28, 26, 28,
     30, 24, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),  # H
)

NUM_ERROR_CORRECTION_BLOCKS = (
    (-1, 1, 1, 1, 1, 1, 2, 2, 2, 2, 4, 4, 4, 4, 4, 6, 6, 6, 6, 7, 8,
     8, 9, 9, 10, 12, 12, 12, 13, 14, 15, 16, 17, 18, 19, 19, 20, 21, 22, 24, 25),  # L
    (-1, 1, 1, 1, 2, 2, 4, 4, 4, 5, 5, 5, 8, 9, 9, 10, 10, 11, 13, 14, 16,
     17, 17, 18, 20, 21, 23, 25, 26, 28, 29, 31, 33, 35, 37, 38, 40, 43, 45, 47, 49),  # M
    (-1, 1, 1, 2, 2, 4, 4, 6, 6, 8, 8, 8, 10, 12, 16, 12, 17, 16, 18, 21, 20,
     23, 23, 25, 27, 29, 34, 34, 35, 38, 40, 43, 45, 48, 51, 53, 56, 59, 62, 65, 68),  # Q
    (-1, 1, 1, 2, 4, 4, 4, 5, 6, 8, 8, 11, 11, 16, 16, 18, 16, 19, 21, 25, 25,
     25, 34, 30, 32, 35, 37, 40, 42, 45, 48, 51, 54, 57, 60, 63, 66, 70, 74, 77, 81),  # H
)


def _check_version(version: int) -> None:
    if not MIN_VERSION <= version <= MAX_VERSION:
        raise ValueError(f"Version out of range: {version}")


def symbol_size(version: int) -> int:
    return version * 4 + 17


def num_raw_data_modules(version: int) -> int:
    """
    Modules available for data and EC codewords once every function
    pattern is removed; includes remainder bits, so it may not be a
    multiple of 8.
    """
    _check_version(version)
    result = (16 * version + 128) * version + 64
    if version >= 2:
        num_align = version // 7 + 2
        result -= (25 * num_align - 10) * num_align - 55
        if version >= 7:
            result -= 36
    return result


def num_data_codewords(version: int, level: ErrorCorrection) -> int:
    """8-bit data codewords (EC excluded) for a version and level."""
    return (
        num_raw_data_modules(version) // 8
        - ECC_CODEWORDS_PER_BLOCK[level.ordinal][version] * NUM_ERROR_CORRECTION_BLOCKS[level.ordinal][version]
    )


def alignment_pattern_positions(version: int) -> List[int]:
    """Ascending row/column centres of the alignment patterns."""
    _check_version(version)
    if version == 1:
        return []
    num_align = version // 7 + 2
    step = (version * 8 + num_align * 3 + 5) // (num_align * 4 - 4) * 2
    size = symbol_size(version)
    result = [size - 7 - i * step for i in range(num_align - 1)] + [6]
    return list(reversed(result))
