"""
Unit tests for vlink.qr.matrix: format/version words, function patterns,
masking and penalty scoring.
"""

import pytest

from vlink.qr.matrix import (
    PENALTY_N3,
    ModuleGrid,
    _line_penalty,
    format_bits,
    penalty_score,
    version_bits,
)
from vlink.qr.tables import ErrorCorrection, num_raw_data_modules


def test_format_bits_known_values():
    assert format_bits(ErrorCorrection.M, 0) == 0x5412
    assert format_bits(ErrorCorrection.L, 0) == 0b111011111000100
    assert format_bits(ErrorCorrection.H, 7) == 0b000100000111011


def test_version_bits_known_values():
    assert version_bits(7) == 0x07C94
    assert version_bits(40) == 0x28C69


def test_function_patterns_version_1():
    grid = ModuleGrid(1)
    assert grid.size == 21
    # Finder centre and ring
    assert grid.modules[3][3] is True
    assert grid.modules[1][1] is False
    assert grid.modules[0][0] is True
    # Separator
    assert grid.modules[7][0] is False
    # Timing pattern between finders
    assert [grid.modules[6][x] for x in range(8, 13)] == [True, False, True, False, True]
    # Dark module
    assert grid.modules[13][8] is True
    assert grid.is_function[13][8]
    # Data area is free
    assert not grid.is_function[20][20]


def test_alignment_pattern_drawn_version_2():
    grid = ModuleGrid(2)
    assert grid.modules[18][18] is True
    assert grid.modules[17][18] is False
    assert grid.modules[16][18] is True
    assert grid.is_function[16][16]


def test_version_info_only_from_7():
    small = ModuleGrid(6)
    assert not small.is_function[0][small.size - 11]
    big = ModuleGrid(7)
    assert big.is_function[0][big.size - 11]
    assert big.is_function[big.size - 11][0]


def test_function_module_count_matches_capacity():
    for version in (1, 2, 6, 7, 14, 40):
        grid = ModuleGrid(version)
        free = sum(1 for row in grid.is_function for f in row if not f)
        assert free == num_raw_data_modules(version)


def test_draw_codewords_rejects_overflow():
    grid = ModuleGrid(1)
    with pytest.raises(ValueError):
        grid.draw_codewords([0] * 27)
    grid = ModuleGrid(1)
    grid.draw_codewords([0xFF] * 26)
    # First placed bit is the bottom-right corner
    assert grid.modules[20][20] is True


def test_mask_is_self_inverse_and_skips_function_modules():
    grid = ModuleGrid(1)
    grid.draw_codewords(list(range(26)))
    before = [row[:] for row in grid.modules]
    grid.apply_mask(3)
    assert grid.modules != before
    assert all(
        grid.modules[y][x] == before[y][x]
        for y in range(grid.size) for x in range(grid.size) if grid.is_function[y][x]
    )
    grid.apply_mask(3)
    assert grid.modules == before
    with pytest.raises(ValueError):
        grid.apply_mask(8)


def test_penalty_uniform_grid():
    # Rows and columns: 10 runs of 5 (3 each), 16 2x2 blocks (3 each),
    # 100% dark share -> 9 steps of 10.
    assert penalty_score([[False] * 5 for _ in range(5)]) == 30 + 48 + 90
    assert penalty_score([[True] * 5 for _ in range(5)]) == 30 + 48 + 90


def test_finder_like_line_counts_both_sides():
    line = [True, False, True, True, True, False, True]
    assert _line_penalty(line, 7) == 2 * PENALTY_N3


def test_long_run_penalty():
    # One light run of 7 with borders counted separately: 3 + 2
    assert _line_penalty([False] * 7, 7) == 5
