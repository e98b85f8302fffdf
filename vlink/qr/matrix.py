"""
Module grid construction: function patterns, codeword placement, masking,
penalty scoring and format/version information.

Coordinates are (x, y) = (column, row); `modules[y][x]` is True for dark.
"""

from collections import deque
from typing import Callable, Deque, List, Sequence

from .tables import ErrorCorrection, alignment_pattern_positions, symbol_size

# Penalty weights for the four scoring rules.
PENALTY_N1 = 3
PENALTY_N2 = 3
PENALTY_N3 = 40
PENALTY_N4 = 10

MASK_PATTERNS: Sequence[Callable[[int, int], bool]] = (
    lambda x, y: (x + y) % 2 == 0,
    lambda x, y: y % 2 == 0,
    lambda x, y: x % 3 == 0,
    lambda x, y: (x + y) % 3 == 0,
    lambda x, y: (x // 3 + y // 2) % 2 == 0,
    lambda x, y: x * y % 2 + x * y % 3 == 0,
    lambda x, y: (x * y % 2 + x * y % 3) % 2 == 0,
    lambda x, y: ((x + y) % 2 + x * y % 3) % 2 == 0,
)


def _bit(value: int, i: int) -> bool:
    return (value >> i) & 1 != 0


def format_bits(level: ErrorCorrection, mask: int) -> int:
    """15-bit format word: level and mask, BCH(15,5) protected, XOR 0x5412."""
    data = level.format_bits << 3 | mask
    rem = data
    for _ in range(10):
        rem = (rem << 1) ^ ((rem >> 9) * 0x537)
    return (data << 10 | rem) ^ 0x5412


def version_bits(version: int) -> int:
    """18-bit version word, BCH(18,6) protected. Only drawn for version >= 7."""
    rem = version
    for _ in range(12):
        rem = (rem << 1) ^ ((rem >> 11) * 0x1F25)
    return version << 12 | rem


class ModuleGrid:
    """Mutable grid for one symbol version; function patterns drawn on init."""

    def __init__(self, version: int):
        self.version = version
        self.size = symbol_size(version)
        self.modules: List[List[bool]] = [[False] * self.size for _ in range(self.size)]
        self.is_function: List[List[bool]] = [[False] * self.size for _ in range(self.size)]
        self._draw_function_patterns()

    # ---- Function patterns ------------------------------------------------

    def _set_function(self, x: int, y: int, dark: bool) -> None:
        self.modules[y][x] = dark
        self.is_function[y][x] = True

    def _draw_function_patterns(self) -> None:
        size = self.size
        for i in range(size):
            self._set_function(6, i, i % 2 == 0)
            self._set_function(i, 6, i % 2 == 0)

        self._draw_finder(3, 3)
        self._draw_finder(size - 4, 3)
        self._draw_finder(3, size - 4)

        positions = alignment_pattern_positions(self.version)
        last = len(positions) - 1
        for i, px in enumerate(positions):
            for j, py in enumerate(positions):
                # Corners already hold finder patterns.
                if (i, j) in ((0, 0), (0, last), (last, 0)):
                    continue
                self._draw_alignment(px, py)

        # Reserve the format areas; real bits are drawn after masking.
        self.draw_format_bits(ErrorCorrection.M, 0)
        self._draw_version()

    def _draw_finder(self, cx: int, cy: int) -> None:
        """7x7 finder plus its one-module light separator, clipped at edges."""
        for dy in range(-4, 5):
            for dx in range(-4, 5):
                x, y = cx + dx, cy + dy
                if 0 <= x < self.size and 0 <= y < self.size:
                    dist = max(abs(dx), abs(dy))
                    self._set_function(x, y, dist not in (2, 4))

    def _draw_alignment(self, cx: int, cy: int) -> None:
        for dy in range(-2, 3):
            for dx in range(-2, 3):
                self._set_function(cx + dx, cy + dy, max(abs(dx), abs(dy)) != 1)

    def draw_format_bits(self, level: ErrorCorrection, mask: int) -> None:
        bits = format_bits(level, mask)
        size = self.size

        # First copy, around the top-left finder
        for i in range(0, 6):
            self._set_function(8, i, _bit(bits, i))
        self._set_function(8, 7, _bit(bits, 6))
        self._set_function(8, 8, _bit(bits, 7))
        self._set_function(7, 8, _bit(bits, 8))
        for i in range(9, 15):
            self._set_function(14 - i, 8, _bit(bits, i))

        # Second copy, split between the other two finders
        for i in range(0, 8):
            self._set_function(size - 1 - i, 8, _bit(bits, i))
        for i in range(8, 15):
            self._set_function(8, size - 15 + i, _bit(bits, i))
        self._set_function(8, size - 8, True)  # dark module

    def _draw_version(self) -> None:
        if self.version < 7:
            return
        bits = version_bits(self.version)
        for i in range(18):
            dark = _bit(bits, i)
            a = self.size - 11 + i % 3
            b = i // 3
            self._set_function(a, b, dark)
            self._set_function(b, a, dark)

    # ---- Data -------------------------------------------------------------

    def draw_codewords(self, codewords: Sequence[int]) -> None:
        """
        Zig-zag placement: two-column strips from the right edge, alternating
        upward and downward, skipping the vertical timing column and every
        function module. Leftover remainder modules stay light.
        """
        size = self.size
        total_bits = len(codewords) * 8
        i = 0
        right = size - 1
        while right >= 1:
            if right == 6:
                right = 5
            upward = (right + 1) & 2 == 0
            for vert in range(size):
                y = size - 1 - vert if upward else vert
                for j in range(2):
                    x = right - j
                    if not self.is_function[y][x] and i < total_bits:
                        self.modules[y][x] = _bit(codewords[i >> 3], 7 - (i & 7))
                        i += 1
            right -= 2
        if i != total_bits:
            raise ValueError("Codeword count does not match the symbol capacity")

    def apply_mask(self, mask: int) -> None:
        """XOR the mask into data modules; applying it twice restores the grid."""
        if not 0 <= mask <= 7:
            raise ValueError("Mask value out of range")
        pattern = MASK_PATTERNS[mask]
        for y in range(self.size):
            row = self.modules[y]
            func = self.is_function[y]
            for x in range(self.size):
                if not func[x] and pattern(x, y):
                    row[x] = not row[x]

    def penalty_score(self) -> int:
        return penalty_score(self.modules)


# ---- Penalty scoring -----------------------------------------------------

def _add_run(length: int, history: Deque[int], size: int) -> None:
    if history[0] == 0:
        length += size  # light border before the first run
    history.appendleft(length)


def _count_finder_like(history: Deque[int]) -> int:
    """Count 1:1:3:1:1 dark-centred runs with 4 light modules on one side."""
    n = history[1]
    core = n > 0 and history[2] == history[4] == history[5] == n and history[3] == n * 3
    return (
        (1 if core and history[0] >= n * 4 and history[6] >= n else 0)
        + (1 if core and history[6] >= n * 4 and history[0] >= n else 0)
    )


def _finish_line(color: bool, length: int, history: Deque[int], size: int) -> int:
    if color:  # close a dark run
        _add_run(length, history, size)
        length = 0
    length += size  # light border after the last run
    _add_run(length, history, size)
    return _count_finder_like(history)


def _line_penalty(line: Sequence[bool], size: int) -> int:
    result = 0
    color = False
    run = 0
    history: Deque[int] = deque([0] * 7, 7)
    for cell in line:
        if cell == color:
            run += 1
            if run == 5:
                result += PENALTY_N1
            elif run > 5:
                result += 1
        else:
            _add_run(run, history, size)
            if not color:
                result += _count_finder_like(history) * PENALTY_N3
            color = cell
            run = 1
    result += _finish_line(color, run, history, size) * PENALTY_N3
    return result


def penalty_score(modules: Sequence[Sequence[bool]]) -> int:
    """
    Sum of the four penalty rules:
        1. runs of 5+ same-colour modules in a row/column: N1 + (len - 5)
        2. each 2x2 same-colour block: N2
        3. each finder-like 1:1:3:1:1 pattern with a 4-module light side: N3
        4. dark share deviation from 50%, per started 5% step beyond it: N4
    """
    size = len(modules)
    result = 0
    for y in range(size):
        result += _line_penalty(modules[y], size)
    for x in range(size):
        result += _line_penalty([modules[y][x] for y in range(size)], size)

    for y in range(size - 1):
        for x in range(size - 1):
            color = modules[y][x]
            if color == modules[y][x + 1] == modules[y + 1][x] == modules[y + 1][x + 1]:
                result += PENALTY_N2

    dark = sum(1 for row in modules for cell in row if cell)
    total = size * size
    k = (abs(dark * 20 - total * 10) + total - 1) // total - 1
    result += k * PENALTY_N4
    return result
