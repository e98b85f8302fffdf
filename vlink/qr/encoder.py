"""
QR symbol encoder.

`encode(text, level)` turns a string into a finished QRSymbol:

    1. optimal segmentation (numeric / alphanumeric / byte / kanji)
    2. smallest version whose capacity at `level` fits the bit stream
    3. terminator, byte alignment and 0xEC/0x11 padding
    4. block split, Reed-Solomon EC, interleaving
    5. function patterns and zig-zag placement
    6. mask selection by penalty score
    7. format and version information

The requested level is used as given; no automatic boost. Symbols are
computed on every call and never cached.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from vlink.errors import EncodingTooLargeError

from .matrix import ModuleGrid
from .reed_solomon import compute_divisor, compute_remainder
from .segments import BitBuffer, Segment, make_segments_optimally, total_bits
from .tables import (
    ECC_CODEWORDS_PER_BLOCK,
    MAX_VERSION,
    MIN_VERSION,
    NUM_ERROR_CORRECTION_BLOCKS,
    ErrorCorrection,
    num_data_codewords,
    num_raw_data_modules,
)

log = logging.getLogger(__name__)

# Version ranges that share a character count field width.
_VERSION_GROUPS = ((MIN_VERSION, 9), (10, 26), (27, MAX_VERSION))


@dataclass(frozen=True)
class QRInfo:
    version: int
    error_correction_level: str
    mask_pattern: int
    segments: int

    def as_dict(self) -> Dict[str, Union[int, str]]:
        return {
            "version": self.version,
            "errorCorrectionLevel": self.error_correction_level,
            "maskPattern": self.mask_pattern,
            "segments": self.segments,
        }


@dataclass(frozen=True)
class QRSymbol:
    version: int
    error_correction: ErrorCorrection
    mask_pattern: int
    segments: Tuple[Segment, ...]
    modules: Tuple[Tuple[bool, ...], ...]

    @property
    def size(self) -> int:
        return len(self.modules)

    @property
    def info(self) -> QRInfo:
        return QRInfo(
            version=self.version,
            error_correction_level=self.error_correction.name,
            mask_pattern=self.mask_pattern,
            segments=len(self.segments),
        )

    def to_text(self, dark: str = "#", light: str = ".") -> str:
        """Plain-text dump of the grid, one row per line."""
        return "\n".join("".join(dark if cell else light for cell in row) for row in self.modules)


def choose_version(text: str, level: ErrorCorrection) -> Tuple[int, List[Segment]]:
    """
    Smallest version that fits `text` at `level`, with its segments.

    Raises:
        EncodingTooLargeError: If even version 40 is too small.
    """
    needed = None
    for first, last in _VERSION_GROUPS:
        segments = make_segments_optimally(text, first)
        needed = total_bits(segments, first)
        if needed is None:
            continue
        for version in range(first, last + 1):
            if needed <= num_data_codewords(version, level) * 8:
                return version, segments
    capacity = num_data_codewords(MAX_VERSION, level) * 8
    raise EncodingTooLargeError(
        f"Data too long for a version {MAX_VERSION} QR code at level {level.name} "
        f"({needed if needed is not None else 'overflow'} bits > {capacity} bits)"
    )


def build_data_codewords(segments: List[Segment], version: int, level: ErrorCorrection) -> List[int]:
    """Concatenate segments, add terminator and padding, pack into bytes."""
    capacity = num_data_codewords(version, level) * 8
    bb = BitBuffer()
    for seg in segments:
        bb.append_bits(seg.mode.indicator, 4)
        bb.append_bits(seg.num_chars, seg.mode.char_count_bits(version))
        bb.extend(seg.data)
    if len(bb) > capacity:
        raise EncodingTooLargeError()

    bb.append_bits(0, min(4, capacity - len(bb)))
    bb.append_bits(0, -len(bb) % 8)
    pad = 0xEC
    while len(bb) < capacity:
        bb.append_bits(pad, 8)
        pad ^= 0xEC ^ 0x11

    return [int("".join(map(str, bb[i:i + 8])), 2) for i in range(0, len(bb), 8)]


def add_ecc_and_interleave(data: List[int], version: int, level: ErrorCorrection) -> List[int]:
    """
    Split data into blocks, append each block's EC codewords and interleave.

    Short blocks come first; long blocks carry one more data codeword.
    """
    num_blocks = NUM_ERROR_CORRECTION_BLOCKS[level.ordinal][version]
    block_ecc_len = ECC_CODEWORDS_PER_BLOCK[level.ordinal][version]
    raw_codewords = num_raw_data_modules(version) // 8
    num_short_blocks = num_blocks - raw_codewords % num_blocks
    short_block_len = raw_codewords // num_blocks
    if len(data) != num_data_codewords(version, level):
        raise ValueError("Data length does not match the version capacity")

    divisor = compute_divisor(block_ecc_len)
    blocks = []
    k = 0
    for i in range(num_blocks):
        length = short_block_len - block_ecc_len + (0 if i < num_short_blocks else 1)
        dat = data[k:k + length]
        k += length
        ecc = compute_remainder(dat, divisor)
        if i < num_short_blocks:
            dat.append(0)  # placeholder, skipped when interleaving
        blocks.append(dat + ecc)

    result = []
    for i in range(len(blocks[0])):
        for j, block in enumerate(blocks):
            if i != short_block_len - block_ecc_len or j >= num_short_blocks:
                result.append(block[i])
    return result


def encode(
    text: str,
    error_correction: Union[str, ErrorCorrection] = ErrorCorrection.M,
    mask: Optional[int] = None,
) -> QRSymbol:
    """
    Encode `text` as a QR symbol.

    Args:
        text: Payload; byte segments are UTF-8.
        error_correction: "L", "M", "Q", "H" or an ErrorCorrection.
        mask: Force a mask 0-7; None selects the lowest-penalty mask.

    Raises:
        ValueError: On an unknown level or out-of-range mask.
        EncodingTooLargeError: If the payload exceeds version 40 capacity.
    """
    level = ErrorCorrection.parse(error_correction)
    if mask is not None and not 0 <= mask <= 7:
        raise ValueError("Mask value out of range")

    version, segments = choose_version(text, level)
    data = build_data_codewords(segments, version, level)
    codewords = add_ecc_and_interleave(data, version, level)

    grid = ModuleGrid(version)
    grid.draw_codewords(codewords)

    if mask is None:
        best_penalty = None
        for candidate in range(8):
            grid.apply_mask(candidate)
            grid.draw_format_bits(level, candidate)
            penalty = grid.penalty_score()
            if best_penalty is None or penalty < best_penalty:
                mask, best_penalty = candidate, penalty
            grid.apply_mask(candidate)  # undo
    grid.apply_mask(mask)
    grid.draw_format_bits(level, mask)

    log.debug("Encoded %d chars: version=%d level=%s mask=%d segments=%d",
              len(text), version, level.name, mask, len(segments))
    return QRSymbol(
        version=version,
        error_correction=level,
        mask_pattern=mask,
        segments=tuple(segments),
        modules=tuple(tuple(row) for row in grid.modules),
    )
