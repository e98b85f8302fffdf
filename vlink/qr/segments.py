"""
QR data segments and mode selection.

A text is encoded as a sequence of segments, each in one of four modes:

    NUMERIC       0-9, 10 bits per 3 digits
    ALPHANUMERIC  0-9 A-Z space $%*+-./: , 11 bits per 2 characters
    BYTE          UTF-8 bytes, 8 bits each
    KANJI         double-byte Shift JIS characters, 13 bits each

`make_segments_optimally` picks the split with the fewest total bits for a
given version. The cost of a segment header depends on the version (through
the character count field width), so callers run it once per version group.

Costs inside the search are kept in sixths of a bit so the fractional
numeric (20/6 per digit) and alphanumeric (33/6 per char) rates stay exact
integers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

ALPHANUMERIC_CHARSET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ $%*+-./:"
_ALPHANUMERIC_INDEX = {ch: i for i, ch in enumerate(ALPHANUMERIC_CHARSET)}


class Mode(Enum):
    """Segment mode: (mode indicator, char count bits per version group)."""

    NUMERIC = (0x1, (10, 12, 14))
    ALPHANUMERIC = (0x2, (9, 11, 13))
    BYTE = (0x4, (8, 16, 16))
    KANJI = (0x8, (8, 10, 12))

    def __init__(self, indicator: int, count_bits: Tuple[int, int, int]):
        self.indicator = indicator
        self.count_bits = count_bits

    def char_count_bits(self, version: int) -> int:
        # Groups: versions 1-9, 10-26, 27-40
        return self.count_bits[(version + 7) // 17]


class BitBuffer(list):
    """A list of 0/1 ints with a helper to append fixed-width values."""

    def append_bits(self, value: int, length: int) -> None:
        if length < 0 or value >> length:
            raise ValueError("Value out of range")
        self.extend((value >> i) & 1 for i in reversed(range(length)))


@dataclass(frozen=True)
class Segment:
    """One mode block: its mode, character count and payload bits."""
    mode: Mode
    num_chars: int
    data: Tuple[int, ...]

    @classmethod
    def numeric(cls, digits: str) -> "Segment":
        if not is_numeric(digits):
            raise ValueError("Non-numeric characters in numeric segment")
        bb = BitBuffer()
        for i in range(0, len(digits), 3):
            chunk = digits[i:i + 3]
            bb.append_bits(int(chunk), len(chunk) * 3 + 1)
        return cls(Mode.NUMERIC, len(digits), tuple(bb))

    @classmethod
    def alphanumeric(cls, text: str) -> "Segment":
        if not is_alphanumeric(text):
            raise ValueError("Characters outside the alphanumeric charset")
        bb = BitBuffer()
        for i in range(0, len(text) - 1, 2):
            pair = _ALPHANUMERIC_INDEX[text[i]] * 45 + _ALPHANUMERIC_INDEX[text[i + 1]]
            bb.append_bits(pair, 11)
        if len(text) % 2:
            bb.append_bits(_ALPHANUMERIC_INDEX[text[-1]], 6)
        return cls(Mode.ALPHANUMERIC, len(text), tuple(bb))

    @classmethod
    def byte(cls, data: bytes) -> "Segment":
        bb = BitBuffer()
        for b in data:
            bb.append_bits(b, 8)
        return cls(Mode.BYTE, len(data), tuple(bb))

    @classmethod
    def kanji(cls, text: str) -> "Segment":
        bb = BitBuffer()
        for ch in text:
            value = _kanji_value(ch)
            if value is None:
                raise ValueError(f"Character not encodable in kanji mode: {ch!r}")
            bb.append_bits(value, 13)
        return cls(Mode.KANJI, len(text), tuple(bb))

    def bit_length(self, version: int) -> Optional[int]:
        """Header plus payload bits, or None if the count overflows its field."""
        cc_bits = self.mode.char_count_bits(version)
        if self.num_chars >= 1 << cc_bits:
            return None
        return 4 + cc_bits + len(self.data)


def is_numeric(text: str) -> bool:
    return all("0" <= ch <= "9" for ch in text)


def is_alphanumeric(text: str) -> bool:
    return all(ch in _ALPHANUMERIC_INDEX for ch in text)


def _kanji_value(ch: str) -> Optional[int]:
    """13-bit kanji-mode value of `ch`, or None if it has no such encoding."""
    try:
        sjis = ch.encode("shift_jis")
    except UnicodeEncodeError:
        return None
    if len(sjis) != 2:
        return None
    code = (sjis[0] << 8) | sjis[1]
    if 0x8140 <= code <= 0x9FFC:
        code -= 0x8140
    elif 0xE040 <= code <= 0xEBBF:
        code -= 0xC140
    else:
        return None
    return (code >> 8) * 0xC0 + (code & 0xFF)


def is_kanji(ch: str) -> bool:
    return _kanji_value(ch) is not None


def total_bits(segments: Sequence[Segment], version: int) -> Optional[int]:
    """Bits needed for all segments at `version`; None if any count overflows."""
    result = 0
    for seg in segments:
        length = seg.bit_length(version)
        if length is None:
            return None
        result += length
    return result


_MODES = (Mode.BYTE, Mode.ALPHANUMERIC, Mode.NUMERIC, Mode.KANJI)


def _char_modes(text: str, version: int) -> List[Mode]:
    """
    Dynamic programming over characters: for each position and each mode,
    the cheapest encoding of the prefix that ends in that mode, and the mode
    it came from. Then trace back from the cheapest final state.
    """
    head_costs = [(4 + mode.char_count_bits(version)) * 6 for mode in _MODES]
    char_modes: List[List[Optional[Mode]]] = []
    prev_costs = list(head_costs)

    for ch in text:
        cur_costs = [0] * len(_MODES)
        step: List[Optional[Mode]] = [None] * len(_MODES)

        # Byte mode can always be extended.
        cur_costs[0] = prev_costs[0] + len(ch.encode("utf-8")) * 8 * 6
        step[0] = Mode.BYTE
        if ch in _ALPHANUMERIC_INDEX:
            cur_costs[1] = prev_costs[1] + 33
            step[1] = Mode.ALPHANUMERIC
        if "0" <= ch <= "9":
            cur_costs[2] = prev_costs[2] + 20
            step[2] = Mode.NUMERIC
        if is_kanji(ch):
            cur_costs[3] = prev_costs[3] + 78
            step[3] = Mode.KANJI

        # Close the segment after this char and open one in another mode.
        for j in range(len(_MODES)):
            for k in range(len(_MODES)):
                new_cost = (cur_costs[k] + 5) // 6 * 6 + head_costs[j]
                if step[k] is not None and (step[j] is None or new_cost < cur_costs[j]):
                    cur_costs[j] = new_cost
                    step[j] = _MODES[k]

        char_modes.append(step)
        prev_costs = cur_costs

    cur_mode = _MODES[min(range(len(_MODES)), key=lambda i: prev_costs[i])]
    result: List[Mode] = [Mode.BYTE] * len(text)
    for i in reversed(range(len(text))):
        cur_mode = char_modes[i][_MODES.index(cur_mode)]
        result[i] = cur_mode
    return result


def _build(mode: Mode, chunk: str) -> Segment:
    if mode is Mode.NUMERIC:
        return Segment.numeric(chunk)
    if mode is Mode.ALPHANUMERIC:
        return Segment.alphanumeric(chunk)
    if mode is Mode.KANJI:
        return Segment.kanji(chunk)
    return Segment.byte(chunk.encode("utf-8"))


def make_segments_optimally(text: str, version: int) -> List[Segment]:
    """Split `text` into the cheapest segment sequence for `version`."""
    if not text:
        return []
    modes = _char_modes(text, version)
    segments: List[Segment] = []
    start = 0
    for i in range(1, len(text) + 1):
        if i == len(text) or modes[i] is not modes[start]:
            segments.append(_build(modes[start], text[start:i]))
            start = i
    return segments
