"""Reed-Solomon error correction over GF(2^8) with the QR polynomial 0x11D."""

from typing import List, Sequence

_GF_POLY = 0x11D


def gf_multiply(x: int, y: int) -> int:
    """Russian-peasant multiplication in GF(2^8) modulo 0x11D."""
    if x >> 8 or y >> 8:
        raise ValueError("Byte out of range")
    z = 0
    for i in reversed(range(8)):
        z = (z << 1) ^ ((z >> 7) * _GF_POLY)
        z ^= ((y >> i) & 1) * x
    return z


def compute_divisor(degree: int) -> List[int]:
    """
    Generator polynomial of the given degree, product of (x - 2^i) for
    i in 0..degree-1. Coefficients from highest to lowest power, the leading
    1 omitted.
    """
    if not 1 <= degree <= 255:
        raise ValueError("Degree out of range")
    result = [0] * (degree - 1) + [1]
    root = 1
    for _ in range(degree):
        for j in range(degree):
            result[j] = gf_multiply(result[j], root)
            if j + 1 < degree:
                result[j] ^= result[j + 1]
        root = gf_multiply(root, 0x02)
    return result


def compute_remainder(data: Sequence[int], divisor: Sequence[int]) -> List[int]:
    """EC codewords: remainder of data * x^degree divided by the generator."""
    result = [0] * len(divisor)
    for b in data:
        factor = b ^ result.pop(0)
        result.append(0)
        for i, coef in enumerate(divisor):
            result[i] ^= gf_multiply(coef, factor)
    return result
