"""
Short-code generation for vlink.

Codes are drawn uniformly from the Base62 alphabet with `secrets`, so they
carry no sequence or timing information an outsider could use to guess other
live codes. Uniqueness is not this module's concern; the link manager relies
on the store's insert-if-absent and retries on conflict.
"""

import re
import secrets
from dataclasses import dataclass
from typing import Optional

from vlink.config import settings

BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE62_PATTERN = re.compile(r"^[0-9a-zA-Z]+\Z")

MIN_LENGTH = 4
MAX_LENGTH = 32


def _safe_len(length: Optional[int]) -> int:
    """Resolve desired length from arg or config, clamped to [4, 32]."""
    L = int(length) if length is not None else int(settings.CODE_LENGTH)
    return max(MIN_LENGTH, min(MAX_LENGTH, L))


def generate(length: Optional[int] = None) -> str:
    """Return a random Base62 candidate code of `length` characters."""
    L = _safe_len(length)
    return "".join(secrets.choice(BASE62_ALPHABET) for _ in range(L))


@dataclass(frozen=True)
class CodeGenerator:
    """Callable wrapper around `generate` with a fixed length."""
    length: int = 6

    def __call__(self) -> str:
        return generate(self.length)
