"""
QR code service: encode a short URL and render it in the requested format.

Formats:
    "dataURL" -> str, "data:image/png;base64,..."
    "buffer"  -> bytes, PNG file contents
    "pixels"  -> bytes, raw RGBA buffer (see `QRCodeResult.width/height`)
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from vlink.errors import EncodingTooLargeError, InvalidOptionsError, MissingUrlError

from .encoder import QRInfo, QRSymbol, encode
from .render import RenderOptions, to_data_url, to_pixels, to_png
from .tables import ErrorCorrection

log = logging.getLogger(__name__)

FORMATS = ("dataURL", "buffer", "pixels")

# Levels tried, in order, when downgrading after a capacity failure.
_LOWER_LEVELS = {
    ErrorCorrection.H: (ErrorCorrection.Q, ErrorCorrection.M, ErrorCorrection.L),
    ErrorCorrection.Q: (ErrorCorrection.M, ErrorCorrection.L),
    ErrorCorrection.M: (ErrorCorrection.L,),
    ErrorCorrection.L: (),
}


@dataclass(frozen=True)
class QRCodeResult:
    qr_code: Union[str, bytes]
    info: QRInfo
    width: int
    height: int


def _level(value: Union[str, ErrorCorrection]) -> ErrorCorrection:
    try:
        return ErrorCorrection.parse(value)
    except ValueError as exc:
        raise InvalidOptionsError(str(exc)) from exc


def encode_with_fallback(text: str, level: ErrorCorrection, allow_downgrade: bool = False) -> QRSymbol:
    """
    Encode at `level`; if that overflows and `allow_downgrade` is set, retry
    at each lower level before giving up with the original error.
    """
    try:
        return encode(text, level)
    except EncodingTooLargeError as first_error:
        if not allow_downgrade:
            raise
        for lower in _LOWER_LEVELS[level]:
            try:
                symbol = encode(text, lower)
            except EncodingTooLargeError:
                continue
            log.info("QR payload did not fit at level %s; used %s", level.name, lower.name)
            return symbol
        raise first_error


def generate_qr_code(
    url: str,
    fmt: str = "dataURL",
    error_correction: Union[str, ErrorCorrection] = "M",
    options: Optional[RenderOptions] = None,
    allow_downgrade: bool = False,
) -> QRCodeResult:
    """
    Encode `url` and render it.

    Raises:
        MissingUrlError: If `url` is empty.
        InvalidOptionsError: On an unknown format, level, colour or size.
        EncodingTooLargeError: If `url` does not fit (after optional downgrade).
    """
    if not url:
        raise MissingUrlError("URL is required")
    if fmt not in FORMATS:
        raise InvalidOptionsError(f"format must be one of {', '.join(FORMATS)}")
    opts = options or RenderOptions()

    symbol = encode_with_fallback(url, _level(error_correction), allow_downgrade)
    side = opts.pixel_size(symbol.size)

    if fmt == "dataURL":
        payload: Union[str, bytes] = to_data_url(symbol, opts)
    elif fmt == "buffer":
        payload = to_png(symbol, opts)
    else:
        payload, _, _ = to_pixels(symbol, opts)
    return QRCodeResult(qr_code=payload, info=symbol.info, width=side, height=side)


def get_qr_info(text: str, error_correction: Union[str, ErrorCorrection] = "M") -> QRInfo:
    """Symbol metadata without rendering an image."""
    return encode(text, _level(error_correction)).info
