"""
Rendering of QR symbols with Pillow.

The grid is drawn at one pixel per module with the quiet-zone margin, then
scaled with nearest-neighbour resampling so module edges stay sharp:

- `width` wins when it is at least the margined grid size (the final image is
  exactly `width` pixels square),
- otherwise every module becomes `scale` x `scale` pixels.

The final side is capped at `MAX_PIXELS` and the margin at `MAX_MARGIN`.
"""

import base64
import io
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageColor

from vlink.errors import InvalidOptionsError

from .encoder import QRSymbol

RGBA = Tuple[int, int, int, int]

MAX_PIXELS = 4096
MAX_MARGIN = 64


@dataclass(frozen=True)
class RenderOptions:
    margin: int = 1
    scale: int = 4
    width: Optional[int] = 200
    dark: str = "#000000"
    light: str = "#ffffff"

    def validate(self) -> None:
        if not 0 <= self.margin <= MAX_MARGIN:
            raise InvalidOptionsError(f"margin must be between 0 and {MAX_MARGIN}")
        if not 1 <= self.scale <= MAX_PIXELS:
            raise InvalidOptionsError(f"scale must be between 1 and {MAX_PIXELS}")
        if self.width is not None and not 1 <= self.width <= MAX_PIXELS:
            raise InvalidOptionsError(f"width must be between 1 and {MAX_PIXELS}")

    def pixel_size(self, symbol_size: int) -> int:
        """Final image side in pixels; InvalidOptionsError past MAX_PIXELS."""
        modules = symbol_size + self.margin * 2
        if self.width and self.width >= modules:
            side = self.width
        else:
            side = modules * self.scale
        if side > MAX_PIXELS:
            raise InvalidOptionsError(f"image would be {side}px wide, the limit is {MAX_PIXELS}px")
        return side


def parse_color(value: str) -> RGBA:
    """'#rgb', '#rrggbb', '#rrggbbaa' or a CSS colour name to an RGBA tuple."""
    try:
        return ImageColor.getcolor(value, "RGBA")
    except (ValueError, TypeError, AttributeError) as exc:
        raise InvalidOptionsError(f"Invalid color: {value!r}") from exc


def render_image(symbol: QRSymbol, options: Optional[RenderOptions] = None) -> Image.Image:
    opts = options or RenderOptions()
    opts.validate()
    dark = parse_color(opts.dark)
    light = parse_color(opts.light)
    target = opts.pixel_size(symbol.size)

    side = symbol.size + opts.margin * 2
    img = Image.new("RGBA", (side, side), light)
    pixels = img.load()
    for y, row in enumerate(symbol.modules):
        for x, cell in enumerate(row):
            if cell:
                pixels[x + opts.margin, y + opts.margin] = dark

    if target != side:
        img = img.resize((target, target), Image.Resampling.NEAREST)
    return img


def to_png(symbol: QRSymbol, options: Optional[RenderOptions] = None) -> bytes:
    buf = io.BytesIO()
    render_image(symbol, options).save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def to_data_url(symbol: QRSymbol, options: Optional[RenderOptions] = None) -> str:
    encoded = base64.b64encode(to_png(symbol, options)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def to_pixels(symbol: QRSymbol, options: Optional[RenderOptions] = None) -> Tuple[bytes, int, int]:
    """Raw RGBA pixel buffer (row-major, 4 bytes per pixel) with its size."""
    img = render_image(symbol, options)
    return img.tobytes(), img.width, img.height
