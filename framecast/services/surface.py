"""Pillow drawing surface.

Draw callbacks receive the surface through ``ctx.surface`` and usually paint
with ``ctx.draw`` (a ``PIL.ImageDraw.ImageDraw``) or paste images onto
``ctx.canvas``. Each offline worker owns one surface for its whole partition;
the interactive player owns one for the session.
"""

import io
import logging
from collections import OrderedDict
from typing import Iterable

from PIL import Image, ImageDraw, ImageFont

from framecast.render.timeline import FontSpec, RenderConfig

logger = logging.getLogger(__name__)

# Decoded video frames / images kept in memory per surface
IMAGE_CACHE_SIZE = 64


def _hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Convert hex color string to RGBA tuple."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = "".join(c * 2 for c in hex_color)
    r = int(hex_color[0:2], 16)
    g = int(hex_color[2:4], 16)
    b = int(hex_color[4:6], 16)
    return (r, g, b, alpha)


class PillowSurface:
    """RGBA canvas with image and font caches."""

    def __init__(
        self,
        width: int,
        height: int,
        *,
        background: str | tuple[int, int, int, int] = "#000000",
        assets: Iterable[str] = (),
        fonts: Iterable[FontSpec] = (),
    ):
        self.width = width
        self.height = height
        self.background = _hex_to_rgba(background) if isinstance(background, str) else background
        self.image = Image.new("RGBA", (width, height), self.background)
        self.draw = ImageDraw.Draw(self.image)
        self.fonts: dict[str, str] = {f.name: f.path for f in fonts}
        self._font_cache: dict[tuple[str, int], ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}
        self._image_cache: OrderedDict[str, Image.Image] = OrderedDict()
        self.assets: dict[str, Image.Image] = self._load_assets(assets)

    @classmethod
    def for_config(cls, config: RenderConfig) -> "PillowSurface":
        return cls(config.width, config.height, assets=config.assets, fonts=config.fonts)

    def _load_assets(self, paths: Iterable[str]) -> dict[str, Image.Image]:
        loaded: dict[str, Image.Image] = {}
        for path in paths:
            try:
                with Image.open(path) as img:
                    loaded[path] = img.convert("RGBA")
            except (OSError, ValueError) as e:
                # A missing asset degrades the frame, it does not abort the render
                logger.warning(f"[SURFACE] Failed to load asset {path}: {e}")
        return loaded

    def clear(self) -> None:
        self.image.paste(self.background, (0, 0, self.width, self.height))

    def load_image(self, path: str) -> Image.Image:
        """Open ``path`` as RGBA, caching recently used images."""
        cached = self._image_cache.get(path)
        if cached is not None:
            self._image_cache.move_to_end(path)
            return cached

        with Image.open(path) as img:
            image = img.convert("RGBA")
        self._image_cache[path] = image
        if len(self._image_cache) > IMAGE_CACHE_SIZE:
            _, evicted = self._image_cache.popitem(last=False)
            evicted.close()
        return image

    def draw_image(
        self,
        source: str | Image.Image | None,
        xy: tuple[int, int] = (0, 0),
        size: tuple[int, int] | None = None,
    ) -> None:
        """Paste an image (or image path) onto the canvas, alpha-aware.

        ``None`` is ignored so callbacks can pass ``ctx.videos.get(path)``
        without checking for missing frames.
        """
        if source is None:
            return
        image = self.load_image(source) if isinstance(source, str) else source
        if size is not None and image.size != size:
            image = image.resize(size, Image.Resampling.BILINEAR)
        self.image.alpha_composite(image.convert("RGBA"), dest=xy)

    def font(self, name: str, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        """Load a registered font, falling back to Pillow's default font."""
        key = (name, size)
        if key not in self._font_cache:
            path = self.fonts.get(name, name)
            try:
                self._font_cache[key] = ImageFont.truetype(path, size)
            except OSError:
                logger.warning(f"[SURFACE] Font {name} not found, using default font")
                self._font_cache[key] = ImageFont.load_default()
        return self._font_cache[key]

    def snapshot(self) -> bytes:
        """Raw RGBA bytes, row-major."""
        return self.image.tobytes()

    def to_jpeg(self, quality: int = 80) -> bytes:
        buffer = io.BytesIO()
        self.image.convert("RGB").save(buffer, format="JPEG", quality=quality)
        return buffer.getvalue()

    def to_png(self) -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        return buffer.getvalue()

    def close(self) -> None:
        for image in self._image_cache.values():
            image.close()
        self._image_cache.clear()
        self._font_cache.clear()

    def __enter__(self) -> "PillowSurface":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
