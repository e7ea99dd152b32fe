"""Output format lookup and Pillow encoding."""

from __future__ import annotations

import io
import logging

from PIL import Image

from .interfaces import RGB, EncodingSpec, OutputFormat

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = OutputFormat.PNG16M.value

# token -> (container, color mode, palette size, compression)
_FORMAT_TABLE: dict[str, tuple[str, str, int | None, str | None]] = {
    OutputFormat.TIFFLZW.value: ("TIFF", "RGB", None, "tiff_lzw"),
    OutputFormat.JPEG.value: ("JPEG", "RGB", None, None),
    OutputFormat.PNGGRAY.value: ("PNG", "L", None, None),
    OutputFormat.PNG256.value: ("PNG", "P", 256, None),
    OutputFormat.PNG16.value: ("PNG", "P", 16, None),
    OutputFormat.PNG16M.value: ("PNG", "RGB", None, None),
}

SUPPORTED_FORMATS = tuple(_FORMAT_TABLE)


def resolve_encoding(
    format_token: str,
    quality: int,
    dpi: int,
    background_color: RGB,
) -> EncodingSpec:
    """Build the encoding spec for an output format token.

    Tokens match exactly, so anything else (including a differently cased
    token) falls back to ``png16m``. Strict validation happens at the request
    boundary.
    """
    token = format_token
    if token not in _FORMAT_TABLE:
        logger.debug("Unknown output format %r, falling back to %s", format_token, DEFAULT_FORMAT)
        token = DEFAULT_FORMAT

    container, color_mode, palette_size, compression = _FORMAT_TABLE[token]
    r, g, b = background_color
    return EncodingSpec(
        output_format=token,
        container=container,
        color_mode=color_mode,
        dpi=dpi,
        background_color=(r, g, b),
        palette_size=palette_size,
        compression=compression,
        quality=quality if container == "JPEG" else None,
    )


def flatten(image: Image.Image, background: RGB) -> Image.Image:
    """Composite any transparency onto an opaque background."""
    has_alpha = image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if not has_alpha:
        return image
    rgba = image.convert("RGBA")
    canvas = Image.new("RGB", rgba.size, background)
    canvas.paste(rgba, mask=rgba.getchannel("A"))
    return canvas


def encode_image(image: Image.Image, spec: EncodingSpec) -> bytes:
    image = flatten(image, spec.background_color)

    if spec.color_mode == "L":
        image = image.convert("L")
    elif spec.color_mode == "P":
        image = image.convert("RGB").quantize(colors=spec.palette_size or 256)
    else:
        image = image.convert("RGB")

    options: dict[str, object] = {"dpi": (spec.dpi, spec.dpi)}
    if spec.quality is not None:
        options["quality"] = spec.quality
    if spec.compression:
        options["compression"] = spec.compression

    buf = io.BytesIO()
    image.save(buf, format=spec.container, **options)
    return buf.getvalue()
