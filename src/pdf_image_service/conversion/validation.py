"""Request validation performed before any conversion work starts."""

from __future__ import annotations

import logging
import re

from .encoding import SUPPORTED_FORMATS
from .errors import DocumentReadError, InvalidParameterError, UnsupportedFormatError
from .interfaces import RGB, ConversionRequest

logger = logging.getLogger(__name__)

PDF_HEADER = b"%PDF-"
PDF_EOF_MARKER = b"%%EOF"
EOF_SEARCH_WINDOW = 1024
MIN_PDF_SIZE = 32

MIN_DPI, MAX_DPI = 72, 600
MIN_QUALITY, MAX_QUALITY = 1, 100

_HEX_COLOR_RE = re.compile(r"#?([0-9A-Fa-f]{6}|[0-9A-Fa-f]{3})")


def validate_pdf_bytes(data: bytes) -> None:
    """Cheap structural check: PDF header up front, EOF marker near the end."""
    if not data:
        raise DocumentReadError("Empty PDF buffer received")
    if not data.startswith(PDF_HEADER):
        raise DocumentReadError("Invalid or corrupted PDF file: invalid PDF header")
    if len(data) < MIN_PDF_SIZE:
        raise DocumentReadError("Invalid or corrupted PDF file: file too small to be valid")
    if PDF_EOF_MARKER not in data[-EOF_SEARCH_WINDOW:]:
        raise DocumentReadError("Invalid or corrupted PDF file: missing PDF EOF marker")
    logger.debug("PDF validation passed (%d bytes)", len(data))


def parse_background_color(value: str) -> RGB:
    """Parse ``#RRGGBB`` or ``#RGB`` into an RGB triple."""
    m = _HEX_COLOR_RE.fullmatch((value or "").strip())
    if not m:
        raise InvalidParameterError(f"backgroundColor must be a hex RGB colour, got {value!r}")
    digits = m.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))


def _check_range(name: str, value: int, low: int, high: int | None = None) -> None:
    if value < low or (high is not None and value > high):
        bound = f"between {low} and {high}" if high is not None else f"at least {low}"
        raise InvalidParameterError(f"{name} must be {bound}, got {value}")


def build_conversion_request(
    document: bytes,
    *,
    start_page: int = 0,
    end_page: int = 0,
    single_file: bool = True,
    output_format: str = "png16m",
    dpi: int = 150,
    quality: int = 90,
    background_color: str = "#FFFFFF",
) -> ConversionRequest:
    _check_range("startPage", start_page, 0)
    _check_range("endPage", end_page, 0)
    _check_range("dpi", dpi, MIN_DPI, MAX_DPI)
    _check_range("quality", quality, MIN_QUALITY, MAX_QUALITY)

    token = (output_format or "").strip().lower()
    if token not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(
            f"outputFormat must be one of {', '.join(SUPPORTED_FORMATS)}, got {output_format!r}"
        )

    return ConversionRequest(
        document=document,
        start_page=start_page,
        end_page=end_page,
        single_file=single_file,
        output_format=token,
        dpi=dpi,
        quality=quality,
        background_color=parse_background_color(background_color),
    )
