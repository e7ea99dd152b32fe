"""
Domain layer for PDF page-to-image conversion.
Provides value types, gateways for rendering and page counting, and a service
that resolves the page range, renders pages concurrently and assembles the
output, so front-ends (HTTP or others) can share the same core logic.
"""

from .assembler import OutputAssembler, stack_pages
from .encoding import SUPPORTED_FORMATS, encode_image, resolve_encoding
from .errors import (
    AssemblyError,
    ConversionError,
    DocumentReadError,
    InvalidParameterError,
    InvalidRangeError,
    RenderError,
    RenderFailureError,
    RenderTimeoutError,
    UnsupportedFormatError,
)
from .interfaces import (
    ConversionRequest,
    ConversionResult,
    DocumentInfo,
    EncodingSpec,
    OutputFormat,
    PageRenderer,
    RenderedPage,
    ResolvedPageRange,
)
from .orchestrator import PageConversionOrchestrator
from .page_range import resolve_page_range
from .service import ConversionService
from .validation import build_conversion_request, parse_background_color, validate_pdf_bytes
