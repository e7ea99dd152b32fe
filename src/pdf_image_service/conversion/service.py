import asyncio
import logging
from pathlib import Path

from .assembler import OutputAssembler
from .encoding import resolve_encoding
from .errors import RenderTimeoutError
from .interfaces import ConversionRequest, ConversionResult, DocumentInfo, PageRenderer
from .orchestrator import DEFAULT_MAX_CONCURRENCY, DEFAULT_PAGE_TIMEOUT, PageConversionOrchestrator
from .page_range import resolve_page_range
from .validation import validate_pdf_bytes

logger = logging.getLogger(__name__)


class ConversionService:
    """Core domain service converting PDF page ranges to images.

    This service is framework-agnostic. The HTTP layer builds a
    ``ConversionRequest`` and awaits ``convert``; rendering and page counting
    go through injected gateways so any rasteriser can be plugged in.
    """

    def __init__(
        self,
        renderer: PageRenderer,
        document_info: DocumentInfo,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        page_timeout: float = DEFAULT_PAGE_TIMEOUT,
        scratch_root: str | Path | None = None,
        assembler: OutputAssembler | None = None,
    ) -> None:
        self._document_info = document_info
        self._page_timeout = page_timeout
        self._orchestrator = PageConversionOrchestrator(
            renderer,
            max_concurrency=max_concurrency,
            page_timeout=page_timeout,
            scratch_root=scratch_root,
        )
        self._assembler = assembler or OutputAssembler()

    async def convert(self, request: ConversionRequest) -> ConversionResult:
        # Everything up to the orchestrator is resolved before any page renders.
        validate_pdf_bytes(request.document)
        total_pages = await self._page_count(request.document)
        logger.info("Processing PDF with %d pages", total_pages)

        page_range = resolve_page_range(request.start_page, request.end_page, total_pages)
        spec = resolve_encoding(
            request.output_format,
            request.quality,
            request.dpi,
            request.background_color,
        )

        pages = await self._orchestrator.convert(request.document, page_range, spec)
        result = await asyncio.to_thread(self._assembler.assemble, pages, spec, request.single_file)
        logger.info(
            "Converted %d page(s) to %s (%d bytes)", len(pages), result.media_type, len(result.data)
        )
        return result

    async def _page_count(self, document: bytes) -> int:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._document_info.page_count, document),
                timeout=self._page_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Reading the page count timed out after %gs", self._page_timeout)
            raise RenderTimeoutError(None, self._page_timeout) from None
