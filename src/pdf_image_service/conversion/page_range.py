import logging

from .errors import DocumentReadError, InvalidRangeError
from .interfaces import ResolvedPageRange

logger = logging.getLogger(__name__)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def resolve_page_range(start_page: int, end_page: int, total_pages: int) -> ResolvedPageRange:
    """Clamp a requested 0-based inclusive page range to the document.

    An ``end_page`` of 0 selects everything up to the last page.
    """
    if total_pages < 1:
        raise DocumentReadError("PDF document contains no pages")

    last = total_pages - 1
    start = _clamp(start_page, 0, last)
    end = last if end_page == 0 else _clamp(end_page, 0, last)

    if start > end:
        raise InvalidRangeError(
            f"Invalid page range: start page ({start}) cannot be greater than end page ({end})"
        )

    logger.info("Resolved page range: start=%d, end=%d, total=%d", start, end, total_pages)
    return ResolvedPageRange(start=start, end=end)
