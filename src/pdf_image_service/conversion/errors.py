"""
Exceptions raised by the conversion pipeline.

Client faults (bad parameters, bad range, unreadable document) carry their
message through to the HTTP response. Backend faults only ever expose their
generic default message.
"""


class ConversionError(Exception):
    """Base exception for all conversion errors."""

    code = "conversion_failed"
    status_code = 500
    client_fault = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "PDF conversion failed."

    @property
    def public_message(self) -> str:
        return self.message if self.client_fault else self.default_message


class InvalidParameterError(ConversionError):
    """Raised when a conversion parameter is missing or out of range."""

    code = "invalid_parameter"
    status_code = 400
    client_fault = True

    @property
    def default_message(self) -> str:
        return "Invalid conversion parameter."


class UnsupportedFormatError(InvalidParameterError):
    """Raised when the requested output format is not supported."""

    code = "unsupported_format"

    @property
    def default_message(self) -> str:
        return "Unsupported output format."


class InvalidRangeError(ConversionError):
    """Raised when the resolved start page lies after the end page."""

    code = "invalid_range"
    status_code = 400
    client_fault = True

    @property
    def default_message(self) -> str:
        return "Invalid page range."


class DocumentReadError(ConversionError):
    """Raised when the document is not a readable PDF or has no pages."""

    code = "invalid_document"
    status_code = 400
    client_fault = True

    @property
    def default_message(self) -> str:
        return "Invalid or corrupted PDF file."


class RenderError(ConversionError):
    """Base class for backend faults while rendering a single page."""

    code = "render_failed"

    def __init__(self, page_index: int | None, message: str = "") -> None:
        self.page_index = page_index
        super().__init__(message)


class RenderTimeoutError(RenderError):
    """Raised when rendering a page, or reading the document, exceeds its timeout.

    ``page_index`` is None when the timeout hit before any page was rendered.
    """

    code = "render_timeout"

    def __init__(self, page_index: int | None, timeout: float) -> None:
        self.timeout = timeout
        subject = "Reading the document" if page_index is None else f"Page {page_index}"
        super().__init__(page_index, f"{subject} timed out after {timeout:g} seconds")

    @property
    def default_message(self) -> str:
        return "PDF conversion timed out."


class RenderFailureError(RenderError):
    """Raised when the rendering backend reports a fault for a page."""

    def __init__(self, page_index: int, reason: str = "") -> None:
        detail = f"Failed to render page {page_index}"
        super().__init__(page_index, f"{detail}: {reason}" if reason else detail)


class AssemblyError(ConversionError):
    """Raised when there are no rendered pages to assemble."""
