import logging
import os
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from pdf_image_service import __version__
from pdf_image_service.conversion import ConversionError, ConversionService, build_conversion_request
from pdf_image_service.conversion.adapters import PdfiumDocumentInfo, PdfiumRenderer, PdftoppmRenderer

logger = logging.getLogger(__name__)

app = FastAPI(
    title="PDF Image Service",
    version=os.getenv("PDF_SERVICE_VERSION", __version__),
    description=(
        "RESTful API for rendering a range of PDF pages to raster images, "
        "combined into a single image or packaged as a zip archive."
    ),
)

# Global configuration defaults
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "10"))
ALLOWED_MIME = set(os.getenv("ALLOWED_MIME", "application/pdf,application/x-pdf").split(","))
MAX_CONCURRENT_RENDERS = int(os.getenv("MAX_CONCURRENT_RENDERS", "4"))
PAGE_TIMEOUT_SEC = float(os.getenv("PAGE_TIMEOUT_SEC", "60"))
RENDER_BACKEND = os.getenv("RENDER_BACKEND", "pdfium").lower()
PDFTOPPM_PATH = os.getenv("PDFTOPPM_PATH", "pdftoppm")
SCRATCH_DIR = os.getenv("SCRATCH_DIR") or None
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SERVICE: ConversionService | None = None


def _configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> ConversionService:
    if RENDER_BACKEND == "pdftoppm":
        renderer = PdftoppmRenderer(PDFTOPPM_PATH)
    elif RENDER_BACKEND == "pdfium":
        renderer = PdfiumRenderer()
    else:
        raise ValueError(f"unknown RENDER_BACKEND {RENDER_BACKEND!r}; expected 'pdfium' or 'pdftoppm'")
    logger.info(
        "Using %s renderer (concurrency=%d, page timeout=%gs)",
        RENDER_BACKEND,
        MAX_CONCURRENT_RENDERS,
        PAGE_TIMEOUT_SEC,
    )
    return ConversionService(
        renderer=renderer,
        document_info=PdfiumDocumentInfo(lock_timeout=PAGE_TIMEOUT_SEC),
        max_concurrency=MAX_CONCURRENT_RENDERS,
        page_timeout=PAGE_TIMEOUT_SEC,
        scratch_root=SCRATCH_DIR,
    )


def _get_service() -> ConversionService:
    global SERVICE
    if SERVICE is None:
        SERVICE = _build_service()
    return SERVICE


@app.on_event("startup")
async def _startup() -> None:
    _configure_logging()
    if SCRATCH_DIR:
        Path(SCRATCH_DIR).mkdir(parents=True, exist_ok=True)
    _get_service()


@app.exception_handler(ConversionError)
async def _conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
    if exc.client_fault:
        logger.warning("Rejected conversion request: %s", exc.message)
    else:
        logger.error("PDF conversion error: %s", exc.message, exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"code": exc.code, "message": exc.public_message}},
    )


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
    message = f"{field}: {first.get('msg', 'invalid value')}"
    logger.warning("Validation error: %s", message)
    return JSONResponse(status_code=400, content={"detail": {"code": "invalid_parameter", "message": message}})


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


def _is_pdf_upload(file: UploadFile) -> bool:
    ct = (file.content_type or "").strip().lower()
    if ct in ALLOWED_MIME:
        return True
    # Some clients label uploads generically; trust a .pdf filename then.
    return (file.filename or "").lower().endswith(".pdf")


async def _read_upload(file: UploadFile) -> bytes:
    CHUNK = 1024 * 1024
    max_bytes = MAX_UPLOAD_MB * 1024 * 1024
    chunks: list[bytes] = []
    size_bytes = 0
    while True:
        chunk = await file.read(CHUNK)
        if not chunk:
            break
        size_bytes += len(chunk)
        if size_bytes > max_bytes:
            raise HTTPException(status_code=413, detail={"code": "payload_too_large", "message": f"upload exceeds {MAX_UPLOAD_MB} MB"})
        chunks.append(chunk)
    return b"".join(chunks)


@app.post("/api/v1/pdf/convert-to-image")
async def convert_to_image(
    file: UploadFile = File(...),
    startPage: int = Form(0),
    endPage: int = Form(0),
    singleFile: bool = Form(True),
    outputFormat: str = Form("png16m"),
    dpi: int = Form(150),
    quality: int = Form(90),
    backgroundColor: str = Form("#FFFFFF"),
) -> Response:
    """Convert a range of pages from an uploaded PDF to images.

    Accepts multipart/form-data with the PDF in a part named "file". Returns
    the stacked image when singleFile is true, otherwise a zip archive with one
    image per page named page-<n>.<ext>.
    """
    if not _is_pdf_upload(file):
        raise HTTPException(status_code=415, detail={"code": "unsupported_media_type", "message": f"content-type {file.content_type} not allowed"})

    document = await _read_upload(file)
    request = build_conversion_request(
        document,
        start_page=startPage,
        end_page=endPage,
        single_file=singleFile,
        output_format=outputFormat,
        dpi=dpi,
        quality=quality,
        background_color=backgroundColor,
    )
    result = await _get_service().convert(request)

    headers = {}
    if result.is_archive:
        headers["Content-Disposition"] = f"attachment; filename={result.filename}"
    return Response(content=result.data, media_type=result.media_type, headers=headers)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("pdf_image_service.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
