import logging
import shutil
import subprocess
import threading
from pathlib import Path

import pypdfium2 as pdfium
from PIL import Image

from .encoding import encode_image
from .errors import DocumentReadError, RenderFailureError, RenderTimeoutError
from .interfaces import DocumentInfo, EncodingSpec, PageRenderer
from .staging import staged_document

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 60.0

# pdfium keeps global state and is not safe to call from several threads at once.
# Reentrant so the orchestrator can hold it around a render that takes it again.
_PDFIUM_LOCK = threading.RLock()


class PdfiumDocumentInfo(DocumentInfo):
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._lock_timeout = lock_timeout

    def page_count(self, document: bytes) -> int:
        if not _PDFIUM_LOCK.acquire(timeout=self._lock_timeout):
            logger.error("pdfium stayed busy for %gs while reading page count", self._lock_timeout)
            raise RenderTimeoutError(None, self._lock_timeout)
        try:
            pdf = pdfium.PdfDocument(document)
            try:
                count = len(pdf)
            finally:
                pdf.close()
        except pdfium.PdfiumError as e:
            raise DocumentReadError(f"Failed to read PDF information: {e}") from e
        finally:
            _PDFIUM_LOCK.release()
        logger.debug("PDF identification successful: %d pages, %d bytes", count, len(document))
        if count < 1:
            raise DocumentReadError("PDF document contains no pages")
        return count


class PdfiumRenderer(PageRenderer):
    """Rasterise pages in-process with pypdfium2.

    pdfium cannot be interrupted once it starts on a page, so ``timeout`` only
    bounds the wait for the library lock; the render itself is timed by the
    orchestrator, which takes ``exclusive_lock`` before starting the clock.
    """

    exclusive_lock = _PDFIUM_LOCK

    def render(
        self,
        document: bytes,
        page_index: int,
        spec: EncodingSpec,
        timeout: float,
        *,
        workdir: Path,
    ) -> bytes:
        with staged_document(document, workdir) as staged:
            image = self._rasterise(staged, page_index, spec, timeout)
        return encode_image(image, spec)

    @staticmethod
    def _rasterise(path: Path, page_index: int, spec: EncodingSpec, timeout: float) -> Image.Image:
        fill = (*spec.background_color, 255)
        if not _PDFIUM_LOCK.acquire(timeout=timeout):
            raise RenderTimeoutError(page_index, timeout)
        try:
            pdf = pdfium.PdfDocument(str(path))
            try:
                if not 0 <= page_index < len(pdf):
                    raise RenderFailureError(page_index, f"page index out of range (document has {len(pdf)} pages)")
                page = pdf[page_index]
                try:
                    return page.render(scale=spec.dpi / 72, fill_color=fill).to_pil()
                finally:
                    page.close()
            finally:
                pdf.close()
        except pdfium.PdfiumError as e:
            raise RenderFailureError(page_index, str(e)) from e
        finally:
            _PDFIUM_LOCK.release()


class PdftoppmRenderer(PageRenderer):
    """Rasterise pages with poppler's ``pdftoppm`` in a subprocess.

    The subprocess is killed when it runs past ``timeout``.
    """

    def __init__(self, binary: str = "pdftoppm") -> None:
        resolved = shutil.which(binary)
        if resolved is None:
            raise FileNotFoundError(f"pdftoppm executable not found: {binary}")
        self._binary = resolved

    def render(
        self,
        document: bytes,
        page_index: int,
        spec: EncodingSpec,
        timeout: float,
        *,
        workdir: Path,
    ) -> bytes:
        page_number = str(page_index + 1)  # pdftoppm counts from 1
        out_prefix = workdir / "page"
        out_path = out_prefix.with_suffix(".png")
        with staged_document(document, workdir) as staged:
            cmd = [
                self._binary,
                "-f", page_number,
                "-l", page_number,
                "-r", str(spec.dpi),
                "-png",
                "-singlefile",
                str(staged),
                str(out_prefix),
            ]
            logger.debug("Running %s", " ".join(cmd))
            try:
                completed = subprocess.run(cmd, capture_output=True, timeout=timeout, check=False)
            except subprocess.TimeoutExpired:
                raise RenderTimeoutError(page_index, timeout) from None

            try:
                if completed.returncode != 0:
                    stderr = completed.stderr.decode("utf-8", errors="replace").strip()
                    raise RenderFailureError(page_index, f"pdftoppm exited with {completed.returncode}: {stderr}")
                if not out_path.exists():
                    raise RenderFailureError(page_index, "pdftoppm produced no output")
                with Image.open(out_path) as image:
                    image.load()
                    return encode_image(image, spec)
            finally:
                out_path.unlink(missing_ok=True)
