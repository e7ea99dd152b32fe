import io
import threading
import time
from pathlib import Path

import pytest
from PIL import Image

from pdf_image_service.conversion import adapters
from pdf_image_service.conversion.encoding import encode_image
from pdf_image_service.conversion.staging import staged_document


def make_pdf(sizes, color="white") -> bytes:
    """Build a PDF with one page per (width, height) entry, in points."""
    images = [Image.new("RGB", size, color) for size in sizes]
    buf = io.BytesIO()
    images[0].save(buf, format="PDF", save_all=True, append_images=images[1:], resolution=72.0)
    return buf.getvalue()


class FakeRenderer:
    """In-memory renderer with per-page delays, failures and sizes."""

    def __init__(self, *, delays=None, failures=None, sizes=None, empty=(), default_size=(200, 100)):
        self.delays = delays or {}
        self.failures = failures or {}
        self.sizes = sizes or {}
        self.empty = set(empty)
        self.default_size = default_size
        self.calls: list[int] = []
        self.completed: list[int] = []
        self.staged_paths: list[Path] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def render(self, document, page_index, spec, timeout, *, workdir):
        with self._lock:
            self.calls.append(page_index)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            with staged_document(document, workdir) as staged:
                self.staged_paths.append(staged)
                time.sleep(self.delays.get(page_index, 0))
                if page_index in self.failures:
                    raise self.failures[page_index]
                if page_index in self.empty:
                    return b""
                size = self.sizes.get(page_index, self.default_size)
                data = encode_image(Image.new("RGB", size, "white"), spec)
            with self._lock:
                self.completed.append(page_index)
            return data
        finally:
            with self._lock:
                self.active -= 1


class FixedPageCount:
    def __init__(self, count: int) -> None:
        self.count = count

    def page_count(self, document: bytes) -> int:
        return self.count


@pytest.fixture
def pdf_factory():
    return make_pdf


@pytest.fixture
def renderer_factory():
    return FakeRenderer


@pytest.fixture
def page_count_factory():
    return FixedPageCount


@pytest.fixture
def three_page_pdf() -> bytes:
    return make_pdf([(200, 100), (200, 150), (160, 120)])


@pytest.fixture
def scratch_root(tmp_path) -> Path:
    return tmp_path / "scratch"


@pytest.fixture
def busy_pdfium():
    """Hold the pdfium lock from another thread, as a wedged render would."""
    held = threading.Event()
    release = threading.Event()

    def hold():
        with adapters._PDFIUM_LOCK:
            held.set()
            release.wait(10)

    holder = threading.Thread(target=hold, daemon=True)
    holder.start()
    held.wait(5)
    yield
    release.set()
    holder.join(5)


@pytest.fixture
def slow_pdfium(monkeypatch):
    """Make every pdfium page render take 0.4 seconds."""
    import pypdfium2 as pdfium

    original = pdfium.PdfPage.render

    def render(self, *args, **kwargs):
        time.sleep(0.4)
        return original(self, *args, **kwargs)

    monkeypatch.setattr(pdfium.PdfPage, "render", render)
