import pytest

from pdf_image_service.conversion.adapters import PdfiumRenderer
from pdf_image_service.conversion.encoding import resolve_encoding
from pdf_image_service.conversion.errors import RenderFailureError, RenderTimeoutError
from pdf_image_service.conversion.interfaces import ResolvedPageRange
from pdf_image_service.conversion.orchestrator import PageConversionOrchestrator

DOCUMENT = b"%PDF-1.4 fake document body %%EOF"


@pytest.fixture
def spec():
    return resolve_encoding("png16m", 90, 72, (255, 255, 255))


@pytest.mark.asyncio
async def test_pages_come_back_in_document_order(spec, renderer_factory, scratch_root):
    # Later pages finish first.
    renderer = renderer_factory(delays={2: 0.3, 3: 0.15, 4: 0.0})
    orchestrator = PageConversionOrchestrator(renderer, max_concurrency=3, scratch_root=scratch_root)

    pages = await orchestrator.convert(DOCUMENT, ResolvedPageRange(2, 4), spec)

    assert [p.index for p in pages] == [2, 3, 4]
    assert renderer.completed[0] == 4
    assert sorted(renderer.calls) == [2, 3, 4]


@pytest.mark.asyncio
async def test_concurrency_ceiling_is_respected(spec, renderer_factory, scratch_root):
    renderer = renderer_factory(delays={i: 0.05 for i in range(8)})
    orchestrator = PageConversionOrchestrator(renderer, max_concurrency=2, scratch_root=scratch_root)

    pages = await orchestrator.convert(DOCUMENT, ResolvedPageRange(0, 7), spec)

    assert len(pages) == 8
    assert renderer.max_active <= 2


@pytest.mark.asyncio
async def test_scratch_files_are_removed_after_success(spec, renderer_factory, scratch_root):
    renderer = renderer_factory()
    orchestrator = PageConversionOrchestrator(renderer, scratch_root=scratch_root)

    await orchestrator.convert(DOCUMENT, ResolvedPageRange(0, 2), spec)

    assert len(renderer.staged_paths) == 3
    assert len(set(renderer.staged_paths)) == 3
    assert not any(p.exists() for p in renderer.staged_paths)
    assert list(scratch_root.iterdir()) == []


@pytest.mark.asyncio
async def test_timeout_fails_conversion_and_leaves_no_files(spec, renderer_factory, scratch_root):
    renderer = renderer_factory(delays={1: 1.0})
    orchestrator = PageConversionOrchestrator(
        renderer, max_concurrency=3, page_timeout=0.1, scratch_root=scratch_root
    )

    with pytest.raises(RenderTimeoutError) as excinfo:
        await orchestrator.convert(DOCUMENT, ResolvedPageRange(0, 2), spec)

    assert excinfo.value.page_index == 1
    assert excinfo.value.code == "render_timeout"
    assert list(scratch_root.iterdir()) == []


@pytest.mark.asyncio
async def test_first_failure_stops_remaining_pages(spec, renderer_factory, scratch_root):
    renderer = renderer_factory(failures={0: RenderFailureError(0, "corrupt page")})
    orchestrator = PageConversionOrchestrator(renderer, max_concurrency=1, scratch_root=scratch_root)

    with pytest.raises(RenderFailureError, match="corrupt page"):
        await orchestrator.convert(DOCUMENT, ResolvedPageRange(0, 4), spec)

    # The next queued page may already have been handed to a worker.
    assert renderer.calls[0] == 0
    assert len(renderer.calls) <= 2
    assert list(scratch_root.iterdir()) == []


@pytest.mark.asyncio
async def test_backend_exceptions_are_wrapped(spec, renderer_factory, scratch_root):
    renderer = renderer_factory(failures={3: RuntimeError("segfault-ish")})
    orchestrator = PageConversionOrchestrator(renderer, scratch_root=scratch_root)

    with pytest.raises(RenderFailureError) as excinfo:
        await orchestrator.convert(DOCUMENT, ResolvedPageRange(2, 4), spec)

    assert excinfo.value.page_index == 3
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.public_message == "PDF conversion failed."


@pytest.mark.asyncio
async def test_empty_buffer_is_a_failure(spec, renderer_factory, scratch_root):
    renderer = renderer_factory(empty=[0])
    orchestrator = PageConversionOrchestrator(renderer, scratch_root=scratch_root)

    with pytest.raises(RenderFailureError, match="empty buffer"):
        await orchestrator.convert(DOCUMENT, ResolvedPageRange(0, 0), spec)


@pytest.mark.parametrize("kwargs", [{"max_concurrency": 0}, {"page_timeout": 0}])
def test_rejects_invalid_limits(kwargs, renderer_factory):
    with pytest.raises(ValueError):
        PageConversionOrchestrator(renderer_factory(), **kwargs)


@pytest.mark.asyncio
async def test_waiting_for_the_pdfium_lock_does_not_count_against_the_timeout(
    spec, slow_pdfium, three_page_pdf, scratch_root
):
    # Three 0.4s renders run one after another; the last finishes at ~1.2s.
    orchestrator = PageConversionOrchestrator(
        PdfiumRenderer(), max_concurrency=4, page_timeout=1.0, scratch_root=scratch_root
    )

    pages = await orchestrator.convert(three_page_pdf, ResolvedPageRange(0, 2), spec)

    assert [p.index for p in pages] == [0, 1, 2]
    assert all(p.data for p in pages)
    assert list(scratch_root.iterdir()) == []


@pytest.mark.asyncio
async def test_wedged_pdfium_lock_times_out(spec, busy_pdfium, three_page_pdf, scratch_root):
    orchestrator = PageConversionOrchestrator(
        PdfiumRenderer(), max_concurrency=1, page_timeout=0.2, scratch_root=scratch_root
    )

    with pytest.raises(RenderTimeoutError) as excinfo:
        await orchestrator.convert(three_page_pdf, ResolvedPageRange(0, 0), spec)

    assert excinfo.value.page_index == 0
    assert list(scratch_root.iterdir()) == []
