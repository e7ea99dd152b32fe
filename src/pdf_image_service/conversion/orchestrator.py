import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .errors import ConversionError, RenderFailureError, RenderTimeoutError
from .interfaces import EncodingSpec, PageRenderer, RenderedPage, ResolvedPageRange
from .staging import scratch_directory

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_PAGE_TIMEOUT = 60.0


class PageConversionOrchestrator:
    """Render a page range concurrently through a ``PageRenderer``.

    At most ``max_concurrency`` pages render at once, each under its own
    ``page_timeout``. The first failing page cancels the remaining renders and
    its error is raised; no partial results are returned. Pages come back in
    document order whatever order they finish in, and the per-conversion
    scratch directory is removed before ``convert`` returns or raises.

    A renderer that exposes an ``exclusive_lock`` serialises its calls on it.
    The lock is taken before a page's clock starts, so time spent queued
    behind another page never counts against that page's timeout. The wait
    for the lock is itself bounded by ``page_timeout * max_concurrency``.
    """

    def __init__(
        self,
        renderer: PageRenderer,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        page_timeout: float = DEFAULT_PAGE_TIMEOUT,
        scratch_root: str | Path | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if page_timeout <= 0:
            raise ValueError("page_timeout must be positive")
        self._renderer = renderer
        self._max_concurrency = max_concurrency
        self._page_timeout = page_timeout
        self._scratch_root = scratch_root

    async def convert(
        self,
        document: bytes,
        page_range: ResolvedPageRange,
        spec: EncodingSpec,
    ) -> list[RenderedPage]:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        executor = ThreadPoolExecutor(
            max_workers=min(self._max_concurrency, len(page_range)),
            thread_name_prefix="page-render",
        )
        tasks: list[asyncio.Task[RenderedPage]] = []
        logger.info(
            "Rendering pages %d-%d as %s (concurrency=%d, timeout=%gs)",
            page_range.start,
            page_range.end,
            spec.output_format,
            self._max_concurrency,
            self._page_timeout,
        )
        try:
            with scratch_directory(self._scratch_root) as workdir:
                try:
                    for index in page_range.indices:
                        coro = self._render_page(executor, semaphore, document, index, spec, workdir)
                        tasks.append(asyncio.create_task(coro, name=f"render-page-{index}"))
                    await self._wait_fail_fast(tasks)
                finally:
                    for task in tasks:
                        if not task.done():
                            task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        pages = [task.result() for task in tasks]
        return sorted(pages, key=lambda page: page.index)

    @staticmethod
    async def _wait_fail_fast(tasks: list["asyncio.Task[RenderedPage]"]) -> None:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        failed = [t for t in done if not t.cancelled() and t.exception() is not None]
        if not failed:
            return
        for task in pending:
            task.cancel()
        first = min(failed, key=lambda t: getattr(t.exception(), "page_index", None) or 0)
        error = first.exception()
        logger.error("Aborting conversion, %d page(s) still in flight: %s", len(pending), error)
        raise error  # type: ignore[misc]

    @staticmethod
    async def _until_started(started: asyncio.Event, future: "asyncio.Future[bytes]") -> None:
        # Returns once the render holds the renderer's lock, or has already finished.
        waiter = asyncio.ensure_future(started.wait())
        try:
            await asyncio.wait({waiter, future}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

    def _run_exclusive(
        self,
        call: functools.partial,
        index: int,
        loop: asyncio.AbstractEventLoop,
        started: asyncio.Event,
        abandoned: threading.Event,
    ) -> bytes:
        """Run ``call`` on a worker thread, holding the renderer's lock if it has one."""
        lock = getattr(self._renderer, "exclusive_lock", None)
        if lock is None:
            loop.call_soon_threadsafe(started.set)
            return call()

        lock_wait = self._page_timeout * self._max_concurrency
        if not lock.acquire(timeout=lock_wait):
            logger.error("Page %d waited %gs for the renderer lock", index, lock_wait)
            raise RenderTimeoutError(index, lock_wait)
        try:
            if abandoned.is_set():
                return b""
            loop.call_soon_threadsafe(started.set)
            return call()
        finally:
            lock.release()

    async def _render_page(
        self,
        executor: ThreadPoolExecutor,
        semaphore: asyncio.Semaphore,
        document: bytes,
        index: int,
        spec: EncodingSpec,
        workdir: Path,
    ) -> RenderedPage:
        async with semaphore:
            page_dir = workdir / f"page-{index}"
            page_dir.mkdir()
            call = functools.partial(
                self._renderer.render,
                document,
                index,
                spec,
                self._page_timeout,
                workdir=page_dir,
            )
            loop = asyncio.get_running_loop()
            started = asyncio.Event()
            abandoned = threading.Event()
            worker = functools.partial(self._run_exclusive, call, index, loop, started, abandoned)
            logger.debug("Rendering page %d", index)
            try:
                future = loop.run_in_executor(executor, worker)
                await self._until_started(started, future)
                data = await asyncio.wait_for(future, timeout=self._page_timeout)
            except asyncio.TimeoutError:
                logger.error("Page %d timed out after %gs", index, self._page_timeout)
                raise RenderTimeoutError(index, self._page_timeout) from None
            except ConversionError:
                raise
            except Exception as e:
                logger.exception("Page %d failed to render", index)
                raise RenderFailureError(index, str(e)) from e
            finally:
                abandoned.set()

        if not data:
            raise RenderFailureError(index, "renderer produced an empty buffer")
        logger.debug("Page %d rendered (%d bytes)", index, len(data))
        return RenderedPage(index=index, data=data)
