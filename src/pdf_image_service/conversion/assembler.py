import io
import logging
import zipfile
from typing import Sequence

from PIL import Image

from .encoding import encode_image, flatten
from .errors import AssemblyError
from .interfaces import (
    ARCHIVE_MEDIA_TYPE,
    RGB,
    ConversionResult,
    EncodingSpec,
    RenderedPage,
)

logger = logging.getLogger(__name__)

ARCHIVE_FILENAME = "converted-pages.zip"


def stack_pages(images: Sequence[Image.Image], background: RGB) -> Image.Image:
    """Stack images top to bottom, left-aligned, on a background-filled canvas."""
    if not images:
        raise AssemblyError("No pages were converted")
    width = max(image.width for image in images)
    height = sum(image.height for image in images)
    canvas = Image.new("RGB", (width, height), background)
    offset = 0
    for image in images:
        canvas.paste(flatten(image, background).convert("RGB"), (0, offset))
        offset += image.height
    return canvas


class OutputAssembler:
    def assemble(
        self,
        pages: Sequence[RenderedPage],
        spec: EncodingSpec,
        single_file: bool,
    ) -> ConversionResult:
        if not pages:
            raise AssemblyError("No pages were converted")
        if single_file:
            return self.combine(pages, spec)
        return self.archive(pages, spec)

    def combine(self, pages: Sequence[RenderedPage], spec: EncodingSpec) -> ConversionResult:
        images = []
        for page in pages:
            image = Image.open(io.BytesIO(page.data))
            image.load()
            images.append(image)
        canvas = stack_pages(images, spec.background_color)
        logger.info("Combined %d page(s) into a %dx%d image", len(images), canvas.width, canvas.height)
        return ConversionResult(
            data=encode_image(canvas, spec),
            media_type=spec.media_type,
            filename=f"converted.{spec.extension}",
        )

    def archive(self, pages: Sequence[RenderedPage], spec: EncodingSpec) -> ConversionResult:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
            for position, page in enumerate(pages, start=1):
                zf.writestr(f"page-{position}.{spec.extension}", page.data)
        logger.info("Packaged %d page(s) into %s", len(pages), ARCHIVE_FILENAME)
        return ConversionResult(
            data=buf.getvalue(),
            media_type=ARCHIVE_MEDIA_TYPE,
            filename=ARCHIVE_FILENAME,
        )
