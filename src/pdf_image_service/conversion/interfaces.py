from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol


class OutputFormat(str, Enum):
    TIFFLZW = "tifflzw"
    JPEG = "jpeg"
    PNGGRAY = "pnggray"
    PNG256 = "png256"
    PNG16 = "png16"
    PNG16M = "png16m"


RGB = tuple[int, int, int]

ARCHIVE_MEDIA_TYPE = "application/zip"


@dataclass(frozen=True)
class ConversionRequest:
    document: bytes
    start_page: int = 0
    end_page: int = 0
    single_file: bool = True
    output_format: str = OutputFormat.PNG16M.value
    dpi: int = 150
    quality: int = 90
    background_color: RGB = (255, 255, 255)


@dataclass(frozen=True)
class ResolvedPageRange:
    start: int
    end: int

    @property
    def indices(self) -> range:
        return range(self.start, self.end + 1)

    def __len__(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class EncodingSpec:
    output_format: str
    container: str
    color_mode: str
    dpi: int
    background_color: RGB
    palette_size: int | None = None
    compression: str | None = None
    quality: int | None = None

    @property
    def extension(self) -> str:
        return self.container.lower()

    @property
    def media_type(self) -> str:
        return f"image/{self.extension}"


@dataclass(frozen=True)
class RenderedPage:
    index: int
    data: bytes


@dataclass(frozen=True)
class ConversionResult:
    data: bytes
    media_type: str
    filename: str

    @property
    def is_archive(self) -> bool:
        return self.media_type == ARCHIVE_MEDIA_TYPE


class PageRenderer(Protocol):
    def render(
        self,
        document: bytes,
        page_index: int,
        spec: EncodingSpec,
        timeout: float,
        *,
        workdir: Path,
    ) -> bytes:
        """Render one page of ``document`` and return the encoded image bytes.

        This is a blocking call; the orchestrator runs it on a worker thread.
        ``workdir`` is an empty scratch directory private to this page render
        and removed by the caller once the conversion finishes.
        """


class DocumentInfo(Protocol):
    def page_count(self, document: bytes) -> int:
        ...
