from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


SUPPORTED_FORMATS = frozenset({"png", "jpg", "jpeg", "pnm", "ppm", "pam", "psd"})


@dataclass(frozen=True)
class RenderOptions:
    density: int = 330
    format: str = "png"
    stem: str = "page"

    def __post_init__(self) -> None:
        if self.density <= 0:
            raise ValueError("density must be a positive DPI value")
        if self.format not in SUPPORTED_FORMATS:
            raise ValueError(f"unsupported image format: {self.format}")
        if not self.stem or "/" in self.stem or "\\" in self.stem:
            raise ValueError(f"invalid filename stem: {self.stem!r}")

    def filename(self, page_number: int) -> str:
        return f"{self.stem}_{page_number}.{self.format}"


@dataclass(frozen=True)
class ConversionRequest:
    id: str
    filename: str
    upload_path: Path

    @property
    def archive_name(self) -> str:
        """Download name: the original base name with a ``.zip`` extension."""
        name = Path(self.filename).name
        stem = name.rsplit(".", 1)[0] if "." in name else name
        if not stem:
            stem = "document"
        return f"{stem}.zip"


@dataclass(frozen=True)
class PageFile:
    number: int
    format: str
    path: Path


class PageCounterGateway(Protocol):
    def count_pages(self, data: bytes) -> int:
        """Return the number of pages in ``data``.

        Raises DocumentUnreadable when the bytes are not a readable document
        or when it has no pages.
        """


class RasterizerGateway(Protocol):
    def render_page(
        self,
        source: Path,
        destination: Path,
        page_number: int,
        options: RenderOptions,
    ) -> Path:
        """Render one 1-based page of ``source`` into ``destination``.
        This is a blocking call; callers should offload to threads if needed.
        Calls against the same source must not overlap.
        """


class StorageGateway(Protocol):
    def upload_path(self, request_id: str) -> Path:
        ...

    def output_dir(self, request_id: str) -> Path:
        ...
