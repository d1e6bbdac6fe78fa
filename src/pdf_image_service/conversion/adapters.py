import io
import threading
from pathlib import Path

from .errors import DocumentUnreadable
from .interfaces import PageCounterGateway, RasterizerGateway, RenderOptions, StorageGateway


class LocalStorage(StorageGateway):
    def __init__(self, data_dir: str) -> None:
        self._base = Path(data_dir).resolve()

    @property
    def uploads_dir(self) -> Path:
        return self._base / "uploads"

    @property
    def outputs_dir(self) -> Path:
        return self._base / "output"

    def ensure_dirs(self) -> None:
        for d in (self.uploads_dir, self.outputs_dir):
            d.mkdir(parents=True, exist_ok=True)

    def upload_path(self, request_id: str) -> Path:
        return self.uploads_dir / request_id

    def output_dir(self, request_id: str) -> Path:
        return self.outputs_dir / request_id


class PypdfPageCounter(PageCounterGateway):
    def count_pages(self, data: bytes) -> int:
        if not data:
            raise DocumentUnreadable("Uploaded file is empty.")
        from pypdf import PdfReader

        try:
            reader = PdfReader(io.BytesIO(data))
            count = len(reader.pages)
        except Exception as e:
            # pypdf raises a wide range of errors on malformed input
            raise DocumentUnreadable() from e
        if not count:
            raise DocumentUnreadable()
        return count


class PyMuPdfRasterizer(RasterizerGateway):
    def __init__(self) -> None:
        # MuPDF is not safe to drive from several threads at once, even on
        # different documents.
        self._lock = threading.Lock()

    def render_page(
        self,
        source: Path,
        destination: Path,
        page_number: int,
        options: RenderOptions,
    ) -> Path:
        import fitz  # PyMuPDF

        target = destination / options.filename(page_number)
        with self._lock, fitz.open(str(source)) as doc:
            if not 1 <= page_number <= doc.page_count:
                raise IndexError(f"page {page_number} out of range 1..{doc.page_count}")
            page = doc.load_page(page_number - 1)
            pixmap = page.get_pixmap(dpi=options.density, alpha=False)
            pixmap.save(str(target))
        return target
