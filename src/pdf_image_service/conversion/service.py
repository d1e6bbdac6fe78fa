import asyncio
import logging
import uuid
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .archive import ArchiveStream
from .errors import DocumentUnreadable, NoFileProvided, RasterizationFailed, UploadTooLarge
from .interfaces import (
    ConversionRequest,
    PageCounterGateway,
    PageFile,
    RasterizerGateway,
    RenderOptions,
    StorageGateway,
)
from .workspace import RequestWorkspace, remove_file

LOGGER = logging.getLogger("pdf_image_service.conversion")

Reader = Callable[[int], Awaitable[bytes]]


@dataclass
class ConvertedDocument:
    """A fully rasterized request, owning its workspace until streamed."""

    request: ConversionRequest
    workspace: RequestWorkspace
    pages: list[PageFile] = field(default_factory=list)

    @property
    def archive_name(self) -> str:
        return self.request.archive_name


class ConversionService:
    """Core domain service turning one uploaded PDF into a page-image archive.

    This service is framework-agnostic. The HTTP layer feeds it the upload
    stream and forwards the archive stream it returns; storage, page
    counting and rasterization are reached through gateways.
    """

    def __init__(
        self,
        storage: StorageGateway,
        counter: PageCounterGateway,
        rasterizer: RasterizerGateway,
        *,
        options: RenderOptions | None = None,
    ) -> None:
        self._storage = storage
        self._counter = counter
        self._rasterizer = rasterizer
        self._options = options or RenderOptions()

    @property
    def options(self) -> RenderOptions:
        return self._options

    async def convert_upload(
        self,
        filename: str | None,
        reader: Reader | None,
        *,
        max_upload_mb: int,
    ) -> ConvertedDocument:
        """Store the upload and rasterize it; the entry point for one request."""
        if reader is None or not filename:
            raise NoFileProvided()
        request = await self.store_upload(filename, reader, max_upload_mb=max_upload_mb)
        return await self.convert(request)

    async def store_upload(
        self,
        filename: str,
        reader: Reader,
        *,
        max_upload_mb: int,
    ) -> ConversionRequest:
        request_id = uuid.uuid4().hex
        upload_path = self._storage.upload_path(request_id)
        upload_path.parent.mkdir(parents=True, exist_ok=True)

        CHUNK = 1024 * 1024
        max_bytes = max_upload_mb * 1024 * 1024
        size_bytes = 0
        try:
            with upload_path.open("wb") as f_out:
                while True:
                    chunk = await reader(CHUNK)
                    if not chunk:
                        break
                    size_bytes += len(chunk)
                    if size_bytes > max_bytes:
                        raise UploadTooLarge(f"Upload exceeds {max_upload_mb} MB.")
                    await asyncio.to_thread(f_out.write, chunk)
        except BaseException:
            remove_file(upload_path)
            raise

        LOGGER.info("Stored upload %r as %s (%d bytes)", filename, request_id, size_bytes)
        return ConversionRequest(id=request_id, filename=filename, upload_path=upload_path)

    async def convert(self, request: ConversionRequest) -> ConvertedDocument:
        """Count and rasterize the pages of ``request`` into a fresh workspace.

        On any failure the upload and the workspace are removed before the
        error propagates. On success the returned document owns them.
        """
        with ExitStack() as stack:
            workspace = stack.enter_context(
                RequestWorkspace(request.upload_path, self._storage.output_dir(request.id))
            )
            await asyncio.to_thread(workspace.create)
            page_count = await self.count_pages(request)
            pages = await self.rasterize(request, workspace, page_count)
            stack.pop_all()
        return ConvertedDocument(request=request, workspace=workspace, pages=pages)

    async def count_pages(self, request: ConversionRequest) -> int:
        data = await asyncio.to_thread(request.upload_path.read_bytes)
        page_count = await asyncio.to_thread(self._counter.count_pages, data)
        if page_count < 1:
            raise DocumentUnreadable()
        return page_count

    async def rasterize(
        self,
        request: ConversionRequest,
        workspace: RequestWorkspace,
        page_count: int,
    ) -> list[PageFile]:
        # The backend may not tolerate concurrent access to one source, so
        # each page is awaited before the next one starts.
        pages: list[PageFile] = []
        for number in range(1, page_count + 1):
            LOGGER.info("Converting page %d of %d for %s", number, page_count, request.id)
            try:
                path = await asyncio.to_thread(
                    self._rasterizer.render_page,
                    request.upload_path,
                    workspace.output_dir,
                    number,
                    self._options,
                )
            except Exception as e:
                LOGGER.error("Rendering page %d of %s failed: %s", number, request.id, e)
                raise RasterizationFailed(number) from e
            if not path.is_file():
                raise RasterizationFailed(number, "No image was written.")
            pages.append(PageFile(number=number, format=self._options.format, path=path))
        return pages

    def stream_archive(self, converted: ConvertedDocument) -> ArchiveStream:
        """Hand the workspace to an archive stream that cleans it up when done."""
        stream = ArchiveStream(converted.workspace.output_dir)
        stream.add_done_callback(converted.workspace.cleanup)
        return stream
