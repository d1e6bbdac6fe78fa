"""
Domain layer for PDF page rasterization.
Provides interfaces (gateways), the error taxonomy, and a service that turns
one uploaded document into a streamed archive of page images, abstracting
storage, page counting and rendering so front-ends (HTTP or others) can use
the same core logic.
"""

from .archive import ArchiveStream
from .errors import (
    ConversionError,
    DocumentUnreadable,
    NoFileProvided,
    RasterizationFailed,
    StreamWriteFailed,
    UploadTooLarge,
)
from .interfaces import (
    ConversionRequest,
    PageCounterGateway,
    PageFile,
    RasterizerGateway,
    RenderOptions,
    StorageGateway,
)
from .service import ConversionService, ConvertedDocument
from .workspace import RequestWorkspace
