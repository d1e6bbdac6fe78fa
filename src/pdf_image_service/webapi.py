import os
import logging
from pathlib import Path
from urllib.parse import quote

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

try:
    from pdf_image_service.conversion.adapters import LocalStorage, PypdfPageCounter, PyMuPdfRasterizer
    from pdf_image_service.conversion import ConversionError, ConversionService, RenderOptions
    from pdf_image_service.ratelimit import FixedWindowRateLimiter, RateLimitMiddleware
except ImportError:
    # Allow running as a script: `python src/pdf_image_service/webapi.py`
    import sys as _sys
    from pathlib import Path as _Path
    _sys.path.append(str(_Path(__file__).resolve().parents[1]))  # add ./src to sys.path
    from pdf_image_service.conversion.adapters import LocalStorage, PypdfPageCounter, PyMuPdfRasterizer
    from pdf_image_service.conversion import ConversionError, ConversionService, RenderOptions
    from pdf_image_service.ratelimit import FixedWindowRateLimiter, RateLimitMiddleware

LOGGER = logging.getLogger("pdf_image_service.webapi")

app = FastAPI(
    title="PDF Page Image Service",
    version=os.getenv("PDF_IMAGE_SERVICE_VERSION", "0.1.0"),
    description=(
        "Upload a PDF and download a ZIP archive holding one rendered image "
        "per page."
    ),
)

# Global configuration defaults
DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).resolve()
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "100"))
RENDER_DENSITY = int(os.getenv("RENDER_DENSITY", "330"))
RENDER_FORMAT = os.getenv("RENDER_FORMAT", "png").lower()
RENDER_STEM = os.getenv("RENDER_STEM", "page")
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "20"))
RATE_LIMIT_WINDOW_SEC = float(os.getenv("RATE_LIMIT_WINDOW_SEC", "60"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}

SERVICE: ConversionService | None = None


class SecurityHeadersMiddleware:
    """Adds SECURITY_HEADERS to every HTTP response passing through it."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in SECURITY_HEADERS.items():
                    headers.setdefault(name, value)
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(RateLimitMiddleware, exempt_paths=frozenset({"/health"}))
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    # Browsers only let scripts read the download name when it is exposed.
    expose_headers=["Content-Disposition"],
)
# Added last so it wraps everything, including rate-limit rejections.
app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(ConversionError)
async def _conversion_error(request: Request, exc: ConversionError) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=exc.status_code or 500)


def _content_disposition(filename: str) -> str:
    """Attachment header with a quoted ASCII ``filename`` plus ``filename*`` for non-ASCII names."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace("?", "_")
    fallback = fallback.replace("\\", "\\\\").replace('"', '\\"')
    value = f'attachment; filename="{fallback}"'
    if not filename.isascii():
        value += f"; filename*=utf-8''{quote(filename)}"
    return value


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.on_event("startup")
async def _startup() -> None:
    global SERVICE
    storage = LocalStorage(str(DATA_DIR))
    storage.ensure_dirs()
    options = RenderOptions(density=RENDER_DENSITY, format=RENDER_FORMAT, stem=RENDER_STEM)
    SERVICE = ConversionService(
        storage=storage,
        counter=PypdfPageCounter(),
        rasterizer=PyMuPdfRasterizer(),
        options=options,
    )
    app.state.rate_limiter = FixedWindowRateLimiter(RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_SEC)
    LOGGER.info("Serving from %s at %d dpi as %s", DATA_DIR, RENDER_DENSITY, RENDER_FORMAT)


@app.post("/upload")
async def upload(file: UploadFile | None = File(None)) -> StreamingResponse:
    """Convert an uploaded PDF into a ZIP archive of page images.

    Accepts multipart/form-data with a single part named "file". Errors
    before streaming starts are answered with a short text message; the
    upload and the rendered pages are removed in every case.
    """
    global SERVICE
    assert SERVICE is not None

    converted = await SERVICE.convert_upload(
        filename=file.filename if file is not None else None,
        reader=file.read if file is not None else None,
        max_upload_mb=MAX_UPLOAD_MB,
    )
    stream = SERVICE.stream_archive(converted)
    LOGGER.info("Streaming %s with %d pages", converted.archive_name, len(converted.pages))
    return StreamingResponse(
        stream,
        media_type="application/zip",
        headers={"Content-Disposition": _content_disposition(converted.archive_name)},
        # Covers responses whose body is never iterated.
        background=BackgroundTask(converted.workspace.cleanup),
    )


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    uvicorn.run("pdf_image_service.webapi:app", host=host, port=port, reload=reload, log_level=log_level)


if __name__ == "__main__":
    run()
