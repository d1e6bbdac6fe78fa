"""Incremental ZIP streaming of a directory's files."""

from __future__ import annotations

import asyncio
import logging
import re
import zipfile
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Callable

from .errors import StreamWriteFailed

LOGGER = logging.getLogger("pdf_image_service.archive")

COMPRESS_LEVEL = 9
CHUNK_SIZE = 64 * 1024


class _DrainableSink:
    """Write-only, non-seekable buffer handed to ZipFile.

    ZipFile falls back to data descriptors when the target cannot seek, so
    every byte it writes can be shipped as soon as it is drained.
    """

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def _natural_key(path: Path) -> list[object]:
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", path.name)]


def _copy_chunk(src: BinaryIO, dest: BinaryIO, size: int) -> int:
    """Read up to ``size`` bytes from ``src`` and compress them into ``dest``."""
    chunk = src.read(size)
    if chunk:
        dest.write(chunk)
    return len(chunk)


def list_entries(source_dir: Path) -> list[Path]:
    """Flat listing of the regular files in ``source_dir`` in natural order."""
    return sorted((p for p in source_dir.iterdir() if p.is_file()), key=_natural_key)


class ArchiveStream:
    """Async iterable producing a deflated ZIP of ``source_dir``.

    Entries are read when iteration starts, not when the stream is built.
    ``finished`` is set and the done callbacks run exactly once, after the
    last byte was produced or when iteration stopped early; in the latter
    case ``error`` holds a StreamWriteFailed.
    """

    def __init__(self, source_dir: Path, *, chunk_size: int = CHUNK_SIZE) -> None:
        self.source_dir = source_dir
        self.chunk_size = chunk_size
        self.finished = asyncio.Event()
        self.error: StreamWriteFailed | None = None
        self.entries: list[str] = []
        self._callbacks: list[Callable[[], None]] = []
        self._started = False

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        if self.finished.is_set():
            callback()
            return
        self._callbacks.append(callback)

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._started:
            raise RuntimeError("archive stream can only be consumed once")
        self._started = True
        return self._iter_chunks()

    def close(self, error: StreamWriteFailed | None = None) -> None:
        """Mark the stream terminal and fire the done callbacks."""
        if self.finished.is_set():
            return
        self.error = error
        self.finished.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                LOGGER.exception("Archive done callback failed")

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        sink = _DrainableSink()
        completed = False
        try:
            entries = await asyncio.to_thread(list_entries, self.source_dir)
            with zipfile.ZipFile(
                sink, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESS_LEVEL
            ) as archive:
                for path in entries:
                    with path.open("rb") as src, archive.open(path.name, mode="w") as dest:
                        while True:
                            copied = await asyncio.to_thread(_copy_chunk, src, dest, self.chunk_size)
                            if not copied:
                                break
                            data = sink.drain()
                            if data:
                                yield data
                    self.entries.append(path.name)
                    data = sink.drain()
                    if data:
                        yield data
            data = sink.drain()
            if data:
                yield data
            completed = True
        except (GeneratorExit, asyncio.CancelledError):
            LOGGER.warning("Archive stream for %s aborted by the receiver", self.source_dir)
            self.close(StreamWriteFailed("archive stream aborted by the receiver"))
            raise
        except Exception as exc:
            LOGGER.exception("Archive stream for %s failed", self.source_dir)
            self.close(StreamWriteFailed(str(exc)))
            raise StreamWriteFailed(str(exc)) from exc
        finally:
            if completed:
                LOGGER.info("Streamed %d entries from %s", len(self.entries), self.source_dir)
            self.close()
