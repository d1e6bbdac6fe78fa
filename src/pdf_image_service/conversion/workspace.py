"""Request-scoped temporary filesystem state and its guaranteed removal."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from types import TracebackType

LOGGER = logging.getLogger("pdf_image_service.cleanup")


def remove_file(path: Path) -> bool:
    """Delete ``path`` if it exists. Errors are logged, never raised."""
    if not path.exists():
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError:
        LOGGER.exception("Failed to remove file %s", path)
        return False
    return True


def remove_tree(path: Path) -> bool:
    """Recursively delete directory ``path`` if it exists. Errors are logged, never raised."""
    if not path.exists():
        return False
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return False
    except OSError:
        LOGGER.exception("Failed to remove directory %s", path)
        return False
    return True


class RequestWorkspace:
    """Working directory of one request plus the upload it was built from.

    Use as a context manager: leaving the block, normally or through an
    exception, removes both the upload file and the output directory.
    ``cleanup()`` may be called from several terminal events; only the
    first call does anything.
    """

    def __init__(self, upload_path: Path, output_dir: Path) -> None:
        self.upload_path = upload_path
        self.output_dir = output_dir
        self._cleaned = False

    @property
    def cleaned(self) -> bool:
        return self._cleaned

    def create(self) -> Path:
        """Create the fresh, empty output directory."""
        self.output_dir.parent.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir()
        return self.output_dir

    def cleanup(self) -> None:
        if self._cleaned:
            return
        self._cleaned = True
        remove_file(self.upload_path)
        remove_tree(self.output_dir)
        LOGGER.debug("Cleaned up %s and %s", self.upload_path, self.output_dir)

    def __enter__(self) -> RequestWorkspace:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()
