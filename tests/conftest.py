from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Callable

import pytest
from pypdf import PdfWriter

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))


def build_pdf(pages: int, *, size: float = 72) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=size, height=size)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture()
def pdf_factory(tmp_path: Path) -> Callable[..., Path]:
    def _create(filename: str, pages: int, size: float = 72) -> Path:
        path = tmp_path / filename
        path.write_bytes(build_pdf(pages, size=size))
        return path

    return _create


@pytest.fixture()
def sample_pdf(pdf_factory: Callable[..., Path]) -> Path:
    return pdf_factory("sample.pdf", 5)


@pytest.fixture()
def empty_pdf(pdf_factory: Callable[..., Path]) -> Path:
    return pdf_factory("empty.pdf", 0)
