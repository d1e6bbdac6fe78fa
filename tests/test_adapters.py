from __future__ import annotations

from pathlib import Path

import pytest

from pdf_image_service.conversion.adapters import LocalStorage, PyMuPdfRasterizer, PypdfPageCounter
from pdf_image_service.conversion.errors import DocumentUnreadable
from pdf_image_service.conversion.interfaces import ConversionRequest, RenderOptions

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_page_counter_reports_page_total(sample_pdf: Path) -> None:
    assert PypdfPageCounter().count_pages(sample_pdf.read_bytes()) == 5


@pytest.mark.parametrize(
    "payload",
    [b"", b"this is not a pdf document\n" * 20],
    ids=["zero-bytes", "garbage"],
)
def test_page_counter_rejects_unreadable_bytes(payload: bytes) -> None:
    with pytest.raises(DocumentUnreadable):
        PypdfPageCounter().count_pages(payload)


def test_page_counter_rejects_documents_without_pages(empty_pdf: Path) -> None:
    with pytest.raises(DocumentUnreadable):
        PypdfPageCounter().count_pages(empty_pdf.read_bytes())


def test_rasterizer_writes_named_page_image(sample_pdf: Path, tmp_path: Path) -> None:
    destination = tmp_path / "out"
    destination.mkdir()
    options = RenderOptions(density=72, format="png", stem="page")

    result = PyMuPdfRasterizer().render_page(sample_pdf, destination, 2, options)

    assert result == destination / "page_2.png"
    assert result.read_bytes()[:8] == PNG_SIGNATURE
    assert [p.name for p in destination.iterdir()] == ["page_2.png"]


def test_rasterizer_rejects_out_of_range_pages(sample_pdf: Path, tmp_path: Path) -> None:
    with pytest.raises(IndexError):
        PyMuPdfRasterizer().render_page(sample_pdf, tmp_path, 6, RenderOptions(density=72))
    assert list(tmp_path.glob("page_*")) == []


@pytest.mark.parametrize(
    "kwargs",
    [{"density": 0}, {"format": "gif"}, {"stem": ""}, {"stem": "../x"}],
)
def test_render_options_validation(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        RenderOptions(**kwargs)


def test_render_options_filename() -> None:
    assert RenderOptions(format="jpg", stem="scan").filename(12) == "scan_12.jpg"


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("report.pdf", "report.zip"),
        ("annual.report.pdf", "annual.report.zip"),
        ("notes", "notes.zip"),
        ("/tmp/evil/../report.PDF", "report.zip"),
        ("my report.pdf", "my report.zip"),
        (".pdf", "document.zip"),
        ("", "document.zip"),
    ],
)
def test_archive_name_replaces_extension(filename: str, expected: str) -> None:
    request = ConversionRequest(id="x", filename=filename, upload_path=Path("x"))
    assert request.archive_name == expected


def test_local_storage_partitions_by_request_id(tmp_path: Path) -> None:
    storage = LocalStorage(str(tmp_path))
    storage.ensure_dirs()
    assert storage.upload_path("a") == tmp_path.resolve() / "uploads" / "a"
    assert storage.output_dir("a") == tmp_path.resolve() / "output" / "a"
    assert storage.output_dir("a") != storage.output_dir("b")
    assert storage.uploads_dir.is_dir() and storage.outputs_dir.is_dir()
