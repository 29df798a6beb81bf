from __future__ import annotations

import logging
from pathlib import Path

import pytest

from parapdfa.exceptions import PageErrorKind, PageProcessingError
from parapdfa.inspector import PageInspector, analytic_dpi, declared_dpi
from parapdfa.models import ColorModel, ImageInfo, Page, RecognitionStatus
from parapdfa.workspace import RunWorkspace

from conftest import A4, gray_a4, image_page


@pytest.fixture
def workspace(tmp_path: Path):
    return RunWorkspace(tmp_path / "run").for_page(1)


def _inspector(toolkit, default_dpi=300):
    return PageInspector(toolkit.pdf, toolkit.images, default_dpi)


def test_analytic_dpi_of_a4_scan_is_300():
    assert analytic_dpi(2480, 3508, 595, 842) == 300


def test_analytic_dpi_rounds_half_up():
    assert analytic_dpi(301, 301, 144, 144) == 151


def test_analytic_dpi_rejects_empty_page():
    with pytest.raises(ValueError):
        analytic_dpi(100, 100, 0, 842)


def test_declared_dpi_converts_centimeters():
    assert declared_dpi(118.11, "cm") == 300
    assert declared_dpi(299.6) == 300


def test_single_image_page_uses_analytic_dpi_and_color_model(make_toolkit, source_pdf, workspace):
    toolkit = make_toolkit(page_images={1: [ImageInfo(2480, 3508, ColorModel.GRAY, 8)]})
    chars = _inspector(toolkit).inspect(Page(1, source_pdf, *A4), workspace)

    assert chars.status is RecognitionStatus.NO_EXISTING_TEXT
    assert chars.dpi == 300
    assert chars.color_model is ColorModel.GRAY
    assert chars.depth == 8


def test_resolution_tag_of_extracted_image_is_ignored(make_toolkit, source_pdf, workspace):
    tagged = ImageInfo(2480, 3508, ColorModel.MONOCHROME, 1, resolution=72.0)
    toolkit = make_toolkit(page_images={1: [tagged]})
    chars = _inspector(toolkit).inspect(Page(1, source_pdf, *A4), workspace)
    assert chars.dpi == 300
    assert chars.color_model is ColorModel.MONOCHROME


def test_page_with_fonts_has_existing_text(make_toolkit, source_pdf, workspace):
    toolkit = make_toolkit(fonts={1: 2})
    chars = _inspector(toolkit, default_dpi=250).inspect(Page(1, source_pdf, *A4), workspace)

    assert chars.status is RecognitionStatus.HAS_EXISTING_TEXT
    assert chars.dpi == 250
    assert chars.color_model is ColorModel.COLOR
    assert chars.depth == 8
    assert toolkit.pdf.extracted == []


@pytest.mark.parametrize("count", [0, 2])
def test_image_count_other_than_one_is_ambiguous(make_toolkit, source_pdf, workspace, caplog, count):
    toolkit = make_toolkit(page_images={1: [gray_a4()] * count})
    with caplog.at_level(logging.WARNING, logger="parapdfa"):
        chars = _inspector(toolkit).inspect(Page(1, source_pdf, *A4), workspace)

    assert chars.status is RecognitionStatus.AMBIGUOUS_EXTRACTION
    assert (chars.dpi, chars.color_model, chars.depth) == (300, ColorModel.COLOR, 8)
    assert f"found {count}" in caplog.text


def test_inspection_is_deterministic(make_toolkit, source_pdf, workspace):
    toolkit = make_toolkit(page_images={1: [gray_a4(150)]})
    inspector = _inspector(toolkit)
    page = Page(1, source_pdf, *A4)
    assert inspector.inspect(page, workspace) == inspector.inspect(page, workspace)


def test_standalone_image_uses_declared_resolution(make_toolkit, standalone_image, workspace):
    path, info = standalone_image(resolution=150.0)
    toolkit = make_toolkit(image_infos={path.name: info})
    chars = _inspector(toolkit).inspect(image_page(path, info), workspace)
    assert chars.dpi == 150
    assert chars.color_model is ColorModel.COLOR


def test_standalone_image_without_resolution_is_72_dpi(make_toolkit, standalone_image, workspace):
    path, info = standalone_image()
    toolkit = make_toolkit(image_infos={path.name: info})
    chars = _inspector(toolkit).inspect(image_page(path, info), workspace)
    assert chars.dpi == 72


def test_unreadable_image_is_extraction_failure(make_toolkit, standalone_image, workspace):
    path, info = standalone_image()
    toolkit = make_toolkit()  # no metadata registered for the file
    with pytest.raises(PageProcessingError) as exc:
        _inspector(toolkit).inspect(image_page(path, info), workspace)
    assert exc.value.kind is PageErrorKind.EXTRACTION_FAILED
    assert exc.value.page_number == 1
