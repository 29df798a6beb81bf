# src/parapdfa/inspector.py
from __future__ import annotations

import logging
import math

from .config import DEFAULT_DPI
from .exceptions import PageErrorKind, PageProcessingError
from .image_processor import BaseImageProcessor
from .models import (
    ColorModel,
    ImageInfo,
    Page,
    PageCharacteristics,
    RecognitionStatus,
    SourceKind,
)
from .pdf_processor import BasePDFProcessor
from .workspace import PageWorkspace

logger = logging.getLogger("parapdfa")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def analytic_dpi(px_width: int, px_height: int, pt_width: float, pt_height: float) -> int:
    """
    Resolution of an image stretched over a page of the given size in points,
    assuming equal horizontal and vertical resolution.
    """
    if pt_width <= 0 or pt_height <= 0:
        raise ValueError(f"Invalid page size {pt_width}x{pt_height} pt")
    dpi = math.sqrt(px_width * 72 * px_height * 72 / pt_width / pt_height)
    return max(1, _round_half_up(dpi))


def declared_dpi(resolution: float, unit: str = "inch") -> int:
    if unit == "cm":
        resolution = resolution * 2.54
    return max(1, _round_half_up(resolution))


def default_characteristics(status: RecognitionStatus, dpi: int = DEFAULT_DPI) -> PageCharacteristics:
    """The 8 bit sRGB assumption used when a page cannot be measured."""
    return PageCharacteristics(dpi=dpi, color_model=ColorModel.COLOR, depth=8, status=status)


class PageInspector:
    """
    Works out the resolution and color model of a page, and whether the
    page already carries a text layer.
    """

    def __init__(self, pdf_processor: BasePDFProcessor, image_processor: BaseImageProcessor,
                 default_dpi: int = DEFAULT_DPI):
        self.pdf = pdf_processor
        self.images = image_processor
        self.default_dpi = default_dpi

    def inspect(self, page: Page, workspace: PageWorkspace) -> PageCharacteristics:
        label = page.kind.label
        logger.debug("%s %d: Size %.1fx%.1f (w*h in pt)", label, page.number, page.width_pt, page.height_pt)

        if page.kind is SourceKind.DOCUMENT_PAGE:
            try:
                font_count = self.pdf.count_fonts(page.source_path, page.number)
                if font_count > 0:
                    logger.info("Page %d: Page already contains font data", page.number)
                    return default_characteristics(RecognitionStatus.HAS_EXISTING_TEXT, self.default_dpi)

                images = self.pdf.extract_images(page.source_path, page.number, workspace.extracted_dir)
            except Exception as e:
                raise PageProcessingError(
                    page.number, PageErrorKind.EXTRACTION_FAILED, f"Could not extract page image, {e}"
                ) from e

            if len(images) != 1:
                logger.warning(
                    "Page %d: Expecting exactly 1 image covering the whole page (found %d). Cannot compute dpi value.",
                    page.number, len(images),
                )
                return default_characteristics(RecognitionStatus.AMBIGUOUS_EXTRACTION, self.default_dpi)
            raster = images[0]
        else:
            raster = page.source_path

        try:
            info = self.images.read_info(raster)
            dpi = self.effective_dpi(page, info)
        except Exception as e:
            raise PageProcessingError(
                page.number, PageErrorKind.EXTRACTION_FAILED, f"Could not read image characteristics of {raster}, {e}"
            ) from e

        logger.debug("%s %d: Size %dx%d (in pixel), %d dpi, %s, depth %d",
                     label, page.number, info.width, info.height, dpi, info.color_model.value, info.depth)
        return PageCharacteristics(
            dpi=dpi,
            color_model=info.color_model,
            depth=info.depth,
            status=RecognitionStatus.NO_EXISTING_TEXT,
        )

    @staticmethod
    def effective_dpi(page: Page, info: ImageInfo) -> int:
        # Images pulled out of a PDF carry no trustworthy resolution tag; only
        # standalone images get to declare their own.
        if page.kind is SourceKind.STANDALONE_IMAGE and info.resolution:
            return declared_dpi(info.resolution, info.resolution_unit)
        return analytic_dpi(info.width, info.height, page.width_pt, page.height_pt)
