# src/parapdfa/transformer.py
from __future__ import annotations

import importlib
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .composer import HocrPdfComposer
from .config import LOW_DPI_WARNING, PipelineConfig
from .exceptions import PageErrorKind, PageProcessingError
from .image_processor import BaseImageProcessor, get_image_processor
from .inspector import PageInspector
from .models import ColorModel, Page, PageCharacteristics, PageResult, RecognitionStatus, SourceKind
from .ocr_backends.base import BaseOCREngine
from .pdf_processor import BasePDFProcessor, get_pdf_processor
from .preprocess import BaseCleaner, BaseDeskewer, ProjectionDeskewer, UnpaperCleaner
from .utils import is_nonempty_file
from .workspace import PageWorkspace

logger = logging.getLogger("parapdfa")


@dataclass
class Toolkit:
    """The external capabilities a page job relies on."""
    pdf: BasePDFProcessor
    images: BaseImageProcessor
    ocr: BaseOCREngine
    composer: HocrPdfComposer
    deskewer: Optional[BaseDeskewer] = None
    cleaner: Optional[BaseCleaner] = None


def _import_obj(dotted: str):
    mod_path, _, attr = dotted.rpartition(".")
    if not mod_path or not attr:
        raise ImportError(f"Invalid backend path, {dotted}")
    mod = importlib.import_module(mod_path)
    try:
        return getattr(mod, attr)
    except AttributeError as e:
        raise ImportError(f"Backend class not found, {dotted}") from e


def build_toolkit(config: PipelineConfig) -> Toolkit:
    EngineCls = _import_obj(config.ocr_backend)
    return Toolkit(
        pdf=get_pdf_processor(config.pdf_engine),
        images=get_image_processor(),
        ocr=EngineCls(**(config.ocr_backend_kwargs or {})),
        composer=HocrPdfComposer(),
        deskewer=ProjectionDeskewer(),
        cleaner=UnpaperCleaner(),
    )


def resolve_dpi(measured: int, oversampling_dpi: int, label: str = "Page", number: int = 0) -> int:
    """Working resolution of a page: oversampled when below the threshold."""
    if measured < oversampling_dpi:
        logger.warning(
            "%s %d: Low image resolution detected (%d dpi). Performing oversampling (%d dpi) to try to get better OCR results.",
            label, number, measured, oversampling_dpi,
        )
        return oversampling_dpi
    if measured < LOW_DPI_WARNING:
        logger.warning(
            "%s %d: Low image resolution detected (%d dpi). If needed, use oversampling to try to get better OCR results.",
            label, number, measured,
        )
    return measured


class PageTransformer:
    """
    Runs one page end to end: inspect, resolve dpi, extract, deskew, clean,
    recognize, compose, clean up.
    """

    def __init__(self, config: PipelineConfig, toolkit: Toolkit):
        self.config = config
        self.tools = toolkit
        self.inspector = PageInspector(toolkit.pdf, toolkit.images, config.default_dpi)

    def process(self, page: Page, workspace: PageWorkspace) -> PageResult:
        label = page.kind.label
        logger.info("Processing %s %d", label, page.number)

        chars = self.inspector.inspect(page, workspace)

        if chars.status is RecognitionStatus.HAS_EXISTING_TEXT:
            if self.config.skip_text:
                logger.warning("Page %d: Skipping processing because page contains text", page.number)
                return self._copy_verbatim(page, workspace)
            if not self.config.force_ocr:
                raise PageProcessingError(
                    page.number, PageErrorKind.ALREADY_HAS_TEXT,
                    "page already contains font data; use force-OCR to OCR it anyway or skip-text to keep it as is",
                )
            logger.warning("Page %d: OCRing anyway, assuming a default resolution of %d dpi", page.number, chars.dpi)
        elif chars.status is RecognitionStatus.AMBIGUOUS_EXTRACTION:
            logger.warning("Page %d: Continuing anyway, assuming a default resolution of %d dpi", page.number, chars.dpi)

        dpi = resolve_dpi(chars.dpi, self.config.oversampling_dpi, label, page.number)

        raster = self._extract(page, chars, dpi, workspace)
        image = raster
        if self.config.deskew:
            image = self._deskew(page, raster, chars.color_model, dpi, workspace)
        if self.config.clean:
            cleaned = self._clean(page, image, chars.color_model, dpi, workspace)
            if self.config.clean_to_pdf:
                image = cleaned

        hocr = self._recognize(page, image, dpi, workspace)

        if self.config.hocr_only:
            result = PageResult(page_number=page.number, pdf_path=None,
                                hocr_path=self._export_hocr(page, hocr), dpi=dpi)
        else:
            result = self._compose(page, hocr, image, dpi, workspace)

        if not self.config.keep_intermediates:
            workspace.remove_intermediates()
            if not self.config.hocr_only:
                result.hocr_path = None  # removed along with the intermediates
        return result

    # -----------------------------
    # Steps
    # -----------------------------
    def _copy_verbatim(self, page: Page, ws: PageWorkspace) -> PageResult:
        try:
            self.tools.pdf.copy_page(page.source_path, page.number, ws.ocred_pdf)
        except Exception as e:
            raise PageProcessingError(page.number, PageErrorKind.EXTRACTION_FAILED,
                                      f"Could not copy page from {page.source_path.name}, {e}") from e
        self._require_output(page, ws.ocred_pdf, PageErrorKind.EXTRACTION_FAILED, "page copy")
        return PageResult(page_number=page.number, pdf_path=ws.ocred_pdf, skipped=True)

    def _extract(self, page: Page, chars: PageCharacteristics, dpi: int, ws: PageWorkspace) -> Path:
        target = ws.raster(chars.color_model)
        logger.debug("%s %d: Extracting image as %s file (%d dpi)", page.kind.label, page.number, target.suffix, dpi)
        try:
            if page.kind is SourceKind.DOCUMENT_PAGE:
                self.tools.pdf.render_page(page.source_path, page.number, dpi, chars.color_model, target)
            else:
                self.tools.images.convert(page.source_path, target, chars.color_model, scale=dpi / chars.dpi)
        except Exception as e:
            raise PageProcessingError(
                page.number, PageErrorKind.EXTRACTION_FAILED,
                f"Could not extract {page.kind.label.lower()} as {target.suffix} from {page.source_path.name}, {e}",
            ) from e
        self._require_output(page, target, PageErrorKind.EXTRACTION_FAILED, "extraction")
        return target

    def _deskew(self, page: Page, src: Path, color_model: ColorModel, dpi: int, ws: PageWorkspace) -> Path:
        target = ws.deskewed(color_model)
        logger.debug("%s %d: Deskewing image", page.kind.label, page.number)
        try:
            self.tools.deskewer.deskew(src, target, dpi)
        except Exception as e:
            raise PageProcessingError(page.number, PageErrorKind.PREPROCESS_FAILED,
                                      f"Could not deskew {src.name}, {e}") from e
        self._require_output(page, target, PageErrorKind.PREPROCESS_FAILED, "deskew")
        return target

    def _clean(self, page: Page, src: Path, color_model: ColorModel, dpi: int, ws: PageWorkspace) -> Path:
        target = ws.cleaned(color_model)
        logger.debug("%s %d: Cleaning image", page.kind.label, page.number)
        try:
            self.tools.cleaner.clean(src, target, dpi)
        except Exception as e:
            raise PageProcessingError(page.number, PageErrorKind.PREPROCESS_FAILED,
                                      f"Could not clean {src.name}, {e}") from e
        self._require_output(page, target, PageErrorKind.PREPROCESS_FAILED, "clean")
        return target

    def _recognize(self, page: Page, image: Path, dpi: int, ws: PageWorkspace) -> Path:
        target = ws.hocr
        try:
            if page.hocr_path is not None:
                logger.debug("%s %d: Using existing OCR from %s", page.kind.label, page.number, page.hocr_path)
                shutil.copyfile(page.hocr_path, target)
            else:
                logger.debug("%s %d: Performing OCR", page.kind.label, page.number)
                self.tools.ocr.recognize(image, target, self.config.languages, dpi, self.config.tesseract_configs)
        except Exception as e:
            raise PageProcessingError(page.number, PageErrorKind.RECOGNITION_FAILED,
                                      f"Could not OCR file {image.name}, {e}") from e
        self._require_output(page, target, PageErrorKind.RECOGNITION_FAILED, "OCR")
        return target

    def _compose(self, page: Page, hocr: Path, image: Path, dpi: int, ws: PageWorkspace) -> PageResult:
        logger.debug("%s %d: Embedding text in PDF", page.kind.label, page.number)
        debug_pdf = None
        try:
            self.tools.composer.compose(hocr, image, dpi, ws.ocred_pdf)
            if self.config.debug:
                logger.debug("%s %d: Embedding text in PDF (debug page)", page.kind.label, page.number)
                debug_pdf = self.tools.composer.compose_debug(hocr, dpi, ws.debug_pdf)
        except Exception as e:
            raise PageProcessingError(page.number, PageErrorKind.COMPOSE_FAILED,
                                      f"Could not create PDF file from {hocr.name}, {e}") from e
        self._require_output(page, ws.ocred_pdf, PageErrorKind.COMPOSE_FAILED, "PDF synthesis")
        return PageResult(page_number=page.number, pdf_path=ws.ocred_pdf,
                          debug_pdf_path=debug_pdf, hocr_path=hocr, dpi=dpi)

    def _export_hocr(self, page: Page, hocr: Path) -> Path:
        out_dir = Path(self.config.hocr_output_dir)
        target = out_dir / f"{page.number:04d}.hocr"
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(hocr, target)
        except OSError as e:
            raise PageProcessingError(page.number, PageErrorKind.RECOGNITION_FAILED,
                                      f"Could not export {hocr.name} to {out_dir}, {e}") from e
        return target

    @staticmethod
    def _require_output(page: Page, path: Path, kind: PageErrorKind, step: str) -> None:
        if not is_nonempty_file(path):
            raise PageProcessingError(page.number, kind, f"{step} produced no output ({path.name})")
