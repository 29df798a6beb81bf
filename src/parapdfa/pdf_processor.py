# src/parapdfa/pdf_processor.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Tuple

import fitz  # PyMuPDF
from PIL import Image

from .models import ColorModel

logger = logging.getLogger("parapdfa")


# --- Step 1, interface ---
class BasePDFProcessor(ABC):
    """
    Interface for any PDF processing engine.
    Page numbers are 1-based everywhere in this interface.
    """

    @abstractmethod
    def page_sizes(self, file_path: Path) -> List[Tuple[float, float]]:
        """Width and height of every page, in points."""
        raise NotImplementedError

    @abstractmethod
    def count_fonts(self, file_path: Path, page_number: int) -> int:
        """Number of font entries used by one page."""
        raise NotImplementedError

    @abstractmethod
    def extract_images(self, file_path: Path, page_number: int, dest_dir: Path) -> List[Path]:
        """Writes every image embedded in a page to dest_dir and returns their paths."""
        raise NotImplementedError

    @abstractmethod
    def render_page(self, file_path: Path, page_number: int, dpi: int,
                    color_model: ColorModel, dest: Path) -> Path:
        """Rasterizes one page at dpi into a PNM file matching color_model."""
        raise NotImplementedError

    @abstractmethod
    def copy_page(self, file_path: Path, page_number: int, dest: Path) -> Path:
        """Writes one page, untouched, as a single page PDF."""
        raise NotImplementedError


# --- Step 2, concrete implementation with PyMuPDF ---
class PyMuPDFProcessor(BasePDFProcessor):
    """PDF processor that uses PyMuPDF."""

    def page_sizes(self, file_path: Path) -> List[Tuple[float, float]]:
        with fitz.open(file_path) as doc:
            if not doc.is_pdf:
                raise ValueError(f"{file_path} is not a PDF file")
            return [(page.rect.width, page.rect.height) for page in doc]

    def count_fonts(self, file_path: Path, page_number: int) -> int:
        with fitz.open(file_path) as doc:
            page = doc.load_page(page_number - 1)
            # entry: (xref, ext, type, basefont, name, encoding)
            fonts = [f for f in page.get_fonts() if f[3] or f[4]]
            logger.debug("Page %d: %d font(s) found", page_number, len(fonts))
            return len(fonts)

    def extract_images(self, file_path: Path, page_number: int, dest_dir: Path) -> List[Path]:
        dest_dir.mkdir(parents=True, exist_ok=True)
        out: List[Path] = []
        with fitz.open(file_path) as doc:
            page = doc.load_page(page_number - 1)
            # entry: (xref, smask, width, height, bpc, colorspace, ...)
            for idx, img in enumerate(page.get_images(full=True)):
                xref, bpc = img[0], img[4]
                pix = fitz.Pixmap(doc, xref)
                if pix.alpha:
                    pix = fitz.Pixmap(pix, 0)
                if pix.n > 3:
                    pix = fitz.Pixmap(fitz.csRGB, pix)

                target = dest_dir / f"img-{idx:03d}.png"
                if bpc == 1 and pix.n == 1:
                    # keep bilevel images bilevel so the color model survives
                    im = Image.frombytes("L", (pix.width, pix.height), pix.samples)
                    im.convert("1", dither=Image.Dither.NONE).save(target)
                else:
                    pix.save(str(target))
                out.append(target)
        return out

    def render_page(self, file_path: Path, page_number: int, dpi: int,
                    color_model: ColorModel, dest: Path) -> Path:
        # Prefer matrix-based scaling (consistent across PyMuPDF versions)
        zoom = dpi / 72.0
        colorspace = fitz.csRGB if color_model is ColorModel.COLOR else fitz.csGRAY
        with fitz.open(file_path) as doc:
            page = doc.load_page(page_number - 1)
            pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), colorspace=colorspace, alpha=False)
            mode = "L" if pix.n == 1 else "RGB"
            im = Image.frombytes(mode, (pix.width, pix.height), pix.samples)

        if color_model is ColorModel.MONOCHROME:
            im = im.convert("1", dither=Image.Dither.NONE)
        dest.parent.mkdir(parents=True, exist_ok=True)
        im.save(dest)
        return dest

    def copy_page(self, file_path: Path, page_number: int, dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with fitz.open(file_path) as src, fitz.open() as out:
            out.insert_pdf(src, from_page=page_number - 1, to_page=page_number - 1)
            out.save(str(dest))
        return dest


# --- Step 3, factory ---
def get_pdf_processor(engine_name: str = "pymupdf") -> BasePDFProcessor:
    """
    Create a PDF processor by name.
    """
    name = (engine_name or "").lower()
    if name == "pymupdf":
        return PyMuPDFProcessor()
    raise ValueError(f"Unknown PDF engine, '{engine_name}'. Supported engines, ['pymupdf']")
