# src/parapdfa/composer.py
from __future__ import annotations

import io
import logging
from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image

from .hocr import BBox, HocrPage, parse_hocr

logger = logging.getLogger("parapdfa")

INVISIBLE = 3  # PDF text render mode "neither fill nor stroke"


class HocrPdfComposer:
    """
    Builds single page PDFs from an hOCR file: the page image with the words
    laid over it as invisible text, or (debug) the words alone, visible.
    """

    def __init__(self, fontname: str = "helv"):
        self.fontname = fontname

    def compose(self, hocr_path: Path, image_path: Path, dpi: int, dest: Path) -> Path:
        hocr = parse_hocr(Path(hocr_path))
        with Image.open(image_path) as im:
            w_px, h_px = im.size
            buf = io.BytesIO()
            im.save(buf, format="PNG")

        scale = 72.0 / dpi
        with fitz.open() as doc:
            page = doc.new_page(width=w_px * scale, height=h_px * scale)
            page.insert_image(page.rect, stream=buf.getvalue())
            placed = self._place_words(page, hocr, scale, visible=False)
            dest.parent.mkdir(parents=True, exist_ok=True)
            doc.save(str(dest), garbage=3, deflate=True)
        logger.debug("Composed %s with %d of %d words", dest.name, placed, len(hocr.words))
        return dest

    def compose_debug(self, hocr_path: Path, dpi: int, dest: Path) -> Path:
        hocr = parse_hocr(Path(hocr_path))
        bbox = hocr.bbox or _union([line.bbox for line in hocr.lines])
        if bbox is None or bbox.width <= 0 or bbox.height <= 0:
            raise ValueError(f"Cannot size debug page, no bounding box in {hocr_path}")

        scale = 72.0 / dpi
        with fitz.open() as doc:
            page = doc.new_page(width=bbox.x1 * scale, height=bbox.y1 * scale)
            self._place_words(page, hocr, scale, visible=True)
            dest.parent.mkdir(parents=True, exist_ok=True)
            doc.save(str(dest), garbage=3, deflate=True)
        return dest

    def _place_words(self, page, hocr: HocrPage, scale: float, visible: bool) -> int:
        placed = 0
        for line in hocr.lines:
            fontsize = max(1.0, line.bbox.height * scale)
            for word in line.words:
                box_width = word.bbox.width * scale
                text_width = fitz.get_text_length(word.text, fontname=self.fontname, fontsize=fontsize)
                if box_width <= 0 or text_width <= 0:
                    continue
                origin = fitz.Point(word.bbox.x0 * scale, line.baseline_at(word.bbox.x0) * scale)
                # stretch horizontally so the text spans exactly the word box
                morph = (origin, fitz.Matrix(box_width / text_width, 1))
                page.insert_text(
                    origin,
                    word.text,
                    fontsize=fontsize,
                    fontname=self.fontname,
                    render_mode=0 if visible else INVISIBLE,
                    color=(0, 0, 1) if visible else None,
                    morph=morph,
                )
                if visible:
                    rect = fitz.Rect(word.bbox.x0 * scale, word.bbox.y0 * scale,
                                     word.bbox.x1 * scale, word.bbox.y1 * scale)
                    page.draw_rect(rect, color=(1, 0, 0), width=0.3)
                placed += 1
        return placed


def _union(boxes) -> BBox | None:
    boxes = list(boxes)
    if not boxes:
        return None
    return BBox(
        min(b.x0 for b in boxes),
        min(b.y0 for b in boxes),
        max(b.x1 for b in boxes),
        max(b.y1 for b in boxes),
    )
