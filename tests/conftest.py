from __future__ import annotations

import shutil
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from parapdfa.config import PipelineConfig
from parapdfa.image_processor import BaseImageProcessor
from parapdfa.models import ColorModel, ImageInfo, Page, SourceKind
from parapdfa.ocr_backends.base import BaseOCREngine
from parapdfa.pdf_processor import BasePDFProcessor
from parapdfa.preprocess import BaseCleaner, BaseDeskewer
from parapdfa.transformer import Toolkit

A4 = (595.0, 842.0)

HOCR_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
 <body>
  <div class="ocr_page" title="image {image}; bbox 0 0 100 50">
   <span class="ocr_line" title="bbox 10 10 90 30; baseline 0 -2">
    <span class="ocrx_word" title="bbox 10 10 40 30; x_wconf 95">page</span>
    <span class="ocrx_word" title="bbox 50 10 90 30; x_wconf 90">{number}</span>
   </span>
  </div>
 </body>
</html>
"""


def page_number_of(path: Path) -> int:
    """Page workspace files are named NNNN.<suffix>."""
    return int(Path(path).name.split(".")[0])


class FakeImageProcessor(BaseImageProcessor):
    def __init__(self, infos: Optional[Dict[str, ImageInfo]] = None) -> None:
        self.infos: Dict[str, ImageInfo] = dict(infos or {})
        self.converted: List[Tuple[str, ColorModel, float]] = []

    def read_info(self, path: Path) -> ImageInfo:
        return self.infos[Path(path).name]

    def page_size(self, path: Path) -> Tuple[float, float]:
        info = self.read_info(path)
        if not info.resolution:
            return float(info.width), float(info.height)
        return info.width * 72.0 / info.resolution, info.height * 72.0 / info.resolution

    def convert(self, src: Path, dest: Path, color_model: ColorModel, scale: float = 1.0) -> Path:
        self.converted.append((Path(src).name, color_model, scale))
        dest.write_bytes(b"P6 converted")
        return dest


class FakePDFProcessor(BasePDFProcessor):
    """A document whose pages each hold the images listed in `page_images`."""

    def __init__(
        self,
        images: FakeImageProcessor,
        sizes: Sequence[Tuple[float, float]] = (A4,),
        page_images: Optional[Dict[int, List[ImageInfo]]] = None,
        fonts: Optional[Dict[int, int]] = None,
    ) -> None:
        self.images = images
        self.sizes = list(sizes)
        self.page_images = page_images or {}
        self.fonts = fonts or {}
        self.rendered: List[Tuple[int, int, ColorModel]] = []
        self.copied: List[int] = []
        self.extracted: List[int] = []

    def page_sizes(self, file_path: Path) -> List[Tuple[float, float]]:
        return list(self.sizes)

    def count_fonts(self, file_path: Path, page_number: int) -> int:
        return self.fonts.get(page_number, 0)

    def extract_images(self, file_path: Path, page_number: int, dest_dir: Path) -> List[Path]:
        self.extracted.append(page_number)
        dest_dir.mkdir(parents=True, exist_ok=True)
        out = []
        for idx, info in enumerate(self.page_images.get(page_number, [])):
            target = dest_dir / f"p{page_number}-img-{idx:03d}.png"
            target.write_bytes(b"png")
            self.images.infos[target.name] = info
            out.append(target)
        return out

    def render_page(self, file_path: Path, page_number: int, dpi: int,
                    color_model: ColorModel, dest: Path) -> Path:
        self.rendered.append((page_number, dpi, color_model))
        dest.write_bytes(b"P5 rendered")
        return dest

    def copy_page(self, file_path: Path, page_number: int, dest: Path) -> Path:
        self.copied.append(page_number)
        dest.write_bytes(b"%PDF-1.4 copied")
        return dest


class FakeOCREngine(BaseOCREngine):
    def __init__(self, fail_pages: Sequence[int] = (), delays: Optional[Dict[int, float]] = None,
                 on_call=None) -> None:
        self.fail_pages = set(fail_pages)
        self.delays = delays or {}
        self.on_call = on_call
        self.calls: List[Tuple[str, int, Tuple[str, ...], Tuple[str, ...]]] = []

    def recognize(self, image_path: Path, dest: Path, languages: Sequence[str],
                  dpi: int, config_files: Sequence[str] = ()) -> Path:
        number = page_number_of(image_path)
        self.calls.append((Path(image_path).name, dpi, tuple(languages), tuple(config_files)))
        if self.on_call is not None:
            self.on_call(number)
        time.sleep(self.delays.get(number, 0.0))
        if number in self.fail_pages:
            raise RuntimeError("tesseract crashed")
        dest.write_text(HOCR_TEMPLATE.format(image=Path(image_path).name, number=number), encoding="utf-8")
        return dest


class FakeComposer:
    def __init__(self) -> None:
        self.composed: List[Tuple[str, int]] = []
        self.debug_composed: List[int] = []

    def compose(self, hocr_path: Path, image_path: Path, dpi: int, dest: Path) -> Path:
        self.composed.append((Path(image_path).name, dpi))
        dest.write_bytes(b"%PDF-1.4 ocred")
        return dest

    def compose_debug(self, hocr_path: Path, dpi: int, dest: Path) -> Path:
        self.debug_composed.append(page_number_of(hocr_path))
        dest.write_bytes(b"%PDF-1.4 debug")
        return dest


class CopyingDeskewer(BaseDeskewer):
    def deskew(self, src: Path, dest: Path, dpi: int) -> Path:
        shutil.copyfile(src, dest)
        return dest


class CopyingCleaner(BaseCleaner):
    def clean(self, src: Path, dest: Path, dpi: int) -> Path:
        shutil.copyfile(src, dest)
        return dest


def gray_a4(dpi: int = 300) -> ImageInfo:
    """An 8 bit gray scan of an A4 page at the given resolution."""
    return ImageInfo(width=round(8.27 * dpi), height=round(11.69 * dpi),
                     color_model=ColorModel.GRAY, depth=8)


def scanned_pages(count: int, source: Path) -> List[Page]:
    return [Page(n, source, *A4) for n in range(1, count + 1)]


@pytest.fixture
def make_toolkit():
    """
    Builds a Toolkit of fakes describing a scanned document of `pages` pages,
    each holding one gray A4 image at 300 dpi unless told otherwise.
    """
    def _make(pages: int = 1, page_images=None, fonts=None, fail_pages=(), delays=None,
              on_call=None, image_infos=None) -> Toolkit:
        images = FakeImageProcessor(image_infos)
        if page_images is None:
            page_images = {n: [gray_a4()] for n in range(1, pages + 1)}
        pdf = FakePDFProcessor(images, sizes=[A4] * pages, page_images=page_images, fonts=fonts)
        return Toolkit(
            pdf=pdf,
            images=images,
            ocr=FakeOCREngine(fail_pages=fail_pages, delays=delays, on_call=on_call),
            composer=FakeComposer(),
            deskewer=CopyingDeskewer(),
            cleaner=CopyingCleaner(),
        )
    return _make


@pytest.fixture
def config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(jobs=2, temp_dir=tmp_path / "tmp")


@pytest.fixture
def source_pdf(tmp_path: Path) -> Path:
    p = tmp_path / "scan.pdf"
    p.write_bytes(b"%PDF-1.4 scanned")
    return p


@pytest.fixture
def standalone_image(tmp_path: Path):
    def _make(name: str = "scan.png", **info) -> Tuple[Path, ImageInfo]:
        p = tmp_path / name
        p.write_bytes(b"png")
        defaults = dict(width=1240, height=1754, color_model=ColorModel.COLOR, depth=8)
        defaults.update(info)
        return p, ImageInfo(**defaults)
    return _make


def image_page(path: Path, info: ImageInfo, number: int = 1) -> Page:
    if info.resolution:
        w, h = info.width * 72.0 / info.resolution, info.height * 72.0 / info.resolution
    else:
        w, h = float(info.width), float(info.height)
    return Page(number, path, w, h, kind=SourceKind.STANDALONE_IMAGE)
