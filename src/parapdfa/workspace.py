# src/parapdfa/workspace.py
from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .exceptions import FileAccessError
from .models import ColorModel

logger = logging.getLogger("parapdfa")

_PNM_EXT = {
    ColorModel.COLOR: "ppm",
    ColorModel.GRAY: "pgm",
    ColorModel.MONOCHROME: "pbm",
}


@dataclass(frozen=True)
class PageWorkspace:
    """
    Disjoint folder owned by one page. Every artifact of the page lives here.
    """
    root: Path
    page_number: int

    @property
    def prefix(self) -> str:
        return f"{self.page_number:04d}"

    def _p(self, suffix: str) -> Path:
        return self.root / f"{self.prefix}.{suffix}"

    @property
    def extracted_dir(self) -> Path:
        return self.root / "extracted"

    def raster(self, color_model: ColorModel) -> Path:
        return self._p(_PNM_EXT[color_model])

    def deskewed(self, color_model: ColorModel) -> Path:
        return self._p(f"deskewed.{_PNM_EXT[color_model]}")

    def cleaned(self, color_model: ColorModel) -> Path:
        return self._p(f"cleaned.{_PNM_EXT[color_model]}")

    @property
    def hocr(self) -> Path:
        return self._p("hocr")

    @property
    def ocred_pdf(self) -> Path:
        return self._p("ocred.pdf")

    @property
    def debug_pdf(self) -> Path:
        return self._p("ocred.todebug.pdf")

    def final_artifacts(self) -> List[Path]:
        return [self.ocred_pdf, self.debug_pdf]

    def remove_intermediates(self) -> None:
        """Delete everything but the result PDFs."""
        keep = set(self.final_artifacts())
        for p in self.root.iterdir():
            if p in keep:
                continue
            if p.is_dir():
                shutil.rmtree(p, ignore_errors=True)
            else:
                p.unlink(missing_ok=True)


class RunWorkspace:
    """
    Temporary folder of a run, handing out one PageWorkspace per page.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    @classmethod
    def create(cls, parent: Path, prefix: str = "parapdfa.") -> "RunWorkspace":
        try:
            Path(parent).mkdir(parents=True, exist_ok=True)
            root = tempfile.mkdtemp(prefix=prefix, dir=str(parent))
        except OSError as e:
            raise FileAccessError(
                f"Could not create folder for temporary files in {parent}. "
                f"Please ensure you have sufficient rights ({e})"
            ) from e
        logger.debug("Created temporary folder: %s", root)
        return cls(Path(root))

    def for_page(self, page_number: int) -> PageWorkspace:
        page_root = self.root / f"{page_number:04d}"
        page_root.mkdir(parents=True, exist_ok=True)
        return PageWorkspace(root=page_root, page_number=page_number)

    @property
    def validation_log(self) -> Path:
        return self.root / "pdf_validation.log"

    def remove(self) -> None:
        logger.debug("Deleting temporary files in %s", self.root)
        shutil.rmtree(self.root, ignore_errors=True)
