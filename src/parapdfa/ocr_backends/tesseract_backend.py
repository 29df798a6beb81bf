# parapdfa/ocr_backends/tesseract_backend.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import logging
import re
import shlex

import pytesseract as pt

from .base import BaseOCREngine
from ..utils import resolve_tool_cmd

logger = logging.getLogger("parapdfa")


def _as_int(x, default: Optional[int]) -> Optional[int]:
    if x is None:
        return default
    try:
        if isinstance(x, str):
            x = x.strip().rstrip(",}] ")
        return int(x)
    except Exception:
        m = re.search(r"-?\d+", str(x))
        return int(m.group()) if m else default


# Map common two-letter codes to Tesseract's traineddata names
_TESS_LANG_MAP = {
    "en": "eng",
    "de": "deu",
    "fr": "fra",
    "es": "spa",
    "it": "ita",
    "pt": "por",
    "nl": "nld",
    "vi": "vie",
}


def to_tesseract_langs(languages: Sequence[str]) -> str:
    """
    Accepts ["eng", "deu"], ["eng+deu"] or two-letter codes; keeps the
    given order since Tesseract treats the first language as primary.
    """
    codes: List[str] = []
    for entry in languages:
        for part in str(entry).split("+"):
            part = part.strip().lower()
            if not part:
                continue
            code = _TESS_LANG_MAP.get(part, part)
            if code not in codes:
                codes.append(code)
    return "+".join(codes) or "eng"


class TesseractHocrEngine(BaseOCREngine):
    """
    Pytesseract-based backend producing hOCR.

    Kwargs supported (all optional):
      - tesseract_cmd: full path to tesseract binary
      - tessdata_dir: path to the tessdata directory
      - oem: 0..3
      - psm: page segmentation mode (Tesseract's default when unset)
      - extra_config: str of extra flags (appended to config string)
      - timeout: seconds before a page is abandoned (0 = no limit)
    """

    def __init__(self, **kwargs: Dict[str, Any]):
        k = dict(kwargs)  # don't mutate caller's dict

        # Stored rather than applied globally: the engine is pickled into worker processes
        self.tesseract_cmd = str(k.pop("tesseract_cmd", None) or resolve_tool_cmd("tesseract") or "tesseract")
        self.tessdata_dir = k.pop("tessdata_dir", None)
        self.oem = _as_int(k.pop("oem", None), None)
        self.psm = _as_int(k.pop("psm", None), None)
        self.extra_config = str(k.pop("extra_config", "")).strip()
        self.timeout = _as_int(k.pop("timeout", 0), 0)
        if k:
            logger.debug("Ignoring unknown tesseract options: %s", ", ".join(sorted(k)))

    def build_config(self, dpi: int, config_files: Sequence[str] = ()) -> str:
        parts = [f"--dpi {int(dpi)}"]
        if self.tessdata_dir:
            parts.append(f"--tessdata-dir {shlex.quote(str(self.tessdata_dir))}")
        if self.oem is not None:
            parts.append(f"--oem {self.oem}")
        if self.psm is not None:
            parts.append(f"--psm {self.psm}")
        if self.extra_config:
            parts.append(self.extra_config)
        # config files must come last on the tesseract command line
        parts.extend(shlex.quote(c) for c in config_files)
        return " ".join(parts)

    def recognize(self, image_path: Path, dest: Path, languages: Sequence[str],
                  dpi: int, config_files: Sequence[str] = ()) -> Path:
        pt.pytesseract.tesseract_cmd = self.tesseract_cmd
        hocr = pt.image_to_pdf_or_hocr(
            str(image_path),
            lang=to_tesseract_langs(languages),
            config=self.build_config(dpi, config_files),
            extension="hocr",
            timeout=self.timeout,
        )
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(hocr)
        return dest
