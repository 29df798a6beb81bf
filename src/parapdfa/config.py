# parapdfa/config.py
from dataclasses import dataclass, field, asdict, replace
from pathlib import Path
from typing import Tuple, Dict, Any, Optional
import os
import tempfile

from .exceptions import BadArgumentsError

DEFAULT_DPI = 300
LOW_DPI_WARNING = 200


def default_jobs() -> int:
    return max(1, os.cpu_count() or 1)


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration snapshot shared by every page job of a parapdfa run."""
    languages: Tuple[str, ...] = ("eng",)
    jobs: int = field(default_factory=default_jobs)

    # pages that already carry fonts
    force_ocr: bool = False
    skip_text: bool = False

    oversampling_dpi: int = 0  # 0 disables oversampling
    default_dpi: int = DEFAULT_DPI

    deskew: bool = False
    clean: bool = False
    clean_to_pdf: bool = False  # embed the cleaned image instead of the deskewed one

    debug: bool = False
    keep_temporaries: bool = False
    tesseract_configs: Tuple[str, ...] = ()

    hocr_only: bool = False
    hocr_output_dir: Optional[Path] = None
    use_existing_hocr: bool = False

    skip_validation: bool = False
    jhove_jar: Optional[Path] = None
    jhove_config: Optional[Path] = None

    ocr_backend: str = "parapdfa.ocr_backends.tesseract_backend.TesseractHocrEngine"
    ocr_backend_kwargs: Dict[str, Any] = field(default_factory=dict)
    pdf_engine: str = "pymupdf"

    temp_dir: Path = Path(tempfile.gettempdir())

    @property
    def keep_intermediates(self) -> bool:
        return self.keep_temporaries or self.debug

    def validate(self) -> "PipelineConfig":
        if self.hocr_only and self.skip_text:
            raise BadArgumentsError("Options hOCR-only and skip-text are mutually exclusive; choose one or the other")
        if self.hocr_only and self.use_existing_hocr:
            raise BadArgumentsError("Options hOCR-only and existing hOCR files are mutually exclusive; choose one or the other")
        if self.force_ocr and self.skip_text:
            raise BadArgumentsError("Options force-OCR and skip-text are mutually exclusive; choose one or the other")
        if self.force_ocr and self.use_existing_hocr:
            raise BadArgumentsError("Options force-OCR and existing hOCR files are mutually exclusive; choose one or the other")
        if self.hocr_only and self.hocr_output_dir is None:
            raise BadArgumentsError("hOCR-only mode needs an output folder")
        if not self.languages:
            raise BadArgumentsError("At least one OCR language is required")
        if self.jobs < 1:
            raise BadArgumentsError(f"Number of jobs must be at least 1, got {self.jobs}")
        if self.oversampling_dpi < 0:
            raise BadArgumentsError(f"Oversampling dpi cannot be negative, got {self.oversampling_dpi}")
        if self.default_dpi < 1:
            raise BadArgumentsError(f"Default dpi must be at least 1, got {self.default_dpi}")
        return self

    def to_dict(self):
        """Converts config to a dictionary suitable for multiprocessing (pickling)."""
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, Path):
                d[key] = str(value)
            elif isinstance(value, tuple):
                d[key] = list(value)
        return d

    @classmethod
    def from_dict(cls, config_dict: dict):
        d = dict(config_dict)

        # normalize path-like fields
        for key in ["hocr_output_dir", "jhove_jar", "jhove_config", "temp_dir"]:
            if key in d and isinstance(d[key], str):
                d[key] = Path(d[key])

        # languages may arrive as "eng+deu" or as a list
        langs = d.get("languages")
        if isinstance(langs, str):
            d["languages"] = tuple(part for part in langs.split("+") if part)
        elif langs is not None:
            d["languages"] = tuple(langs)
        if "tesseract_configs" in d and d["tesseract_configs"] is not None:
            d["tesseract_configs"] = tuple(d["tesseract_configs"])

        # allow explicit None to mean use default
        for key in ["jobs", "oversampling_dpi", "default_dpi", "temp_dir", "tesseract_configs", "languages"]:
            if d.get(key) is None:
                d.pop(key, None)

        cfg = cls(**d)

        # debug mode keeps everything around for inspection
        if cfg.debug and not cfg.keep_temporaries:
            cfg = replace(cfg, keep_temporaries=True)
        # extracting hOCR only means every page is OCRed, text layer or not
        if cfg.hocr_only and not cfg.force_ocr:
            cfg = replace(cfg, force_ocr=True)

        return cfg
