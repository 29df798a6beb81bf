# parapdfa/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .exceptions import PageErrorKind


class SourceKind(str, Enum):
    DOCUMENT_PAGE = "page"
    STANDALONE_IMAGE = "image"

    @property
    def label(self) -> str:
        return "Page" if self is SourceKind.DOCUMENT_PAGE else "Image"


class ColorModel(str, Enum):
    COLOR = "color"
    GRAY = "gray"
    MONOCHROME = "monochrome"


class RecognitionStatus(str, Enum):
    NO_EXISTING_TEXT = "no_existing_text"
    HAS_EXISTING_TEXT = "has_existing_text"
    AMBIGUOUS_EXTRACTION = "ambiguous_extraction"


class ValidationVerdict(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    NOT_ATTEMPTED = "not_attempted"


@dataclass(frozen=True)
class Page:
    """A single page of the input, numbered from 1 in document order."""
    number: int
    source_path: Path
    width_pt: float
    height_pt: float
    kind: SourceKind = SourceKind.DOCUMENT_PAGE
    # Recognition already performed elsewhere
    hocr_path: Optional[Path] = None


@dataclass(frozen=True)
class ImageInfo:
    """What the metadata reader knows about a raster file."""
    width: int
    height: int
    color_model: ColorModel
    depth: int
    resolution: Optional[float] = None
    resolution_unit: str = "inch"  # or "cm"


@dataclass(frozen=True)
class PageCharacteristics:
    dpi: int
    color_model: ColorModel
    depth: int
    status: RecognitionStatus = RecognitionStatus.NO_EXISTING_TEXT


@dataclass
class PageResult:
    """Final artifacts of one page, kept in the page workspace."""
    page_number: int
    pdf_path: Optional[Path]
    debug_pdf_path: Optional[Path] = None
    hocr_path: Optional[Path] = None
    dpi: Optional[int] = None
    skipped: bool = False


@dataclass
class PageOutcome:
    """What a worker hands back for one page: a result or an error."""
    page_number: int
    result: Optional[PageResult] = None
    error_kind: Optional[PageErrorKind] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunOutcome:
    """Aggregated output of a run."""
    results: List[PageResult] = field(default_factory=list)
    verdict: ValidationVerdict = ValidationVerdict.NOT_ATTEMPTED
    output_path: Optional[Path] = None
