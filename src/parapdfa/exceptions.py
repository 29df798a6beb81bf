# parapdfa/exceptions.py
from __future__ import annotations

from enum import Enum, IntEnum


class ExitCode(IntEnum):
    """Process exit status, one per failure category."""
    OK = 0
    BAD_ARGS = 1
    BAD_INPUT_FILE = 2
    MISSING_DEPENDENCY = 3
    INVALID_OUTPUT_PDFA = 4
    FILE_ACCESS_ERROR = 5
    OTHER_ERROR = 15


class PageErrorKind(str, Enum):
    ALREADY_HAS_TEXT = "already_has_text"
    AMBIGUOUS_EXTRACTION = "ambiguous_extraction"
    EXTRACTION_FAILED = "extraction_failed"
    PREPROCESS_FAILED = "preprocess_failed"
    RECOGNITION_FAILED = "recognition_failed"
    COMPOSE_FAILED = "compose_failed"


class ParaPDFAError(Exception):
    """Base exception for the parapdfa library."""
    exit_code: ExitCode = ExitCode.OTHER_ERROR


class BadArgumentsError(ParaPDFAError):
    exit_code = ExitCode.BAD_ARGS


class BadInputFileError(ParaPDFAError):
    exit_code = ExitCode.BAD_INPUT_FILE


class MissingDependencyError(ParaPDFAError):
    exit_code = ExitCode.MISSING_DEPENDENCY


class FileAccessError(ParaPDFAError):
    exit_code = ExitCode.FILE_ACCESS_ERROR


class PageProcessingError(ParaPDFAError):
    """Raised when a single page fails to process."""

    def __init__(self, page_number: int, kind: PageErrorKind, message: str):
        super().__init__(page_number, kind, message)
        self.page_number = page_number
        self.kind = PageErrorKind(kind)
        self.message = message

    @property
    def exit_code(self) -> ExitCode:  # type: ignore[override]
        if self.kind is PageErrorKind.ALREADY_HAS_TEXT:
            return ExitCode.BAD_INPUT_FILE
        return ExitCode.OTHER_ERROR

    def __str__(self) -> str:
        return f"Page {self.page_number}: {self.kind.value}, {self.message}"


class AssemblyError(ParaPDFAError):
    """Raised when the per-page PDFs cannot be merged into the PDF/A output."""


class ValidationInconclusiveError(ParaPDFAError):
    """Raised when the PDF/A validator could not produce a report."""


class RunInterrupted(ParaPDFAError):
    """Raised when a shutdown signal stopped the run before it completed."""
