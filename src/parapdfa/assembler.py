# src/parapdfa/assembler.py
from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import PipelineConfig
from .exceptions import AssemblyError, ValidationInconclusiveError
from .models import PageResult, RunOutcome, ValidationVerdict
from .utils import is_nonempty_file, resolve_tool_cmd
from .workspace import RunWorkspace

logger = logging.getLogger("parapdfa")

Runner = Callable[..., subprocess.CompletedProcess]

_INVALID_MARKERS = [
    re.compile(r"ErrorMessage", re.IGNORECASE),
    re.compile(r"Status.*not valid", re.IGNORECASE),
    re.compile(r"Status.*not well-formed", re.IGNORECASE),
]
_PDFA1_PROFILE = re.compile(r"Profile:.*PDF/A-1", re.IGNORECASE)
_SUMMARY_LINE = re.compile(r"Status|Message", re.IGNORECASE)


def parse_validation_report(text: str) -> ValidationVerdict:
    """
    Verdict of a JHOVE (PDF-hul) report. Any error line or a missing
    PDF/A-1 profile makes the document invalid.
    """
    for marker in _INVALID_MARKERS:
        m = marker.search(text)
        if m:
            logger.debug("Validation report flags the document: %r", m.group(0))
            return ValidationVerdict.INVALID
    if not _PDFA1_PROFILE.search(text):
        logger.warning("PDF file profile is not PDF/A-1")
        return ValidationVerdict.INVALID
    return ValidationVerdict.VALID


def summary_lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if _SUMMARY_LINE.search(line)]


class GhostscriptPdfaWriter:
    """Concatenates single page PDFs into one PDF/A file with Ghostscript."""

    def __init__(self, cmd: Optional[str] = None, runner: Runner = subprocess.run):
        self.cmd = cmd
        self.runner = runner

    def build_args(self, inputs: Sequence[Path], output: Path) -> List[str]:
        return [
            self.cmd or resolve_tool_cmd("gs") or "gs",
            "-dQUIET", "-dPDFA", "-dBATCH", "-dNOPAUSE", "-dUseCIEColor",
            "-sProcessColorModel=DeviceCMYK", "-sDEVICE=pdfwrite", "-sPDFACompatibilityPolicy=2",
            f"-sOutputFile={output}",
            *[str(p) for p in inputs],
        ]

    def write(self, inputs: Sequence[Path], output: Path) -> Path:
        args = self.build_args(inputs, output)
        logger.debug("Running %s", " ".join(args))
        try:
            proc = self.runner(args, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE, text=True)
        except OSError as e:
            raise AssemblyError(f"Could not run Ghostscript, {e}") from e
        if proc.returncode != 0:
            raise AssemblyError(
                f"Could not concatenate all pages to the final PDF/A file "
                f"(gs exited with {proc.returncode}: {(proc.stderr or '').strip()})"
            )
        if not is_nonempty_file(output):
            raise AssemblyError(f"Ghostscript produced no output file {output}")
        return output


class JhoveValidator:
    """
    Runs JHOVE's PDF-hul module on a file and returns the textual report.
    Uses `java -jar <jar>` when a jar is configured, the `jhove` launcher otherwise.
    """

    def __init__(self, jar: Optional[Path] = None, config: Optional[Path] = None,
                 runner: Runner = subprocess.run, java_cmd: Optional[str] = None):
        self.jar = jar
        self.config = config
        self.runner = runner
        self.java_cmd = java_cmd

    def build_args(self, pdf: Path) -> List[str]:
        if self.jar:
            args = [self.java_cmd or resolve_tool_cmd("java") or "java", "-jar", str(self.jar)]
        else:
            launcher = resolve_tool_cmd("jhove")
            if launcher is None:
                raise ValidationInconclusiveError("No JHOVE jar configured and no jhove launcher found")
            args = [launcher]
        if self.config:
            args += ["-c", str(self.config)]
        return args + ["-m", "PDF-hul", str(pdf)]

    def validate(self, pdf: Path, report_path: Path) -> str:
        args = self.build_args(pdf)
        logger.debug("Running %s", " ".join(args))
        try:
            proc = self.runner(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except OSError as e:
            raise ValidationInconclusiveError(f"Could not run the PDF/A validator, {e}") from e
        report = proc.stdout or ""
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(report, encoding="utf-8")
        if proc.returncode != 0 or not report.strip():
            raise ValidationInconclusiveError(
                f"PDF/A validator failed (exit {proc.returncode}): {(proc.stderr or '').strip()}"
            )
        return report


class DocumentAssembler:
    """
    Merges the per page PDFs into the final PDF/A document and certifies it.
    """

    def __init__(self, config: PipelineConfig,
                 writer: Optional[GhostscriptPdfaWriter] = None,
                 validator: Optional[JhoveValidator] = None):
        self.config = config
        self.writer = writer or GhostscriptPdfaWriter()
        self.validator = validator or JhoveValidator(config.jhove_jar, config.jhove_config)

    @staticmethod
    def ordered_inputs(results: Sequence[PageResult]) -> List[Path]:
        inputs: List[Path] = []
        for r in sorted(results, key=lambda r: r.page_number):
            if r.pdf_path is None:
                raise AssemblyError(f"Page {r.page_number} has no PDF to assemble")
            inputs.append(r.pdf_path)
            if r.debug_pdf_path is not None:
                inputs.append(r.debug_pdf_path)
        return inputs

    def assemble(self, results: Sequence[PageResult], output: Path,
                 workspace: Optional[RunWorkspace] = None) -> RunOutcome:
        if not results:
            raise AssemblyError("No pages to assemble")
        output = Path(output)
        inputs = self.ordered_inputs(results)

        logger.debug("Output file: Concatenating all pages to the final PDF/A file")
        output.parent.mkdir(parents=True, exist_ok=True)
        self.writer.write(inputs, output)

        outcome = RunOutcome(results=list(results), output_path=output)
        if self.config.skip_validation:
            logger.info("Output file: PDF/A validation skipped")
            return outcome

        logger.debug("Output file: Checking compliance to PDF/A standard")
        report_path = workspace.validation_log if workspace else output.with_suffix(".validation.log")
        report = self.validator.validate(output, report_path)
        for line in summary_lines(report):
            logger.info("%s", line)
        logger.debug("The full validation log is available here: %s", report_path)

        outcome.verdict = parse_validation_report(report)
        if outcome.verdict is ValidationVerdict.VALID:
            logger.info("Output file: The generated PDF/A file is VALID")
        else:
            logger.error("Output file: The generated PDF/A file is INVALID")
        return outcome
