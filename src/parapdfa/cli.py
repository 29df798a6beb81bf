# src/parapdfa/cli.py
from __future__ import annotations

import argparse
import logging
import multiprocessing as mp
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

import pytesseract as pt

from . import __version__
from .assembler import DocumentAssembler
from .config import DEFAULT_DPI, PipelineConfig
from .exceptions import (
    BadArgumentsError,
    BadInputFileError,
    ExitCode,
    MissingDependencyError,
    ParaPDFAError,
)
from .image_processor import BaseImageProcessor, get_image_processor
from .logger import configure_worker_logging, setup_logging, verbosity_to_level
from .models import Page, SourceKind, ValidationVerdict
from .ocr_backends.tesseract_backend import to_tesseract_langs
from .pdf_processor import BasePDFProcessor, get_pdf_processor
from .scheduler import PageScheduler
from .transformer import Toolkit, build_toolkit
from .utils import resolve_tool_cmd, run_prefix
from .workspace import RunWorkspace

__all__ = ["collect_pages", "check_dependencies", "run_pipeline", "main"]

logger = logging.getLogger("parapdfa")


# -------------------------------
# Input discovery
# -------------------------------

def _check_input_files(paths: Sequence[Path]) -> None:
    for p in paths:
        if not p.is_file():
            raise BadInputFileError(f"The input file '{p}' does not exist")


def collect_pages(
    inputs: Sequence[Path],
    images: bool = False,
    hocr_files: Optional[Sequence[Path]] = None,
    pdf_processor: Optional[BasePDFProcessor] = None,
    image_processor: Optional[BaseImageProcessor] = None,
) -> List[Page]:
    """
    Turns the command line inputs into numbered pages: every page of a single
    PDF, or one page per image (in the order given) with `images`.
    """
    inputs = [Path(p) for p in inputs]
    if not inputs:
        raise BadArgumentsError("No input file given")
    _check_input_files(inputs)

    pages: List[Page] = []
    if images:
        image_processor = image_processor or get_image_processor()
        for number, path in enumerate(inputs, start=1):
            try:
                width, height = image_processor.page_size(path)
            except Exception as e:
                raise BadInputFileError(f"'{path}' is not a readable image ({e})") from e
            pages.append(Page(number, path, width, height, kind=SourceKind.STANDALONE_IMAGE))
    else:
        if len(inputs) != 1:
            raise BadInputFileError(
                f"Exactly one PDF input is expected ({len(inputs)} given); use --images for a list of images"
            )
        pdf_processor = pdf_processor or get_pdf_processor()
        source = inputs[0]
        try:
            sizes = pdf_processor.page_sizes(source)
        except Exception as e:
            raise BadInputFileError(f"Could not read PDF file '{source}' ({e})") from e
        if not sizes:
            raise BadInputFileError(f"PDF file '{source}' has no pages")
        pages = [Page(number, source, w, h) for number, (w, h) in enumerate(sizes, start=1)]

    if hocr_files:
        hocr_files = [Path(p) for p in hocr_files]
        _check_input_files(hocr_files)
        if len(hocr_files) != len(pages):
            raise BadArgumentsError(
                f"{len(hocr_files)} hOCR files given for {len(pages)} pages; one per page is required"
            )
        pages = [
            Page(p.number, p.source_path, p.width_pt, p.height_pt, kind=p.kind, hocr_path=h)
            for p, h in zip(pages, hocr_files)
        ]

    logger.info("Found %d pages to process", len(pages))
    return pages


# -------------------------------
# Preflight
# -------------------------------

def _installed_languages(tesseract_cmd: str) -> List[str]:
    pt.pytesseract.tesseract_cmd = tesseract_cmd
    return list(pt.get_languages(config=""))


def check_dependencies(
    config: PipelineConfig,
    pages: Sequence[Page],
    which: Callable[[str], Optional[str]] = resolve_tool_cmd,
    list_languages: Callable[[str], List[str]] = _installed_languages,
) -> None:
    """Fails early when an external tool the run will need is missing."""
    logger.debug("Checking if all dependencies are installed")

    def require(tool: str, hint: str) -> str:
        cmd = which(tool)
        if not cmd:
            raise MissingDependencyError(f"Please install {hint}. Exiting...")
        logger.debug("Using %s at %s", tool, cmd)
        return cmd

    needs_ocr = any(p.hocr_path is None for p in pages)
    if needs_ocr:
        tesseract = require("tesseract", "tesseract and tesseract-data")
        try:
            installed = set(list_languages(tesseract))
        except Exception as e:
            raise MissingDependencyError(f"Could not list the languages of tesseract ({e})") from e
        for lang in to_tesseract_langs(config.languages).split("+"):
            if lang not in installed:
                raise BadArgumentsError(
                    f"The language '{lang}' is not supported by the current version of Tesseract. "
                    f"Installed languages: {' '.join(sorted(installed))}"
                )
    if config.clean:
        require("unpaper", "unpaper")
    if config.hocr_only:
        return
    require("gs", "ghostscript")
    if not config.skip_validation:
        if config.jhove_jar:
            require("java", "a Java runtime")
            if not Path(config.jhove_jar).is_file():
                raise MissingDependencyError(f"JHOVE jar not found at {config.jhove_jar}")
        else:
            require("jhove", "JHOVE (or pass --jhove-jar)")


# -------------------------------
# Pipeline
# -------------------------------

def run_pipeline(
    config: PipelineConfig,
    inputs: Sequence[Path],
    output: Path,
    *,
    images: bool = False,
    hocr_files: Optional[Sequence[Path]] = None,
    toolkit: Optional[Toolkit] = None,
    assembler: Optional[DocumentAssembler] = None,
    context: Any = None,
    log_queue: Any = None,
    show_progress: bool = True,
    preflight: bool = True,
) -> ExitCode:
    """
    Runs a whole conversion: discover pages, process them in parallel,
    assemble and validate the PDF/A. Returns the exit code of the run;
    failures raise a ParaPDFAError carrying theirs.
    """
    output = Path(output)
    if not config.hocr_only and output.exists():
        logger.warning("The output file already exists. Exiting...")
        return ExitCode.OK

    toolkit = toolkit or build_toolkit(config)
    pages = collect_pages(inputs, images=images, hocr_files=hocr_files,
                          pdf_processor=toolkit.pdf, image_processor=toolkit.images)
    if preflight:
        check_dependencies(config, pages)

    workspace = RunWorkspace.create(config.temp_dir, run_prefix(Path(inputs[0])))
    try:
        scheduler = PageScheduler(config, toolkit, workspace, context=context,
                                  log_queue=log_queue, show_progress=show_progress)
        results = scheduler.run(pages)

        if config.hocr_only:
            logger.info("Output file: %d hOCR files written to %s", len(results), config.hocr_output_dir)
            return ExitCode.OK

        assembler = assembler or DocumentAssembler(config)
        outcome = assembler.assemble(results, output, workspace)
        if outcome.verdict is ValidationVerdict.INVALID:
            return ExitCode.INVALID_OUTPUT_PDFA
        return ExitCode.OK
    finally:
        if config.keep_intermediates:
            logger.info("Temporary files kept in %s", workspace.root)
        else:
            workspace.remove()


# -------------------------------
# CLI parsing
# -------------------------------

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="parapdfa",
        description="Converts a scanned PDF (or a list of images) into a searchable PDF/A.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-v", "--verbose", action="count", default=0,
                   help="Increase the verbosity (-v info, -vv debug)")
    p.add_argument("-g", "--debug", action="store_true",
                   help="Debug mode: add a page with visible text after each page, keep temporary files")
    p.add_argument("-k", "--keep-temporaries", action="store_true", help="Keep temporary files")

    prep = p.add_argument_group("Preprocessing")
    prep.add_argument("-d", "--deskew", action="store_true", help="Deskew each page before OCR")
    prep.add_argument("-c", "--clean", action="store_true", help="Clean each page with unpaper before OCR")
    prep.add_argument("-i", "--clean-to-pdf", action="store_true",
                      help="Use the cleaned image in the PDF (requires -c)")
    prep.add_argument("--oversampling-dpi", type=int, default=0, metavar="DPI",
                      help="Oversample pages whose resolution is below DPI (0 disables)")
    prep.add_argument("--default-dpi", type=int, default=DEFAULT_DPI, metavar="DPI",
                      help="Resolution assumed when it cannot be computed (default: %(default)s)")

    text = p.add_mutually_exclusive_group()
    text.add_argument("-f", "--force-ocr", action="store_true",
                      help="OCR every page, even those that already contain text")
    text.add_argument("-s", "--skip-text", action="store_true",
                      help="Keep pages that already contain text as they are")

    ocr = p.add_argument_group("OCR")
    ocr.add_argument("-x", "--hocr-only", action="store_true",
                     help="Only extract hOCR files; OUTPUT is then a folder")
    ocr.add_argument("-l", "--language", default="eng",
                     help="Tesseract language(s), '+' separated (default: %(default)s)")
    ocr.add_argument("-j", "--jobs", type=int, default=None, help="Number of pages processed in parallel")
    ocr.add_argument("-C", "--tesseract-config", action="append", default=[], metavar="CONFIG",
                     help="Additional tesseract configuration file; can be used multiple times")
    ocr.add_argument("--images", action="store_true", help="INPUT is a list of images, one per page")
    ocr.add_argument("--hocr", nargs="+", type=Path, metavar="FILE",
                     help="Existing hOCR files, one per page in page order")

    val = p.add_argument_group("Validation")
    val.add_argument("--skip-validation", action="store_true", help="Do not validate the PDF/A output")
    val.add_argument("--jhove-jar", type=Path, help="Path to the JHOVE jar")
    val.add_argument("--jhove-config", type=Path, help="Path to the JHOVE configuration file")

    run = p.add_argument_group("Run")
    run.add_argument("--temp-dir", type=Path, help="Parent folder of the temporary files")
    run.add_argument("--log-file", type=Path, help="Also write a debug log to this file")
    run.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    p.add_argument("-o", "--output", type=Path, required=True,
                   help="PDF/A file to create (or folder for hOCR files with -x)")
    p.add_argument("inputs", nargs="+", type=Path, metavar="INPUT",
                   help="PDF file to OCR, or images with --images")
    return p


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    cfg_dict = {
        "languages": args.language,
        "jobs": args.jobs,
        "force_ocr": args.force_ocr,
        "skip_text": args.skip_text,
        "oversampling_dpi": args.oversampling_dpi,
        "default_dpi": args.default_dpi,
        "deskew": args.deskew,
        "clean": args.clean,
        "clean_to_pdf": args.clean_to_pdf,
        "debug": args.debug,
        "keep_temporaries": args.keep_temporaries,
        "tesseract_configs": args.tesseract_config,
        "hocr_only": args.hocr_only,
        "hocr_output_dir": args.output if args.hocr_only else None,
        "use_existing_hocr": bool(args.hocr),
        "skip_validation": args.skip_validation,
        "jhove_jar": args.jhove_jar,
        "jhove_config": args.jhove_config,
        "temp_dir": args.temp_dir,
    }
    config = PipelineConfig.from_dict(cfg_dict)
    if config.clean_to_pdf and not config.clean:
        logger.warning("Option -i has no effect without -c")
    return config.validate()


# -------------------------------
# Entry points
# -------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = _build_parser().parse_args(argv)
    except SystemExit as e:
        # argparse exits 0 for --help/--version and 2 for usage errors
        return ExitCode.OK if not e.code else ExitCode.BAD_ARGS

    ctx = mp.get_context("spawn")
    manager = ctx.Manager()
    log_queue = manager.Queue(-1)
    listener = setup_logging(
        log_queue=log_queue,
        level=verbosity_to_level(args.verbose, args.debug),
        file_path=args.log_file,
    )
    listener.start()
    configure_worker_logging(log_queue)

    try:
        config = config_from_args(args)
        logger.debug("parapdfa version: %s", __version__)
        logger.debug("Arguments: %s", " ".join(sys.argv[1:] if argv is None else argv))
        code = run_pipeline(
            config,
            args.inputs,
            args.output,
            images=args.images,
            hocr_files=args.hocr,
            context=ctx,
            log_queue=log_queue,
            show_progress=not args.no_progress,
        )
    except ParaPDFAError as e:
        logger.error("%s", e)
        code = e.exit_code
    except KeyboardInterrupt:
        logger.error("Interrupted")
        code = ExitCode.OTHER_ERROR
    except Exception as e:
        logger.exception("Unexpected error, %s", e)
        code = ExitCode.OTHER_ERROR
    finally:
        listener.stop()
        manager.shutdown()
        # detach from the queue that just went away
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
    return int(code)


if __name__ == "__main__":
    sys.exit(main())
