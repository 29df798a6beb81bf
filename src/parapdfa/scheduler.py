# src/parapdfa/scheduler.py
from __future__ import annotations

import logging
import multiprocessing as mp
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from tqdm import tqdm

from .config import PipelineConfig
from .exceptions import PageProcessingError, ParaPDFAError, RunInterrupted
from .logger import configure_worker_logging
from .models import Page, PageOutcome, PageResult
from .transformer import PageTransformer, Toolkit
from .workspace import RunWorkspace

logger = logging.getLogger("parapdfa")

SHUTDOWN_REQUESTED = False

# How long the parent waits on a page result before checking the shutdown flag again
POLL_SECONDS = 0.2


def _graceful_shutdown_handler(signum, frame):
    """
    Signal handler that sets the global shutdown flag.
    Avoids complex logic; just sets a flag for the main loop to handle.
    """
    global SHUTDOWN_REQUESTED
    if not SHUTDOWN_REQUESTED:
        logger.warning("Shutdown signal received! Stopping page workers.")
        SHUTDOWN_REQUESTED = True
    else:
        logger.error("Second shutdown signal received! Forcing an immediate exit.")
        sys.exit(1)


# One transformer per worker process
_transformer: Optional[PageTransformer] = None
_workspace: Optional[RunWorkspace] = None


def _init_page_worker(log_queue, config: PipelineConfig, toolkit: Toolkit, workspace_root: str):
    """
    Called once in each worker process.
    Builds the page transformer every job of this worker will use.
    """
    # Ctrl-C reaches the whole process group; only the parent reacts to it
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, signal.SIG_IGN)
    if log_queue is not None:
        configure_worker_logging(log_queue)
    global _transformer, _workspace
    _transformer = PageTransformer(config, toolkit)
    _workspace = RunWorkspace(Path(workspace_root))


def _run_page_job(page: Page) -> PageOutcome:
    """Processes one page and reports the result or the error, never raises."""
    start = time.perf_counter()
    outcome = PageOutcome(page_number=page.number)
    if _transformer is None or _workspace is None:
        outcome.error = "page worker called before initialization"
        return outcome
    try:
        outcome.result = _transformer.process(page, _workspace.for_page(page.number))
    except PageProcessingError as e:
        outcome.error_kind = e.kind
        outcome.error = e.message
    except Exception as e:
        logger.exception("%s %d: Unexpected failure", page.kind.label, page.number)
        outcome.error = f"{type(e).__name__}: {e}"
    outcome.duration_seconds = time.perf_counter() - start
    return outcome


def _outcome_error(outcome: PageOutcome) -> ParaPDFAError:
    if outcome.error_kind is not None:
        return PageProcessingError(outcome.page_number, outcome.error_kind, outcome.error or "")
    return ParaPDFAError(f"Page {outcome.page_number}: {outcome.error}")


class PageScheduler:
    """
    Runs the page transformer over every page with a bounded worker pool.

    Pages complete in any order; results are handed back in page order.
    The first failing page terminates the pool and is raised, so a partial
    document never reaches assembly.
    """

    def __init__(
        self,
        config: PipelineConfig,
        toolkit: Toolkit,
        workspace: RunWorkspace,
        context: Any = None,
        log_queue: Any = None,
        show_progress: bool = True,
    ):
        self.config = config
        self.toolkit = toolkit
        self.workspace = workspace
        self.ctx = context if context is not None else mp.get_context("spawn")
        self.log_queue = log_queue
        self.show_progress = show_progress

    def run(self, pages: Sequence[Page]) -> List[PageResult]:
        global SHUTDOWN_REQUESTED
        if not pages:
            return []

        slot_of: Dict[int, int] = {}
        for i, page in enumerate(pages):
            if page.number in slot_of:
                raise ValueError(f"Page {page.number} was scheduled twice")
            slot_of[page.number] = i
        slots: List[Optional[PageResult]] = [None] * len(pages)

        workers = max(1, min(self.config.jobs, len(pages)))
        logger.info("Processing %d pages with %d workers", len(pages), workers)
        logger.progress("pages start", extra={"phase": "pages", "pct": 0})

        SHUTDOWN_REQUESTED = False
        previous = self._install_signal_handlers()
        failure: Optional[ParaPDFAError] = None
        pool = self.ctx.Pool(
            processes=workers,
            initializer=_init_page_worker,
            initargs=(self.log_queue, self.config, self.toolkit, str(self.workspace.root)),
        )
        try:
            done = 0
            outcomes = pool.imap_unordered(_run_page_job, list(pages))
            with tqdm(total=len(pages), desc="Processing pages", disable=not self.show_progress) as pbar:
                while done < len(pages):
                    if SHUTDOWN_REQUESTED:
                        failure = RunInterrupted("Run interrupted before all pages were processed")
                        break
                    try:
                        outcome = outcomes.next(timeout=POLL_SECONDS)
                    except mp.TimeoutError:
                        continue
                    except StopIteration:
                        break
                    if SHUTDOWN_REQUESTED:
                        failure = RunInterrupted("Run interrupted before all pages were processed")
                        break
                    if not outcome.ok:
                        failure = _outcome_error(outcome)
                        break

                    slot = slot_of.get(outcome.page_number)
                    if slot is None:
                        raise RuntimeError(f"Unexpected result for page {outcome.page_number}")
                    if slots[slot] is not None:
                        raise RuntimeError(f"Page {outcome.page_number} completed twice")
                    slots[slot] = outcome.result

                    done += 1
                    pbar.update(1)
                    logger.debug("Page %d done in %.2fs", outcome.page_number, outcome.duration_seconds)
                    logger.progress(
                        "pages progress",
                        extra={"phase": "pages", "current": done, "total": len(pages)},
                    )
        finally:
            if failure is not None:
                logger.info("Terminating page workers")
                pool.terminate()
            else:
                pool.close()
            pool.join()
            self._restore_signal_handlers(previous)

        if failure is not None:
            raise failure

        missing = [pages[i].number for i, r in enumerate(slots) if r is None]
        if missing:
            raise RuntimeError(f"No result for pages {missing}")
        logger.progress("pages done", extra={"phase": "pages", "pct": 100})
        return slots  # type: ignore[return-value]

    @staticmethod
    def _install_signal_handlers():
        # signal handlers can only be installed from the main thread
        if threading.current_thread() is not threading.main_thread():
            return None
        return (
            signal.signal(signal.SIGINT, _graceful_shutdown_handler),
            signal.signal(signal.SIGTERM, _graceful_shutdown_handler),
        )

    @staticmethod
    def _restore_signal_handlers(previous) -> None:
        if previous is None:
            return
        signal.signal(signal.SIGINT, previous[0])
        signal.signal(signal.SIGTERM, previous[1])
