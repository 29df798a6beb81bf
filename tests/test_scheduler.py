from __future__ import annotations

import dataclasses
import multiprocessing.dummy
import signal
import threading
from pathlib import Path

import pytest

from parapdfa import scheduler as scheduler_module
from parapdfa.exceptions import PageErrorKind, PageProcessingError, RunInterrupted
from parapdfa.models import Page
from parapdfa.scheduler import PageScheduler
from parapdfa.workspace import RunWorkspace

from conftest import A4, scanned_pages


@pytest.fixture
def workspace(tmp_path: Path) -> RunWorkspace:
    root = tmp_path / "run"
    root.mkdir()
    return RunWorkspace(root)


def _scheduler(config, toolkit, workspace, **overrides):
    config = dataclasses.replace(config, **overrides)
    return PageScheduler(config, toolkit, workspace, context=multiprocessing.dummy, show_progress=False)


class RecordingContext:
    """multiprocessing.dummy whose pools report when they get terminated."""

    def __init__(self):
        self.terminated = threading.Event()

    def Pool(self, *args, **kwargs):
        pool = multiprocessing.dummy.Pool(*args, **kwargs)
        terminate = pool.terminate

        def _terminate():
            self.terminated.set()
            terminate()

        pool.terminate = _terminate
        return pool


def test_results_are_in_page_order_whatever_the_completion_order(config, make_toolkit, source_pdf, workspace):
    # early pages finish last
    toolkit = make_toolkit(pages=5, delays={1: 0.2, 2: 0.15, 3: 0.1, 4: 0.05})
    results = _scheduler(config, toolkit, workspace, jobs=5).run(scanned_pages(5, source_pdf))

    assert [r.page_number for r in results] == [1, 2, 3, 4, 5]
    assert [r.pdf_path.parent.name for r in results] == ["0001", "0002", "0003", "0004", "0005"]
    assert len(toolkit.ocr.calls) == 5


def test_single_worker_processes_every_page(config, make_toolkit, source_pdf, workspace):
    toolkit = make_toolkit(pages=3)
    results = _scheduler(config, toolkit, workspace, jobs=1).run(scanned_pages(3, source_pdf))
    assert [r.page_number for r in results] == [1, 2, 3]


def test_first_failure_stops_the_run(config, make_toolkit, source_pdf, workspace):
    toolkit = make_toolkit(pages=5, fail_pages=[3], delays={4: 0.5})
    with pytest.raises(PageProcessingError) as exc:
        _scheduler(config, toolkit, workspace, jobs=1).run(scanned_pages(5, source_pdf))

    assert exc.value.page_number == 3
    assert exc.value.kind is PageErrorKind.RECOGNITION_FAILED
    # pages after the failing one are never started by the single worker
    assert [call[0] for call in toolkit.ocr.calls][:3] == ["0001.pgm", "0002.pgm", "0003.pgm"]
    assert "0005.pgm" not in [call[0] for call in toolkit.ocr.calls]


def test_page_with_text_fails_the_run_with_bad_input_code(config, make_toolkit, source_pdf, workspace):
    toolkit = make_toolkit(pages=2, fonts={2: 1})
    with pytest.raises(PageProcessingError) as exc:
        _scheduler(config, toolkit, workspace).run(scanned_pages(2, source_pdf))
    assert exc.value.page_number == 2
    assert exc.value.kind is PageErrorKind.ALREADY_HAS_TEXT
    assert exc.value.exit_code == 2


def test_shutdown_signal_interrupts_the_run(config, make_toolkit, source_pdf, workspace, monkeypatch):
    monkeypatch.setattr(scheduler_module, "SHUTDOWN_REQUESTED", False)

    def request_shutdown(page_number):
        if page_number == 1:
            scheduler_module._graceful_shutdown_handler(signal.SIGINT, None)

    toolkit = make_toolkit(pages=3, on_call=request_shutdown)
    with pytest.raises(RunInterrupted):
        _scheduler(config, toolkit, workspace, jobs=1).run(scanned_pages(3, source_pdf))


def test_shutdown_is_noticed_while_a_page_is_still_running(config, make_toolkit, source_pdf, workspace, monkeypatch):
    monkeypatch.setattr(scheduler_module, "SHUTDOWN_REQUESTED", False)
    context = RecordingContext()
    released = []

    def request_shutdown_and_hang(page_number):
        scheduler_module._graceful_shutdown_handler(signal.SIGINT, None)
        # the page only finishes once the scheduler has given up on it
        released.append(context.terminated.wait(timeout=5))

    toolkit = make_toolkit(pages=1, on_call=request_shutdown_and_hang)
    scheduler = PageScheduler(config, toolkit, workspace, context=context, show_progress=False)
    with pytest.raises(RunInterrupted):
        scheduler.run(scanned_pages(1, source_pdf))

    assert released == [True]


def test_page_workers_ignore_interrupts(config, make_toolkit, workspace, monkeypatch):
    installed = []
    monkeypatch.setattr(scheduler_module.signal, "signal", lambda sig, handler: installed.append((sig, handler)))
    monkeypatch.setattr(scheduler_module, "_transformer", None)
    monkeypatch.setattr(scheduler_module, "_workspace", None)

    scheduler_module._init_page_worker(None, config, make_toolkit(), str(workspace.root))

    assert installed == [(signal.SIGINT, signal.SIG_IGN)]
    assert scheduler_module._transformer is not None


def test_empty_page_list_gives_no_results(config, make_toolkit, workspace):
    assert _scheduler(config, make_toolkit(), workspace).run([]) == []


def test_duplicate_page_numbers_are_rejected(config, make_toolkit, source_pdf, workspace):
    pages = [Page(1, source_pdf, *A4), Page(1, source_pdf, *A4)]
    with pytest.raises(ValueError):
        _scheduler(config, make_toolkit(), workspace).run(pages)
