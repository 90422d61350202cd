"""Tests for the error tracker and pacing helpers."""

import logging
import random

from archivist.core.logger import ErrorTracker
from archivist.core.models import ErrorKind
from archivist.utils.rate_limiter import Pacer


def _raise(error):
    try:
        raise error
    except Exception as e:
        return e


def test_error_tracker_records_kind_context_and_url():
    tracker = ErrorTracker(logging.getLogger("archivist.test"))

    error_id = tracker.log_error(_raise(RuntimeError("page crashed")), ErrorKind.PROCESSING_ERROR,
                                 context="process_url", url="https://example.com")

    assert error_id.startswith("ERR_")
    tracked = tracker.errors[0]
    assert tracked.id == error_id
    assert tracked.kind is ErrorKind.PROCESSING_ERROR
    assert tracked.context == "process_url"
    assert tracked.url == "https://example.com"
    assert tracked.exception_type == "RuntimeError"
    assert "page crashed" in tracked.traceback


def test_error_report_groups_errors_by_url(tmp_path):
    tracker = ErrorTracker(logging.getLogger("archivist.test"))
    tracker.log_error(_raise(RuntimeError("page crashed")), ErrorKind.PROCESSING_ERROR,
                      context="process_url", url="https://example.com/a")
    tracker.log_error(_raise(OSError("disk full")), ErrorKind.UNKNOWN_ERROR,
                      context="save results", url="https://example.com/a")
    tracker.log_error(_raise(ValueError("bad state")), ErrorKind.UNKNOWN_ERROR, context="batch")

    path = tracker.save_error_report(str(tmp_path / "docs" / "errors.txt"))
    report = open(path, encoding="utf-8").read()

    assert "Errors: 3 across 2 URLs" in report
    assert report.count("URL: https://example.com/a") == 1
    assert "PROCESSING_ERROR during process_url" in report
    assert "UNKNOWN_ERROR during save results" in report
    assert "URL: (no URL)" in report
    assert "RuntimeError: page crashed" in report
    assert report.index("page crashed") < report.index("disk full") < report.index("URL: (no URL)")


def test_error_report_write_failure_returns_none(tmp_path):
    tracker = ErrorTracker(logging.getLogger("archivist.test"))
    tracker.log_error(_raise(RuntimeError("boom")))
    blocker = tmp_path / "docs"
    blocker.write_text("not a directory", encoding="utf-8")

    assert tracker.save_error_report(str(blocker / "errors.txt")) is None


def test_pacer_pause_stays_in_window():
    waits = []
    pacer = Pacer(sleep=waits.append, rng=random.Random(3))
    for _ in range(20):
        pacer.pause(7, 10)
    assert all(7 <= w <= 10 for w in waits)
    assert abs(pacer.total_waited - sum(waits)) < 1e-9


def test_pacer_backoff_grows_with_retries():
    waits = []
    pacer = Pacer(sleep=waits.append, rng=random.Random(0))
    pacer.backoff(8.0, 0, 2.0, 2.0)
    pacer.backoff(8.0, 2, 2.0, 2.0)
    assert 8.0 <= waits[0] <= 10.0
    assert 12.0 <= waits[1] <= 14.0


def test_pacer_ignores_non_positive_waits():
    waits = []
    pacer = Pacer(sleep=waits.append)
    assert pacer.wait(0) == 0
    assert pacer.wait(-1) == 0
    assert waits == []
