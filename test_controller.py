"""Tests for the batch orchestrator, run configuration and the Archivist facade."""

import json

import requests

from archivist.core.checker import ArchiveStatusChecker
from archivist.core.controller import Archivist, BatchOrchestrator, RunConfig, load_run_config
from archivist.core.models import ErrorKind, RunStatus
from archivist.core.submitter import CaptureSubmitter

from fakes import (
    FakeAvailabilityClient,
    FakeSessionFactory,
    MemorySink,
    PageScript,
    available,
    recording_pacer,
    snapshot,
)


A = "https://example.com/a"
B = "https://example.com/b"
C = "https://example.com/c"
D = "https://example.com/d"


def confirmation(url):
    return f"Saving page {url}\nDone!\nVisit page: /web/20240101120000/{url}"


def nothing_captured(url):
    return PageScript(address="https://web.archive.org/web/*/" + url)


def build(tmp_path, client, sessions, sink=None, **config):
    config = RunConfig(data_dir=str(tmp_path / "data"), docs_dir=str(tmp_path / "docs"), **config)
    work_pacer, _ = recording_pacer(1)
    batch_pacer, pacing = recording_pacer(2)
    checker = ArchiveStatusChecker(client, sessions, pacer=work_pacer)
    submitter = CaptureSubmitter(sessions, pacer=work_pacer)
    orchestrator = BatchOrchestrator(config, checker, submitter, sink=sink or MemorySink(),
                                     pacer=batch_pacer, on_start=sessions.start)
    return orchestrator, pacing


def test_already_archived_urls_skip_submission(tmp_path):
    client = FakeAvailabilityClient(responses={A: [available(A)], B: [available(B)]})
    sessions = FakeSessionFactory()
    sink = MemorySink()
    orchestrator, pacing = build(tmp_path, client, sessions, sink)

    summary = orchestrator.run([A, B])

    assert summary.status is RunStatus.COMPLETED
    assert summary.archived == 2
    assert summary.failed == 0
    assert summary.pending == 0
    assert sessions.opened == 0
    assert [entry.archive_url for entry, _ in sink.recorded] == [snapshot(A), snapshot(B)]
    assert orchestrator.tracker.attempts(A) == 0
    assert len(pacing) == 1
    assert 7.0 <= pacing[0] <= 10.0


def test_limit_stops_batch_and_leaves_rest_pending(tmp_path):
    client = FakeAvailabilityClient(responses={A: [available(A)]})
    sessions = FakeSessionFactory(
        nothing_captured(B),
        PageScript(text=confirmation(B), address="https://web.archive.org/save/" + B),
        nothing_captured(C),
        PageScript(text="You have reached the daily limit. Try again tomorrow.",
                   address="https://web.archive.org/save/" + C),
    )
    sink = MemorySink()
    orchestrator, pacing = build(tmp_path, client, sessions, sink)

    summary = orchestrator.run([A, B, C, D])

    assert summary.status is RunStatus.LIMIT_REACHED
    assert summary.counts() == {'total': 4, 'archived': 2, 'failed': 1, 'pending': 1}
    assert summary.pending_urls == [D]
    assert D not in client.calls
    assert len(pacing) == 2

    entries = [entry for entry, _ in sink.recorded]
    assert [e.id for e in entries] == ["1", "2", "3"]
    assert entries[1].archive_url == snapshot(B)
    assert entries[2].error.kind is ErrorKind.LIMIT_EXCEEDED
    assert entries[0].title == "example.com/a"

    final_summary, final_entries, tracker = sink.finalized
    assert final_summary is summary
    assert len(final_entries) == 3
    assert tracker.attempts(C) == 1
    assert tracker.attempts(D) == 0
    assert sessions.opened == sessions.released == 4


def test_sink_sees_counts_after_every_url(tmp_path):
    client = FakeAvailabilityClient(default=None)
    sessions = FakeSessionFactory(PageScript(text=confirmation(A), address=snapshot(A)))
    sink = MemorySink()
    orchestrator, _ = build(tmp_path, client, sessions, sink)

    orchestrator.run([A, B])

    assert [counts['pending'] for _, counts in sink.recorded] == [1, 0]


def test_failed_check_still_submits(tmp_path):
    boom = requests.Timeout("read timed out")
    client = FakeAvailabilityClient(responses={A: [boom, boom]})
    sessions = FakeSessionFactory(PageScript(text=confirmation(A), address="https://web.archive.org/save/" + A))
    orchestrator, _ = build(tmp_path, client, sessions)

    summary = orchestrator.run([A])

    assert summary.archived == 1
    assert orchestrator.entries[0].archive_url == snapshot(A)


def test_unconfirmed_capture_is_recorded_as_failure(tmp_path):
    client = FakeAvailabilityClient(default=None)
    sessions = FakeSessionFactory(PageScript(text="Loading...", address="https://web.archive.org/save/" + A))
    orchestrator, _ = build(tmp_path, client, sessions)

    summary = orchestrator.run([A])

    assert summary.status is RunStatus.COMPLETED
    assert summary.failed == 1
    assert orchestrator.entries[0].error.kind is ErrorKind.ARCHIVE_ERROR
    assert orchestrator.tracker.attempts(A) == 3


class ExplodingChecker:
    def __init__(self, inner, bad_url):
        self.inner = inner
        self.bad_url = bad_url

    def check_if_archived(self, url, tracker=None):
        if url == self.bad_url:
            raise RuntimeError("unexpected page state")
        return self.inner.check_if_archived(url, tracker)


def test_processing_error_is_isolated(tmp_path):
    client = FakeAvailabilityClient(default=available(B))
    sessions = FakeSessionFactory()
    orchestrator, _ = build(tmp_path, client, sessions)
    orchestrator.checker = ExplodingChecker(orchestrator.checker, A)

    summary = orchestrator.run([A, B])

    assert summary.status is RunStatus.COMPLETED
    assert summary.failed == 1
    assert summary.archived == 1
    error = orchestrator.entries[0].error
    assert error.kind is ErrorKind.PROCESSING_ERROR
    assert error.message == "unexpected page state"
    tracked = orchestrator.error_tracker.errors[0]
    assert tracked.url == A
    assert tracked.kind is ErrorKind.PROCESSING_ERROR
    assert tracked.context == "process_url"
    assert orchestrator.error_report_path is not None
    assert list((tmp_path / "docs").glob("errors_*.txt"))


def test_browser_launch_failure_ends_in_error_status(tmp_path):
    client = FakeAvailabilityClient(default=None)
    sessions = FakeSessionFactory(start_error=RuntimeError("Executable doesn't exist"))
    sink = MemorySink()
    orchestrator, _ = build(tmp_path, client, sessions, sink)

    summary = orchestrator.run([A, B])

    assert summary.status is RunStatus.ERROR
    assert summary.pending == 2
    assert sink.recorded == []
    assert sink.finalized[0] is summary


def test_empty_batch(tmp_path):
    sessions = FakeSessionFactory()
    orchestrator, pacing = build(tmp_path, FakeAvailabilityClient(), sessions)

    summary = orchestrator.run([])

    assert summary.status is RunStatus.COMPLETED
    assert summary.total == 0
    assert sessions.start_calls == 0
    assert pacing == []


def test_progress_events(tmp_path):
    client = FakeAvailabilityClient(default=available(A))
    orchestrator, _ = build(tmp_path, client, FakeSessionFactory())
    events = []

    orchestrator.run([A], progress=events.append)

    url_events = [e for e in events if e['type'] == 'url']
    assert [e['stage'] for e in url_events] == ['checking', 'already_archived']
    assert url_events[0]['index'] == 1
    assert url_events[0]['total'] == 1
    counters = [e for e in events if e['type'] == 'counters']
    assert counters[-1]['stats']['archived'] == 1
    assert counters[-1]['remaining'] == 0.0
    assert counters[-1]['elapsed'] >= 0


def test_load_run_config_merges_file_and_overrides(tmp_path):
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({
        "max_retries": 1,
        "pacing_delay": [1, 2],
        "unknown_key": True,
        "browser": {"headless": True, "viewport_width": 800, "bogus": 1},
        "policy": {"version": "local", "limit_phrases": ["Quota Reached"]},
    }), encoding="utf-8")

    config = load_run_config(str(settings), data_dir="out", docs_dir=None, headless=False)

    assert config.max_retries == 1
    assert config.pacing_delay == (1, 2)
    assert config.max_attempts_per_url == 4
    assert config.data_dir == "out"
    assert config.docs_dir == "docs"
    assert config.browser.viewport_width == 800
    assert config.browser.headless is False
    assert config.policy.version == "local"
    assert config.policy.limit_phrases == ("quota reached",)


def test_load_run_config_defaults():
    config = load_run_config(None)
    assert config == RunConfig()


def test_archivist_archives_file_and_reports(tmp_path):
    url_file = tmp_path / "urls.txt"
    url_file.write_text(f"{A}\n\nnot a url\n{B}\n", encoding="utf-8")
    config = RunConfig(data_dir=str(tmp_path / "data"), docs_dir=str(tmp_path / "docs"))
    client = FakeAvailabilityClient(default=None, responses={A: [available(A)]})
    sessions = FakeSessionFactory(
        nothing_captured(B),
        PageScript(text=confirmation(B), address="https://web.archive.org/save/" + B),
    )
    pacer, _ = recording_pacer()
    app = Archivist(config, sessions=sessions, client=client, pacer=pacer)

    summary = app.archive_file(str(url_file))

    assert summary.archived == 2
    assert sessions.close_calls == 1
    results = json.loads((tmp_path / "data" / "archive_results.json").read_text(encoding="utf-8"))
    assert results['metadata']['status'] == 'completed'
    assert [r['originalUrl'] for r in results['results']['archived']] == [A, B]
    assert (tmp_path / "data" / "attempts.jsonl").exists()
    assert app.report_path is not None

    stats = app.stats()
    assert stats['summary']['archived'] == 2
    assert stats['success_rate'] == 100.0


def test_archivist_check(tmp_path):
    config = RunConfig(data_dir=str(tmp_path / "data"), docs_dir=str(tmp_path / "docs"))
    sessions = FakeSessionFactory()
    app = Archivist(config, sessions=sessions, client=FakeAvailabilityClient(default=available(A)))

    outcome = app.check(A)

    assert outcome.archived
    assert outcome.snapshot_url == snapshot(A)
    assert sessions.close_calls == 1


def test_second_batch_on_one_archivist_starts_fresh(tmp_path):
    config = RunConfig(data_dir=str(tmp_path / "data"), docs_dir=str(tmp_path / "docs"))
    client = FakeAvailabilityClient(default=None, responses={A: [available(A)], B: [available(B)]})
    pacer, _ = recording_pacer()
    app = Archivist(config, sessions=FakeSessionFactory(), client=client, pacer=pacer)
    saves = []
    save_results = app.files.save_results

    def recording_save(summary, entries):
        saves.append((summary.counts(), [e.original_url for e in entries]))
        return save_results(summary, entries)

    app.files.save_results = recording_save

    app.archive_urls([A])
    first_run = len(saves)
    summary = app.archive_urls([B])

    assert summary.total == 1
    assert summary.archived == 1
    second_run = saves[first_run:]
    assert second_run
    for counts, urls in second_run:
        assert counts['total'] == 1
        assert urls == [B]
    results = json.loads((tmp_path / "data" / "archive_results.json").read_text(encoding="utf-8"))
    assert [r['originalUrl'] for r in results['results']['archived']] == [B]


def test_error_tracker_is_cleared_between_batches(tmp_path):
    client = FakeAvailabilityClient(default=available(B))
    orchestrator, _ = build(tmp_path, client, FakeSessionFactory())
    orchestrator.checker = ExplodingChecker(orchestrator.checker, A)

    orchestrator.run([A])
    assert len(orchestrator.error_tracker.errors) == 1

    orchestrator.run([B])
    assert orchestrator.error_tracker.errors == []
    assert orchestrator.error_report_path is None


def test_sink_begins_every_batch(tmp_path):
    sink = MemorySink()
    orchestrator, _ = build(tmp_path, FakeAvailabilityClient(default=available(A)), FakeSessionFactory(), sink)

    orchestrator.run([A])
    orchestrator.run([A])

    assert sink.begun == 2
    assert len(sink.recorded) == 1


def test_stats_and_check_leave_data_dir_alone(tmp_path):
    config = RunConfig(data_dir=str(tmp_path / "data"), docs_dir=str(tmp_path / "docs"))
    app = Archivist(config, sessions=FakeSessionFactory(), client=FakeAvailabilityClient(default=available(A)))

    assert app.stats()['status'] == RunStatus.NO_DATA.value
    app.check(A)

    assert not (tmp_path / "data").exists()
