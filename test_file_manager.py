"""Tests for result persistence and reports."""

import json

from archivist.core.models import BatchSummary, ErrorInfo, ErrorKind, ResultEntry, RunStatus
from archivist.utils.file_manager import FileManager, FileResultSink


A = "https://example.com/a"
B = "https://example.com/b"
C = "https://example.com/c"


def success(url, id="1"):
    return ResultEntry(id=id, original_url=url, timestamp="2024-01-01T00:00:00.000Z",
                       title="example.com", status="success",
                       archive_url=f"https://web.archive.org/web/20240101000000/{url}")


def failure(url, id="2", error=None):
    return ResultEntry(id=id, original_url=url, timestamp="2024-01-01T00:00:00.000Z",
                       title="example.com", status="failed", error=error)


def test_results_file_is_rewritten_after_every_entry(tmp_path):
    files = FileManager(str(tmp_path / "data"), str(tmp_path / "docs"))
    sink = FileResultSink(files)
    summary = BatchSummary.start([A, B, C])

    entry = success(A)
    summary.record(entry)
    sink.record(entry, summary)

    data = json.loads(files.results_path.read_text(encoding="utf-8"))
    assert data['metadata']['status'] == 'in_progress'
    assert data['metadata']['summary'] == {'total': 3, 'archived': 1, 'failed': 0, 'pending': 2}
    assert data['results']['archived'][0] == {
        'id': '1',
        'originalUrl': A,
        'timestamp': '2024-01-01T00:00:00.000Z',
        'title': 'example.com',
        'status': 'success',
        'archiveUrl': 'https://web.archive.org/web/20240101000000/' + A,
    }
    assert data['results']['failed'] == []


def test_begin_drops_entries_of_previous_batch(tmp_path):
    files = FileManager(str(tmp_path / "data"), str(tmp_path / "docs"))
    sink = FileResultSink(files)
    first = BatchSummary.start([A])
    first.record(success(A))
    sink.record(success(A), first)
    sink.report_path = "docs/report_old.txt"

    second = BatchSummary.start([B])
    sink.begin(second)
    entry = success(B)
    second.record(entry)
    sink.record(entry, second)

    assert sink.report_path is None
    data = json.loads(files.results_path.read_text(encoding="utf-8"))
    assert data['metadata']['summary']['total'] == 1
    assert [r['originalUrl'] for r in data['results']['archived']] == [B]


def test_failure_without_structured_error_is_unknown(tmp_path):
    files = FileManager(str(tmp_path / "data"), str(tmp_path / "docs"))
    summary = BatchSummary.start([B])
    entry = failure(B)
    summary.record(entry)

    files.save_results(summary, [entry])

    data = json.loads(files.results_path.read_text(encoding="utf-8"))
    assert data['results']['failed'][0]['error'] == {
        'type': 'unknown_error', 'message': 'Unknown error', 'code': 'UNKNOWN_ERROR'}


def test_finalize_writes_text_report(tmp_path):
    files = FileManager(str(tmp_path / "data"), str(tmp_path / "docs"))
    sink = FileResultSink(files)
    summary = BatchSummary.start([A, B, C])
    entries = [success(A), failure(B, error=ErrorInfo(ErrorKind.LIMIT_EXCEEDED, "Daily capture limit reached"))]
    for entry in entries:
        summary.record(entry)
    summary.finalize(RunStatus.LIMIT_REACHED)

    sink.finalize(summary, entries, None)

    report = open(sink.report_path, encoding="utf-8").read()
    assert "Run status: limit_reached" in report
    assert A in report
    assert "LIMIT_EXCEEDED: Daily capture limit reached" in report
    assert "PENDING URLS" in report
    assert C in report
    data = json.loads(files.results_path.read_text(encoding="utf-8"))
    assert data['metadata']['status'] == 'limit_reached'
    assert data['metadata']['summary']['pending'] == 1


def test_statistics_without_results(tmp_path):
    stats = FileManager(str(tmp_path / "data")).get_statistics()
    assert stats['status'] == 'no_data'
    assert stats['summary']['total'] == 0


def test_statistics_from_results(tmp_path):
    files = FileManager(str(tmp_path / "data"), str(tmp_path / "docs"))
    summary = BatchSummary.start([A, B])
    entries = [success(A), failure(B, error=ErrorInfo(ErrorKind.ARCHIVE_ERROR, "Capture not confirmed"))]
    for entry in entries:
        summary.record(entry)
    summary.finalize(RunStatus.COMPLETED)
    files.save_results(summary, entries)

    stats = files.get_statistics()

    assert stats['status'] == 'completed'
    assert stats['successful_urls'] == [A]
    assert stats['success_rate'] == 50.0


def test_corrupt_results_file_reads_as_no_data(tmp_path):
    files = FileManager(str(tmp_path))
    files.results_path.write_text("{not json", encoding="utf-8")
    assert files.load_results() is None
    assert files.get_statistics()['status'] == 'no_data'
