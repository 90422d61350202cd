"""
File Management Utilities

This module persists batch results: the incremental JSON results file that is
rewritten after every URL (so an interrupted run still leaves a valid partial
record), the human-readable end-of-run report, and reading results back for
the stats command.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
from datetime import datetime

from archivist.core.models import BatchSummary, ResultEntry, RunStatus, utc_now


RESULTS_FILENAME = "archive_results.json"


class FileManager:
    """
    Manages the data and docs directories of an archiving run.

    The data directory holds machine-readable state (results JSON, attempt
    log); the docs directory holds reports meant for people.
    """

    def __init__(self, data_dir: str = "data", docs_dir: str = "docs"):
        """
        Initialize the file manager.

        Args:
            data_dir: Directory for the results file and attempt log
            docs_dir: Directory for text reports
        """
        self.data_dir = Path(data_dir)
        self.docs_dir = Path(docs_dir)
        self.logger = logging.getLogger(__name__)

    @property
    def results_path(self) -> Path:
        return self.data_dir / RESULTS_FILENAME

    def build_results_document(self, summary: BatchSummary, entries: List[ResultEntry]) -> Dict[str, Any]:
        """
        Build the persisted results document.

        Returns:
            Dictionary shaped as
            ``{"metadata": {"timestamp", "summary", "status"},
            "results": {"archived": [...], "failed": [...]}}``
        """
        return {
            'metadata': {
                'timestamp': summary.updated_at,
                'summary': summary.counts(),
                'status': summary.status.value,
            },
            'results': {
                'archived': [e.to_dict() for e in entries if e.succeeded],
                'failed': [e.to_dict() for e in entries if not e.succeeded],
            },
        }

    def save_results(self, summary: BatchSummary, entries: List[ResultEntry]) -> str:
        """
        Write the results file atomically.

        Returns:
            Path of the written file

        Raises:
            OSError: If the file cannot be written
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        document = self.build_results_document(summary, entries)
        tmp_path = self.results_path.with_suffix('.json.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(document, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.results_path)
        return str(self.results_path)

    def load_results(self) -> Optional[Dict[str, Any]]:
        """
        Read the results file of the last run.

        Returns:
            The parsed document, or None if there is no readable file
        """
        if not self.results_path.exists():
            return None
        try:
            with open(self.results_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Could not read results file {self.results_path}: {e}")
            return None
        if not isinstance(data, dict) or 'metadata' not in data:
            self.logger.error(f"Unexpected results file format: {self.results_path}")
            return None
        return data

    def get_statistics(self) -> Dict[str, Any]:
        """
        Summarize the results file of the last run.

        Returns:
            Dictionary with 'summary', 'status', 'timestamp', 'successful_urls'
            and 'success_rate'; status is 'no_data' when nothing was recorded
        """
        data = self.load_results()
        empty = {'total': 0, 'archived': 0, 'failed': 0, 'pending': 0}
        if not data:
            return {'summary': empty, 'status': RunStatus.NO_DATA.value, 'timestamp': utc_now(),
                    'successful_urls': [], 'success_rate': 0.0}

        metadata = data.get('metadata', {})
        summary = {**empty, **(metadata.get('summary') or {})}
        if not summary['total']:
            return {'summary': empty, 'status': RunStatus.NO_DATA.value, 'timestamp': utc_now(),
                    'successful_urls': [], 'success_rate': 0.0}

        archived = (data.get('results') or {}).get('archived') or []
        return {
            'summary': summary,
            'status': metadata.get('status', RunStatus.NO_DATA.value),
            'timestamp': metadata.get('timestamp', ''),
            'successful_urls': [entry.get('originalUrl') for entry in archived if entry.get('originalUrl')],
            'success_rate': summary['archived'] / summary['total'] * 100,
        }

    def write_text_report(self, summary: BatchSummary, entries: List[ResultEntry]) -> str:
        """
        Write the end-of-run report listing every URL and its outcome.

        Returns:
            Path to the generated report
        """
        self.docs_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        report_path = self.docs_dir / f"report_{timestamp}.txt"

        with open(report_path, 'w', encoding='utf-8') as f:
            f.write(self.build_text_report(summary, entries))

        self.logger.info(f"Text report saved to: {report_path}")
        return str(report_path)

    def build_text_report(self, summary: BatchSummary, entries: List[ResultEntry]) -> str:
        lines = [
            "ARCHIVIST ARCHIVING REPORT",
            "=" * 60,
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Run status: {summary.status.value}",
            f"Total URLs: {summary.total}",
            f"Archived: {summary.archived}",
            f"Failed: {summary.failed}",
            f"Pending: {summary.pending}",
            f"Success rate: {summary.success_rate:.1f}%",
            "",
        ]

        successes = [e for e in entries if e.succeeded]
        failures = [e for e in entries if not e.succeeded]

        lines += ["-" * 60, "ARCHIVED URLS:", "-" * 60, ""]
        for i, entry in enumerate(successes, 1):
            lines.append(f"{i}. {entry.original_url}")
            lines.append(f"   {entry.archive_url or 'Link not available'}")
            lines.append("")

        if failures:
            lines += ["-" * 60, "FAILED URLS:", "-" * 60, ""]
            for i, entry in enumerate(failures, 1):
                lines.append(f"{i}. {entry.original_url}")
                if entry.error:
                    lines.append(f"   {entry.error.kind.name}: {entry.error.message}")
                lines.append("")

        if summary.pending_urls:
            lines += ["-" * 60, "PENDING URLS (not processed):", "-" * 60, ""]
            for i, url in enumerate(summary.pending_urls, 1):
                lines.append(f"{i}. {url}")
            lines.append("")

        lines += ["-" * 60, "END OF REPORT", "=" * 60]
        return "\n".join(lines) + "\n"


class FileResultSink:
    """
    Result sink that keeps the results file current after every URL and
    writes the text report when the batch ends.
    """

    def __init__(self, files: FileManager):
        self.files = files
        self.entries: List[ResultEntry] = []
        self.report_path: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    def begin(self, summary: BatchSummary) -> None:
        self.entries = []
        self.report_path = None

    def record(self, entry: ResultEntry, summary: BatchSummary) -> None:
        self.entries.append(entry)
        self.files.save_results(summary, self.entries)

    def finalize(self, summary: BatchSummary, entries: List[ResultEntry], tracker=None) -> None:
        self.entries = list(entries)
        self.files.save_results(summary, self.entries)
        self.report_path = self.files.write_text_report(summary, self.entries)
