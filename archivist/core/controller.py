"""
Archivist Orchestrator: runs a batch of URLs through check and capture.

Each URL is processed to completion before the next one starts. A detected
daily capture limit stops the batch; URLs after it stay pending.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .attempts import AttemptTracker
from .availability import AvailabilityClient
from .browser import BrowserConfig, PlaywrightSessionFactory, SessionFactory
from .checker import ArchiveStatusChecker
from .classifier import DEFAULT_POLICY, SnapshotPolicy
from .logger import ErrorTracker
from .models import (
    BatchSummary,
    CheckOutcome,
    ErrorInfo,
    ErrorKind,
    ResultEntry,
    ResultSink,
    RunStatus,
    utc_now,
)
from .submitter import CaptureSubmitter
from archivist.utils.file_manager import FileManager, FileResultSink
from archivist.utils.manifest import AttemptLog
from archivist.utils.rate_limiter import DelayRange, Pacer
from archivist.utils.validators import extract_title_from_url, load_urls_from_file


ProgressCallback = Callable[[Dict[str, Any]], None]


@dataclass
class RunConfig:
    max_attempts_per_url: int = 4
    max_retries: int = 2
    check_retries: int = 2
    check_retry_delay: float = 5.0
    check_timeout: float = 60.0
    navigation_timeout_ms: int = 45000
    probe_timeout_ms: int = 30000
    limit_check_timeout_ms: int = 5000
    content_timeout_ms: int = 10000
    settle_delay: DelayRange = (4.0, 7.0)
    submit_settle_delay: DelayRange = (5.0, 8.0)
    probe_settle_delay: DelayRange = (10.0, 11.0)
    retry_base_delay: float = 8.0
    retry_step_delay: float = 2.0
    retry_jitter: float = 2.0
    pacing_delay: DelayRange = (7.0, 10.0)
    data_dir: str = "data"
    docs_dir: str = "docs"
    write_attempt_log: bool = True
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    policy: SnapshotPolicy = DEFAULT_POLICY


_DELAY_FIELDS = ('settle_delay', 'submit_settle_delay', 'probe_settle_delay', 'pacing_delay')


def load_run_config(path: Optional[str] = None, **overrides) -> RunConfig:
    """
    Build a RunConfig from an optional JSON settings file.

    Unknown keys are ignored. ``browser`` and ``policy`` objects are merged
    into the defaults, so a file only needs the values it changes. Keyword
    overrides (from the command line) win over file values; None means
    "not given".

    Raises:
        OSError: If the settings file cannot be read
        ValueError: If the settings file is not a JSON object
    """
    data: Dict[str, Any] = {}
    if path:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must contain a JSON object: {path}")

    known = {f.name for f in fields(RunConfig)} - {'browser', 'policy'}
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key in known:
            values[key] = tuple(value) if key in _DELAY_FIELDS else value
        elif key not in ('browser', 'policy'):
            logging.getLogger(__name__).debug(f"Ignoring unknown setting: {key}")

    config = RunConfig(**values)

    browser_data = data.get('browser') or {}
    if browser_data:
        browser_known = {f.name for f in fields(BrowserConfig)}
        browser_values = {k: v for k, v in browser_data.items() if k in browser_known}
        if 'args' in browser_values:
            browser_values['args'] = tuple(browser_values['args'])
        config.browser = replace(config.browser, **browser_values)

    policy_data = data.get('policy') or {}
    if policy_data:
        policy_known = {f.name for f in fields(SnapshotPolicy)} - {'limit_phrases'}
        policy = replace(config.policy, **{k: v for k, v in policy_data.items() if k in policy_known})
        if 'limit_phrases' in policy_data:
            policy = policy.with_phrases(policy_data['limit_phrases'])
        config.policy = policy

    for key, value in overrides.items():
        if value is None:
            continue
        if key == 'headless':
            config.browser = replace(config.browser, headless=bool(value))
        elif key in known:
            setattr(config, key, value)

    return config


class BatchOrchestrator:
    def __init__(self,
                 config: RunConfig,
                 checker: ArchiveStatusChecker,
                 submitter: CaptureSubmitter,
                 sink: Optional[ResultSink] = None,
                 pacer: Optional[Pacer] = None,
                 error_tracker: Optional[ErrorTracker] = None,
                 on_start: Optional[Callable[[], None]] = None,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            config: Run settings (attempt ceiling, pacing, output dirs)
            checker: Status checker asked first for every URL
            submitter: Capture submitter for URLs not yet archived
            sink: Receives every entry and the final summary
            pacer: Pacer for the wait between URLs
            error_tracker: Collects exceptions escaping a URL's processing
            on_start: Called once before the first URL (browser launch);
                a failure there ends the batch with status ``error``
            clock: Time source for progress estimates
        """
        self.config = config
        self.checker = checker
        self.submitter = submitter
        self.sink = sink
        self.pacer = pacer or Pacer()
        self.logger = logging.getLogger(__name__)
        self.error_tracker = error_tracker or ErrorTracker(self.logger)
        self.on_start = on_start
        self.clock = clock
        self.tracker: Optional[AttemptTracker] = None
        self.entries: List[ResultEntry] = []
        self.error_report_path: Optional[str] = None

    def run(self, urls: Iterable[str], progress: Optional[ProgressCallback] = None) -> BatchSummary:
        """
        Process every URL in order and return the finalized summary.

        Never raises for per-URL problems: those become failed entries.
        """
        urls = list(urls)
        tracker = AttemptTracker(urls, max_attempts=self.config.max_attempts_per_url)
        summary = BatchSummary.start(urls)
        entries: List[ResultEntry] = []
        self.tracker = tracker
        self.entries = entries
        self.error_report_path = None
        self.error_tracker.errors.clear()
        if self.sink is not None:
            self.sink.begin(summary)
        started = self.clock()
        status = RunStatus.COMPLETED

        self.logger.info(f"Starting batch of {len(urls)} URLs")

        try:
            if self.on_start and urls:
                self.on_start()

            for index, url in enumerate(urls, 1):
                entry, limit_reached = self._process_url(index, len(urls), url, tracker, progress)
                entries.append(entry)
                summary.record(entry)
                self._persist(entry, summary)

                counts = summary.counts()
                self.logger.info(
                    f"Progress: {counts['archived']} archived, {counts['failed']} failed, "
                    f"{counts['pending']} pending"
                )
                if progress:
                    elapsed = self.clock() - started
                    done = counts['archived'] + counts['failed']
                    remaining = elapsed / done * counts['pending'] if done else 0.0
                    progress({"type": "counters", "stats": counts,
                              "elapsed": elapsed, "remaining": remaining})

                if limit_reached:
                    status = RunStatus.LIMIT_REACHED
                    self.logger.warning(
                        f"Daily capture limit reached; stopping with {summary.pending} URLs pending"
                    )
                    break

                if index < len(urls):
                    self.pacer.pause_range(self.config.pacing_delay)

        except Exception as e:
            status = RunStatus.ERROR
            self.error_tracker.log_error(e, ErrorKind.UNKNOWN_ERROR, context="batch")

        summary.finalize(status)
        self.logger.info(
            f"Batch finished ({status.value}): {summary.archived}/{summary.total} archived, "
            f"{summary.failed} failed, {summary.pending} pending"
        )

        if self.sink is not None:
            try:
                self.sink.finalize(summary, entries, tracker)
            except OSError as e:
                self.error_tracker.log_error(e, ErrorKind.UNKNOWN_ERROR, context="finalize results")

        if self.error_tracker.errors:
            self._save_error_report()

        return summary

    def _process_url(self,
                     index: int,
                     total: int,
                     url: str,
                     tracker: AttemptTracker,
                     progress: Optional[ProgressCallback]) -> Tuple[ResultEntry, bool]:
        self.logger.info(f"[{index}/{total}] {url}")

        def emit(stage: str, **extra):
            if progress:
                progress({"type": "url", "index": index, "total": total, "stage": stage, "url": url, **extra})

        try:
            emit("checking")
            check: CheckOutcome = self.checker.check_if_archived(url, tracker)
            if check.archived:
                emit("already_archived", archive_url=check.snapshot_url)
                return self._success_entry(index, url, check.snapshot_url), False

            if check.error:
                self.logger.warning(f"Status unknown, submitting anyway: {check.error.message}")

            emit("submitting")
            outcome = self.submitter.try_submit_capture(url, tracker)

        except Exception as e:
            self.error_tracker.log_error(e, ErrorKind.PROCESSING_ERROR, context="process_url", url=url)
            emit("failed", reason=ErrorKind.PROCESSING_ERROR.value)
            return self._failure_entry(index, url, ErrorInfo(ErrorKind.PROCESSING_ERROR, str(e))), False

        if outcome.success:
            emit("archived", archive_url=outcome.snapshot_url)
            return self._success_entry(index, url, outcome.snapshot_url), False

        emit("limit_reached" if outcome.limit_reached else "failed",
             reason=outcome.error.kind.value if outcome.error else ErrorKind.UNKNOWN_ERROR.value)
        return self._failure_entry(index, url, outcome.error), outcome.limit_reached

    def _success_entry(self, index: int, url: str, snapshot_url: Optional[str]) -> ResultEntry:
        return ResultEntry(id=str(index), original_url=url, timestamp=utc_now(),
                           title=extract_title_from_url(url), status="success", archive_url=snapshot_url)

    def _failure_entry(self, index: int, url: str, error: Optional[ErrorInfo]) -> ResultEntry:
        return ResultEntry(id=str(index), original_url=url, timestamp=utc_now(),
                           title=extract_title_from_url(url), status="failed", error=error)

    def _persist(self, entry: ResultEntry, summary: BatchSummary) -> None:
        if self.sink is None:
            return
        try:
            self.sink.record(entry, summary)
        except OSError as e:
            self.error_tracker.log_error(e, ErrorKind.UNKNOWN_ERROR, context="save results", url=entry.original_url)

    def _save_error_report(self) -> None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = Path(self.config.docs_dir) / f"errors_{timestamp}.txt"
        self.error_report_path = self.error_tracker.save_error_report(str(path))


def build_orchestrator(config: RunConfig,
                       sessions: Optional[SessionFactory] = None,
                       client: Optional[AvailabilityClient] = None,
                       pacer: Optional[Pacer] = None,
                       sink: Optional[ResultSink] = None) -> BatchOrchestrator:
    """
    Wire an orchestrator with production collaborators.

    Any collaborator passed in is used as is; the rest are built from the
    config (Playwright browser, availability client, results file, attempt log).
    """
    pacer = pacer or Pacer()
    sessions = sessions or PlaywrightSessionFactory(config.browser)
    client = client or AvailabilityClient(timeout=config.check_timeout)
    if sink is None:
        sink = FileResultSink(FileManager(config.data_dir, config.docs_dir))
    attempt_log = AttemptLog(config.data_dir) if config.write_attempt_log else None

    checker = ArchiveStatusChecker(
        client,
        sessions,
        pacer=pacer,
        policy=config.policy,
        max_retries=config.check_retries,
        retry_delay=config.check_retry_delay,
        probe_timeout_ms=config.probe_timeout_ms,
        probe_settle_delay=config.probe_settle_delay,
    )
    submitter = CaptureSubmitter(
        sessions,
        pacer=pacer,
        policy=config.policy,
        max_retries=config.max_retries,
        navigation_timeout_ms=config.navigation_timeout_ms,
        limit_check_timeout_ms=config.limit_check_timeout_ms,
        content_timeout_ms=config.content_timeout_ms,
        settle_delay=config.settle_delay,
        submit_settle_delay=config.submit_settle_delay,
        retry_base_delay=config.retry_base_delay,
        retry_step_delay=config.retry_step_delay,
        retry_jitter=config.retry_jitter,
        attempt_log=attempt_log,
    )
    return BatchOrchestrator(config, checker, submitter, sink=sink, pacer=pacer, on_start=sessions.start)


class Archivist:
    """
    Entry point used by the command line: archive, check and report.

    Owns the browser and HTTP session for its lifetime; the browser is shut
    down after every batch or check.
    """

    def __init__(self,
                 config: Optional[RunConfig] = None,
                 sessions: Optional[SessionFactory] = None,
                 client: Optional[AvailabilityClient] = None,
                 pacer: Optional[Pacer] = None):
        self.config = config or RunConfig()
        self.sessions = sessions or PlaywrightSessionFactory(self.config.browser)
        self.client = client or AvailabilityClient(timeout=self.config.check_timeout)
        self.pacer = pacer or Pacer()
        self.files = FileManager(self.config.data_dir, self.config.docs_dir)
        self.sink = FileResultSink(self.files)
        self.orchestrator = build_orchestrator(self.config, self.sessions, self.client, self.pacer, self.sink)
        self.logger = logging.getLogger(__name__)

    def test_connection(self) -> bool:
        return self.client.test_connection()

    def archive_urls(self, urls: Iterable[str], progress: Optional[ProgressCallback] = None) -> BatchSummary:
        try:
            return self.orchestrator.run(urls, progress=progress)
        finally:
            self.sessions.close()

    def archive_file(self, path: str, progress: Optional[ProgressCallback] = None) -> BatchSummary:
        """
        Archive every valid URL listed in a file.

        Raises:
            OSError: If the file cannot be read
            ValueError: If the file holds no valid URL
        """
        urls = load_urls_from_file(path)
        if not urls:
            raise ValueError(f"No valid URLs found in {path}")
        self.logger.info(f"Loaded {len(urls)} URLs from {path}")
        return self.archive_urls(urls, progress=progress)

    def check(self, url: str) -> CheckOutcome:
        try:
            return self.orchestrator.checker.check_if_archived(url)
        finally:
            self.sessions.close()

    def stats(self) -> Dict[str, Any]:
        return self.files.get_statistics()

    @property
    def report_path(self) -> Optional[str]:
        return self.sink.report_path

    def close(self):
        self.sessions.close()
        self.client.close()
