"""
Capture Submission

Drives the Wayback Machine save-now page for one URL: load the save address,
let the confirmation render, detect the daily quota message, pull the new
snapshot address out of the page, and retry with increasing backoff when the
capture cannot be confirmed.
"""

import logging
import time
from typing import Optional

from .attempts import AttemptTracker
from .browser import NavigationStatus, PageSession, SessionFactory
from .classifier import (
    DEFAULT_POLICY,
    SnapshotPolicy,
    extract_confirmed_snapshot,
    find_limit_phrase,
    is_valid_snapshot_url,
)
from .models import ErrorKind, SubmissionOutcome
from archivist.utils.manifest import AttemptRecord
from archivist.utils.rate_limiter import DelayRange, Pacer


class CaptureNotConfirmed(Exception):
    """The save-now page never showed a snapshot address."""


class RateLimitReached(Exception):
    """The service reported that its capture quota is exhausted."""

    def __init__(self, phrase: str):
        super().__init__(f"Capture limit detected ('{phrase}')")
        self.phrase = phrase


class CaptureSubmitter:
    """
    Requests new captures through the save-now page.

    Every call is bounded twice: by ``max_retries`` and by the tracker's
    per-URL attempt ceiling, which is checked before each attempt.
    """

    def __init__(self,
                 sessions: SessionFactory,
                 pacer: Optional[Pacer] = None,
                 policy: SnapshotPolicy = DEFAULT_POLICY,
                 max_retries: int = 2,
                 navigation_timeout_ms: int = 45000,
                 limit_check_timeout_ms: int = 5000,
                 content_timeout_ms: int = 10000,
                 settle_delay: DelayRange = (4.0, 7.0),
                 submit_settle_delay: DelayRange = (5.0, 8.0),
                 retry_base_delay: float = 8.0,
                 retry_step_delay: float = 2.0,
                 retry_jitter: float = 2.0,
                 attempt_log=None):
        """
        Initialize the submitter.

        Args:
            sessions: Factory for rendered page sessions
            pacer: Pacer used for settle and backoff waits
            policy: Snapshot URL markers and limit phrases
            max_retries: Retries after the first attempt
            navigation_timeout_ms: Timeout for loading the save-now address
            limit_check_timeout_ms: Timeout for reading the page text checked
                for the capture limit
            content_timeout_ms: Timeout for re-reading the page text the
                snapshot address is extracted from
            settle_delay: Randomized wait for the confirmation to render
            submit_settle_delay: Randomized wait after a manual form submit
            retry_base_delay: Backoff before the first retry, in seconds
            retry_step_delay: Backoff added per retry already made
            retry_jitter: Random extra backoff, in seconds
            attempt_log: Optional sink with an ``append(AttemptRecord)`` method
        """
        self.sessions = sessions
        self.pacer = pacer or Pacer()
        self.policy = policy
        self.max_retries = max(0, max_retries)
        self.navigation_timeout_ms = navigation_timeout_ms
        self.limit_check_timeout_ms = limit_check_timeout_ms
        self.content_timeout_ms = content_timeout_ms
        self.settle_delay = settle_delay
        self.submit_settle_delay = submit_settle_delay
        self.retry_base_delay = retry_base_delay
        self.retry_step_delay = retry_step_delay
        self.retry_jitter = retry_jitter
        self.attempt_log = attempt_log
        self.logger = logging.getLogger(__name__)

    def save_url_for(self, url: str) -> str:
        return self.policy.base_url.rstrip('/') + self.policy.save_segment + url

    def try_submit_capture(self, url: str, tracker: AttemptTracker, retry_count: int = 0) -> SubmissionOutcome:
        """
        Request a new capture of a URL.

        Args:
            url: URL to capture
            tracker: Attempt tracker of the current batch
            retry_count: Retries already spent on this URL

        Returns:
            SubmissionOutcome. A detected daily limit is returned with
            ``limit_reached=True``; it is never raised.
        """
        last_error: Optional[Exception] = None

        while True:
            if tracker.is_at_limit(url):
                message = f"Limit of {tracker.max_attempts} attempts reached"
                self.logger.warning(f"{message} for {url}")
                return SubmissionOutcome.failed(ErrorKind.ATTEMPT_LIMIT, message)

            tracker.record_attempt(url)
            record = AttemptRecord(url=url, attempt=tracker.attempts(url),
                                   save_url=self.save_url_for(url), started_at=time.time())
            self.logger.info(f"Capture attempt {record.attempt}/{tracker.max_attempts}: {url}")

            try:
                snapshot_url = self._capture_once(url, record)
            except RateLimitReached as e:
                record.limit_detected = True
                record.error = str(e)
                self.logger.error(f"Daily capture limit reached (policy {self.policy.version}): {e.phrase}")
                return SubmissionOutcome.failed(ErrorKind.LIMIT_EXCEEDED, "Daily capture limit reached")
            except Exception as e:
                last_error = e
                record.error = str(e)
                self.logger.error(f"Capture attempt failed: {e}")
            else:
                record.success = True
                record.archived_url = snapshot_url
                tracker.mark_succeeded(url)
                self.logger.info(f"Archived: {snapshot_url}")
                return SubmissionOutcome.succeeded(snapshot_url)
            finally:
                record.finished_at = time.time()
                self._log_attempt(record)

            if retry_count >= self.max_retries:
                message = str(last_error) if last_error else "Capture not confirmed"
                self.logger.error(f"Giving up on {url} after {retry_count + 1} attempts")
                return SubmissionOutcome.failed(ErrorKind.ARCHIVE_ERROR, message)

            self.logger.info(f"Retry {retry_count + 1}/{self.max_retries} for {url}")
            self.pacer.backoff(self.retry_base_delay, retry_count, self.retry_step_delay, self.retry_jitter)
            retry_count += 1

    def _capture_once(self, url: str, record: AttemptRecord) -> str:
        """
        One pass over the save-now page.

        Returns:
            The confirmed snapshot URL

        Raises:
            RateLimitReached: If the page announces the capture quota is used up
            CaptureNotConfirmed: If no snapshot address could be found
        """
        with self.sessions.open() as page:
            status = page.navigate(record.save_url, self.navigation_timeout_ms)
            if status == NavigationStatus.TIMEOUT:
                self.logger.warning("Continuing despite navigation timeout")

            self.pacer.pause_range(self.settle_delay)

            record.current_url = page.current_address()
            text = page.rendered_text(self.limit_check_timeout_ms)
            record.content_preview = text[:500]

            phrase = find_limit_phrase(text, self.policy)
            if phrase:
                raise RateLimitReached(phrase)

            text = page.rendered_text(self.content_timeout_ms) or text
            snapshot_url = extract_confirmed_snapshot(text, page.link_targets(), self.policy)
            if is_valid_snapshot_url(snapshot_url, self.policy):
                return snapshot_url

            current = page.current_address()
            if is_valid_snapshot_url(current, self.policy):
                self.logger.info("Redirected straight to snapshot")
                return current

            return self._submit_form(page, record)

    def _submit_form(self, page: PageSession, record: AttemptRecord) -> str:
        if not page.click_first_submit_control():
            raise CaptureNotConfirmed("Capture not confirmed")

        self.pacer.pause_range(self.submit_settle_delay)
        new_address = page.current_address()
        record.current_url = new_address
        record.details['manual_submit'] = True
        if is_valid_snapshot_url(new_address, self.policy):
            self.logger.info(f"Archived after manual submit: {new_address}")
            return new_address
        raise CaptureNotConfirmed("Capture not confirmed after manual submit")

    def _log_attempt(self, record: AttemptRecord) -> None:
        if self.attempt_log is None:
            return
        try:
            self.attempt_log.append(record)
        except OSError as e:
            self.logger.warning(f"Could not write attempt log: {e}")
