"""
Archive Status Checking

Decides whether a URL already has a Wayback Machine snapshot. The structured
availability API is asked first; on the first attempt a miss is double-checked
by loading the "all captures" page in a browser, since the API lags behind
recent captures.
"""

import logging
from typing import Optional

import requests

from .attempts import AttemptTracker
from .availability import AvailabilityClient
from .browser import SessionFactory
from .classifier import DEFAULT_POLICY, SnapshotPolicy, is_valid_snapshot_url, resolve_archive_path
from .models import CheckOutcome, ErrorInfo, ErrorKind
from archivist.utils.rate_limiter import DelayRange, Pacer


CAPTURES_INDEX_URL = "https://web.archive.org/web/*/{url}"


class ArchiveStatusChecker:
    """
    Checks whether URLs are already archived.

    A check never fails the batch: transport or parse errors are retried and
    finally reported as "not archived" with a CHECK_ERROR attached.
    """

    def __init__(self,
                 client: AvailabilityClient,
                 sessions: SessionFactory,
                 pacer: Optional[Pacer] = None,
                 policy: SnapshotPolicy = DEFAULT_POLICY,
                 max_retries: int = 2,
                 retry_delay: float = 5.0,
                 probe_timeout_ms: int = 30000,
                 probe_settle_delay: DelayRange = (10.0, 11.0)):
        """
        Initialize the status checker.

        Args:
            client: Availability API client
            sessions: Factory for rendered page sessions (fallback probe)
            pacer: Pacer used for settle and retry waits
            policy: Snapshot URL markers
            max_retries: Full check attempts before giving up
            retry_delay: Fixed delay in seconds between attempts
            probe_timeout_ms: Navigation timeout of the fallback probe
            probe_settle_delay: Randomized wait after the probe navigation
        """
        self.client = client
        self.sessions = sessions
        self.pacer = pacer or Pacer()
        self.policy = policy
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.probe_timeout_ms = probe_timeout_ms
        self.probe_settle_delay = probe_settle_delay
        self.logger = logging.getLogger(__name__)

    def check_if_archived(self, url: str, tracker: Optional[AttemptTracker] = None) -> CheckOutcome:
        """
        Determine whether a URL already has a snapshot.

        Args:
            url: URL to check
            tracker: Run tracker whose consecutive check-failure counter is
                updated (optional for one-off checks)

        Returns:
            CheckOutcome; ``archived=False`` both when nothing was found and
            when every attempt failed (the latter carries an error)
        """
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            self.logger.info(f"[{attempt}/{self.max_retries}] Checking: {_truncate(url)}")
            try:
                snapshot = self.client.closest_snapshot(url)
                if snapshot and is_valid_snapshot_url(snapshot['url'], self.policy):
                    self.logger.info(f"Already archived: {_truncate(snapshot['url'])}")
                    if tracker is not None:
                        tracker.reset_check_failures()
                    return CheckOutcome(archived=True, snapshot_url=snapshot['url'])

                if attempt == 1:
                    probed = self._probe_captures_index(url)
                    if probed:
                        self.logger.info(f"Snapshot found on captures page: {_truncate(probed)}")
                        return CheckOutcome(archived=True, snapshot_url=probed)

                return CheckOutcome(archived=False)

            except (requests.RequestException, ValueError) as e:
                last_error = e
                failures = tracker.record_check_failure() if tracker is not None else attempt
                self.logger.warning(f"Check attempt {attempt} failed ({failures} in a row): {e}")
                if attempt < self.max_retries:
                    self.logger.info(f"Retrying check in {self.retry_delay:.0f}s")
                    self.pacer.wait(self.retry_delay)

        self.logger.error(f"Check failed after {self.max_retries} attempts: {url}")
        return CheckOutcome(
            archived=False,
            error=ErrorInfo(ErrorKind.CHECK_ERROR, str(last_error) if last_error else "Check failed"),
        )

    def _probe_captures_index(self, url: str) -> Optional[str]:
        """
        Load the captures page for a URL and look for a snapshot address.

        The page either redirects to a snapshot or lists snapshot links.
        Any failure here just means nothing was found.
        """
        address = CAPTURES_INDEX_URL.format(url=url)
        try:
            with self.sessions.open() as page:
                page.navigate(address, self.probe_timeout_ms)
                self.pacer.pause_range(self.probe_settle_delay)

                current = page.current_address()
                if is_valid_snapshot_url(current, self.policy):
                    return current

                for href in page.link_targets():
                    candidate = resolve_archive_path(href, self.policy)
                    if is_valid_snapshot_url(candidate, self.policy):
                        return candidate
        except Exception as e:
            self.logger.warning(f"Captures page probe failed for {_truncate(url)}: {e}")
        return None


def _truncate(url: str, length: int = 50) -> str:
    return url[:length] + '...' if len(url) > length else url
