"""
Per-URL attempt accounting for one batch run.

The tracker is built fresh by the orchestrator for every batch and passed to
the checker and submitter; it never touches I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional


DEFAULT_MAX_ATTEMPTS = 4


@dataclass
class AttemptState:
    attempts: int = 0
    last_attempt: Optional[datetime] = None
    succeeded: bool = False


class AttemptTracker:
    def __init__(self, urls: Iterable[str] = (), max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """
        Args:
            urls: URLs entering the batch, in input order
            max_attempts: capture attempts allowed per URL (attempt ceiling)
        """
        self.max_attempts = max(0, int(max_attempts))
        self.logger = logging.getLogger(__name__)
        self._states: Dict[str, AttemptState] = {}
        self.consecutive_check_failures = 0
        for url in urls:
            self.add(url)

    def add(self, url: str) -> AttemptState:
        if url not in self._states:
            self._states[url] = AttemptState()
        return self._states[url]

    def __contains__(self, url: str) -> bool:
        return url in self._states

    def __len__(self) -> int:
        return len(self._states)

    def state(self, url: str) -> Optional[AttemptState]:
        return self._states.get(url)

    def attempts(self, url: str) -> int:
        state = self._states.get(url)
        return state.attempts if state else 0

    def record_attempt(self, url: str) -> None:
        state = self._states.get(url)
        if state is None:
            # Unknown URL: the caller skipped add(); nothing to count against.
            self.logger.debug(f"record_attempt ignored for untracked URL: {url}")
            return
        if state.attempts >= self.max_attempts:
            return
        state.attempts += 1
        state.last_attempt = datetime.now()

    def mark_succeeded(self, url: str) -> None:
        state = self._states.get(url)
        if state is not None:
            state.succeeded = True

    def remaining_attempts(self, url: str) -> int:
        return max(self.max_attempts - self.attempts(url), 0)

    def is_at_limit(self, url: str) -> bool:
        return self.attempts(url) >= self.max_attempts

    def successful_urls(self) -> List[str]:
        return [url for url, state in self._states.items() if state.succeeded]

    def failed_urls(self) -> List[str]:
        """URLs that were attempted at least once without a confirmed capture."""
        return [url for url, state in self._states.items()
                if not state.succeeded and state.attempts > 0]

    # Status-check failures in a row, across URLs of this batch
    def record_check_failure(self) -> int:
        self.consecutive_check_failures += 1
        return self.consecutive_check_failures

    def reset_check_failures(self) -> None:
        self.consecutive_check_failures = 0
