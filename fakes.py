"""
In-memory stand-ins for the browser, the availability API and sleeping,
shared by the test modules.
"""

import random
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from archivist.core.browser import NavigationStatus
from archivist.utils.rate_limiter import Pacer


def snapshot(url: str, timestamp: str = "20240101120000") -> str:
    return f"https://web.archive.org/web/{timestamp}/{url}"


@dataclass
class PageScript:
    """What one page session shows."""
    text: str = ""
    address: str = "about:blank"
    links: List[str] = field(default_factory=list)
    has_submit: bool = False
    address_after_submit: Optional[str] = None
    navigation: NavigationStatus = NavigationStatus.OK
    navigate_error: Optional[Exception] = None


class FakePageSession:
    def __init__(self, script: PageScript):
        self.script = script
        self.visited: List[str] = []
        self.text_reads = 0
        self.timeouts: List[int] = []
        self.clicked = False

    def navigate(self, address, timeout_ms):
        self.visited.append(address)
        if self.script.navigate_error is not None:
            raise self.script.navigate_error
        return self.script.navigation

    def current_address(self):
        if self.clicked and self.script.address_after_submit is not None:
            return self.script.address_after_submit
        return self.script.address

    def rendered_text(self, timeout_ms=5000):
        self.text_reads += 1
        self.timeouts.append(timeout_ms)
        return self.script.text

    def link_targets(self):
        return list(self.script.links)

    def click_first_submit_control(self):
        if self.script.has_submit:
            self.clicked = True
        return self.script.has_submit


class FakeSessionFactory:
    """Hands out one scripted session per open(); the last script repeats."""

    def __init__(self, *scripts: PageScript, start_error: Optional[Exception] = None):
        self.scripts = list(scripts) or [PageScript()]
        self.start_error = start_error
        self.sessions: List[FakePageSession] = []
        self.released = 0
        self.start_calls = 0
        self.close_calls = 0

    @contextmanager
    def open(self):
        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        session = FakePageSession(script)
        self.sessions.append(session)
        try:
            yield session
        finally:
            self.released += 1

    @property
    def opened(self) -> int:
        return len(self.sessions)

    @property
    def visited(self) -> List[str]:
        return [address for session in self.sessions for address in session.visited]

    def start(self):
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error

    def close(self):
        self.close_calls += 1


class FakeAvailabilityClient:
    """
    Answers closest_snapshot() from per-URL queues; an Exception in a queue
    is raised. URLs without a queue get ``default``.
    """

    def __init__(self, responses: Optional[Dict[str, list]] = None, default=None, connected: bool = True):
        self.responses = {url: list(items) for url, items in (responses or {}).items()}
        self.default = default
        self.connected = connected
        self.calls: List[str] = []
        self.closed = False

    def closest_snapshot(self, url):
        self.calls.append(url)
        queue = self.responses.get(url)
        item = queue.pop(0) if queue else self.default
        if isinstance(item, Exception):
            raise item
        return item

    def test_connection(self):
        return self.connected

    def close(self):
        self.closed = True


def available(url: str, timestamp: str = "20240101120000") -> dict:
    return {'url': snapshot(url, timestamp), 'timestamp': timestamp, 'status': '200'}


def recording_pacer(seed: int = 0):
    """A Pacer that records requested sleeps instead of sleeping."""
    waits: List[float] = []
    return Pacer(sleep=waits.append, rng=random.Random(seed)), waits


class MemorySink:
    def __init__(self):
        self.recorded = []
        self.finalized = None
        self.begun = 0

    def begin(self, summary):
        self.begun += 1
        self.recorded = []

    def record(self, entry, summary):
        self.recorded.append((entry, summary.counts()))

    def finalize(self, summary, entries, tracker):
        self.finalized = (summary, list(entries), tracker)


class MemoryAttemptLog:
    """Attempt log that keeps records in a list."""

    def __init__(self):
        self.records = []

    def append(self, record):
        self.records.append(record)
