"""
Snapshot Classification

Pure string predicates used to interpret Wayback Machine responses: whether a
URL is a completed, citable snapshot address, whether page text announces that
the capture quota is exhausted, and which snapshot a save-now confirmation page
points at.

The phrase list and URL markers are heuristics tied to the service's current
wording, so they live in a versioned SnapshotPolicy that callers can override
(for example from the settings file) rather than in hard-coded constants.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Tuple


WAYBACK_HOST = "web.archive.org"
WAYBACK_BASE_URL = "https://web.archive.org"
WAYBACK_SAVE_URL = "https://web.archive.org/save/"

DEFAULT_LIMIT_PHRASES: Tuple[str, ...] = (
    "already captured",
    "daily limit",
    "limit we have set",
    "try again tomorrow",
    "exceeded",
    "captured 4 times today",
    "capture limit",
)

_TIMESTAMP_PATTERN = re.compile(r"/web/\d{14}/")
_VISIT_PAGE_PATTERN = re.compile(r"Visit page:\s*(\S+)")


@dataclass(frozen=True)
class SnapshotPolicy:
    """
    Service-specific markers used by the classifier.

    Attributes:
        version: Identifier of this policy table, logged with limit detections
        archive_host: Host that serves snapshots
        base_url: Base used to resolve relative snapshot paths
        snapshot_segment: Path segment that precedes the capture timestamp
        save_segment: Path segment of a capture request (never a snapshot)
        limit_phrases: Lower-case phrases that signal an exhausted quota
    """
    version: str = "2024.1"
    archive_host: str = WAYBACK_HOST
    base_url: str = WAYBACK_BASE_URL
    snapshot_segment: str = "/web/"
    save_segment: str = "/save/"
    limit_phrases: Tuple[str, ...] = field(default=DEFAULT_LIMIT_PHRASES)

    def with_phrases(self, phrases: Iterable[str]) -> "SnapshotPolicy":
        cleaned = tuple(p.strip().lower() for p in phrases if p and p.strip())
        return replace(self, limit_phrases=cleaned)


DEFAULT_POLICY = SnapshotPolicy()


def is_valid_snapshot_url(candidate: Optional[str], policy: SnapshotPolicy = DEFAULT_POLICY) -> bool:
    """
    Check whether a string is a completed snapshot address.

    Args:
        candidate: URL to test
        policy: Service markers to test against

    Returns:
        True if the string points at ``<host>/web/<14 digits>/...`` and is not
        a save-now request
    """
    if not candidate or not isinstance(candidate, str):
        return False
    if f"{policy.archive_host}{policy.snapshot_segment}" not in candidate:
        return False
    if policy.save_segment in candidate:
        return False
    return _has_timestamp(candidate, policy)


def _has_timestamp(candidate: str, policy: SnapshotPolicy) -> bool:
    if policy.snapshot_segment == "/web/":
        return _TIMESTAMP_PATTERN.search(candidate) is not None
    pattern = re.escape(policy.snapshot_segment) + r"\d{14}/"
    return re.search(pattern, candidate) is not None


def find_limit_phrase(page_text: Optional[str], policy: SnapshotPolicy = DEFAULT_POLICY) -> Optional[str]:
    """Return the first limit phrase contained in the text, if any."""
    if not page_text:
        return None
    text = page_text.lower()
    for phrase in policy.limit_phrases:
        if phrase.lower() in text:
            return phrase
    return None


def is_rate_limited(page_text: Optional[str], policy: SnapshotPolicy = DEFAULT_POLICY) -> bool:
    return find_limit_phrase(page_text, policy) is not None


def resolve_archive_path(path: str, policy: SnapshotPolicy = DEFAULT_POLICY) -> str:
    """
    Turn a snapshot path found on a page into an absolute address.

    Concatenates rather than using urljoin: the original URL embedded in the
    path contains its own scheme and must stay untouched.
    """
    path = path.strip()
    if path.startswith(("http://", "https://")):
        return path
    if path.startswith("//"):
        return "https:" + path
    base = policy.base_url.rstrip("/")
    if not path.startswith("/"):
        path = "/" + path
    return base + path


def extract_confirmed_snapshot(rendered_text: Optional[str],
                               anchors: Iterable[str] = (),
                               policy: SnapshotPolicy = DEFAULT_POLICY) -> Optional[str]:
    """
    Find the snapshot a save-now confirmation page points at.

    Args:
        rendered_text: Full text content of the confirmation page
        anchors: Hyperlink targets present on the page
        policy: Service markers

    Returns:
        Absolute snapshot URL, or None if the page does not name one. The
        "Visit page:" line of a finished save wins over page links.
    """
    text = rendered_text or ""
    if "Saving page" in text and "Done!" in text:
        match = _VISIT_PAGE_PATTERN.search(text)
        if match:
            return resolve_archive_path(match.group(1), policy)

    for href in anchors or ():
        if not href:
            continue
        if policy.snapshot_segment in href and _has_timestamp(href, policy):
            return resolve_archive_path(href, policy)

    return None
