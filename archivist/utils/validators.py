"""
URL Validation Utilities

This module validates the URLs fed to an archiving batch and loads them from
files or comma-separated lists. URLs are kept exactly as given (apart from
surrounding whitespace): the archive keys snapshots on the literal address.
"""

import re
from urllib.parse import urlparse
from typing import Iterable, List, Tuple
import logging


class URLValidator:
    """
    Validates absolute URLs for the archival process.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

        # Hostname labels, or an IPv4 address
        self.domain_pattern = re.compile(
            r'^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*$'
        )

    def validate(self, url: str) -> Tuple[bool, str, str]:
        """
        Validate a URL for archival.

        Args:
            url: The URL to validate

        Returns:
            Tuple of (is_valid, url, error_message); the URL is stripped of
            surrounding whitespace but otherwise unchanged
        """
        if not url or not isinstance(url, str):
            return False, "", "URL cannot be empty"

        url = url.strip()
        if not url:
            return False, "", "URL cannot be empty"
        if any(ch.isspace() for ch in url):
            return False, "", "URL must not contain whitespace"

        try:
            parsed = urlparse(url)

            if parsed.scheme.lower() not in ('http', 'https'):
                return False, "", "URL must be absolute and use HTTP or HTTPS"

            if not parsed.netloc or not parsed.hostname:
                return False, "", "URL must have a valid domain"

            # Accessing .port raises ValueError for malformed ports
            parsed.port

            if not self.domain_pattern.match(parsed.hostname):
                return False, "", "Invalid domain format"

            return True, url, ""

        except ValueError as e:
            return False, "", f"URL validation error: {str(e)}"

    def filter_urls(self, candidates: Iterable[str]) -> Tuple[List[str], List[str]]:
        """
        Split candidate strings into valid URLs and rejected entries.

        Blank entries are dropped silently; invalid ones are logged.
        """
        valid: List[str] = []
        invalid: List[str] = []
        for raw in candidates:
            if raw is None or not raw.strip():
                continue
            ok, url, err = self.validate(raw)
            if ok:
                valid.append(url)
            else:
                invalid.append(raw.strip())
                self.logger.warning(f"Invalid URL ignored: {raw.strip()} ({err})")
        return valid, invalid


_validator_instance = None


def get_validator() -> URLValidator:
    """
    Get the global URL validator instance.

    Returns:
        URLValidator instance
    """
    global _validator_instance
    if _validator_instance is None:
        _validator_instance = URLValidator()
    return _validator_instance


def validate_url(url: str) -> Tuple[bool, str, str]:
    """
    Validate a URL.

    Returns:
        Tuple of (is_valid, url, error_message)
    """
    return get_validator().validate(url)


def parse_url_lines(text: str) -> List[str]:
    """Valid URLs from newline-delimited text, in order."""
    valid, _ = get_validator().filter_urls(text.splitlines())
    return valid


def parse_url_list(value: str) -> List[str]:
    """Valid URLs from a comma-separated list, in order."""
    valid, _ = get_validator().filter_urls(value.split(','))
    return valid


def load_urls_from_file(path: str) -> List[str]:
    """
    Read a newline-delimited URL file.

    Raises:
        OSError: If the file cannot be read
    """
    with open(path, 'r', encoding='utf-8-sig') as f:
        return parse_url_lines(f.read())


def extract_title_from_url(url: str) -> str:
    """
    Short display title for a URL: host plus the first 30 characters of the path.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url[:50]
    if not parsed.hostname:
        return url[:50]
    return parsed.hostname + parsed.path[:30]
