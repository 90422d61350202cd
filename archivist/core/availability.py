"""
Availability API Client for Internet Archive Wayback Machine

This module handles communication with the Wayback Machine availability API
to find out whether a URL already has a snapshot, and with the Wayback
front page to confirm the service is reachable before a batch starts.
"""

import requests
import logging
from typing import Any, Dict, Optional


class AvailabilityClient:
    """
    Client for the Internet Archive availability API.

    The availability API answers with the closest snapshot of a URL, if any:
    ``{"archived_snapshots": {"closest": {"available": true, "url": ...}}}``.
    """

    AVAILABLE_URL = "https://archive.org/wayback/available"
    CONNECTION_TEST_URL = "https://web.archive.org/"

    def __init__(self, timeout: float = 60.0, session: Optional[requests.Session] = None):
        """
        Initialize the availability client.

        Args:
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'Archivist/1.0 (Wayback Batch Archiver)',
            'Accept': 'application/json',
        })

    def closest_snapshot(self, url: str) -> Optional[Dict[str, Any]]:
        """
        Look up the closest available snapshot of a URL.

        Args:
            url: The original URL to look up

        Returns:
            Dictionary with 'url', 'timestamp' and 'status' of the snapshot,
            or None if the service reports no available snapshot

        Raises:
            requests.RequestException: If the API request fails
            ValueError: If the response is not the expected JSON document
        """
        self.logger.debug(f"Querying availability API for: {url}")

        response = self.session.get(self.AVAILABLE_URL, params={'url': url}, timeout=self.timeout)
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise ValueError(f"Availability API returned non-JSON content: {e}")

        return self._parse_availability(data)

    def _parse_availability(self, data: Any) -> Optional[Dict[str, Any]]:
        """
        Parse the JSON body of an availability response.

        Raises:
            ValueError: If the response format is unexpected
        """
        if not isinstance(data, dict):
            raise ValueError("Unexpected availability response format: not an object")

        snapshots = data.get('archived_snapshots') or {}
        if not isinstance(snapshots, dict):
            raise ValueError("Unexpected availability response format: archived_snapshots")

        closest = snapshots.get('closest')
        if not closest or not isinstance(closest, dict):
            return None
        if not closest.get('available') or not closest.get('url'):
            return None

        snapshot_url = str(closest['url'])
        # The API still answers with http:// snapshot addresses
        if snapshot_url.startswith('http://'):
            snapshot_url = 'https://' + snapshot_url[len('http://'):]

        return {
            'url': snapshot_url,
            'timestamp': str(closest.get('timestamp', '')),
            'status': str(closest.get('status', '')),
        }

    def test_connection(self) -> bool:
        """
        Test connection to the Wayback Machine.

        Returns:
            True if connection is successful, False otherwise
        """
        try:
            response = self.session.head(self.CONNECTION_TEST_URL, timeout=10, allow_redirects=True)
            return response.status_code < 500
        except requests.RequestException as e:
            self.logger.error(f"Connection test failed: {e}")
            return False

    def close(self):
        """Close the HTTP session."""
        self.session.close()
